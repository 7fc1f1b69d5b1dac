"""
Tests for log correlation and credential masking.
"""

from shared.logging import (
    add_correlation_context,
    add_service_context,
    clear_context,
    redact_sensitive_fields,
    set_request_id,
    set_user_context,
)


class TestLoggingProcessors:

    def teardown_method(self):
        clear_context()

    def test_tokens_are_masked(self):
        event = redact_sensitive_fields(None, "info", {"event": "x", "token": "eyJhbGciOiJSUzI1NiJ9.payload.sig"})

        assert event["token"] == "eyJhbG...[redacted]"

    def test_short_secrets_fully_masked(self):
        event = redact_sensitive_fields(None, "info", {"private_key": "abc", "user": "u1"})

        assert event == {"private_key": "[redacted]", "user": "u1"}

    def test_correlation_context(self):
        set_request_id("req-1")
        set_user_context(user_id="user-1", auth_source="cookie")

        event = add_correlation_context(None, "info", {"event": "x"})

        assert event["request_id"] == "req-1"
        assert event["user_id"] == "user-1"
        assert event["auth_source"] == "cookie"

    def test_cleared_context(self):
        set_user_context(user_id="user-1")
        clear_context()

        assert "user_id" not in add_correlation_context(None, "info", {})

    def test_service_from_logger_name(self):
        assert add_service_context(None, "info", {"logger": "identity.keys"})["service"] == "identity"
