"""Identity token verification and document store access."""
