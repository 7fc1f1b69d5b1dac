"""Collection names used by the application."""

USERS = "users"
CREDIT_REPORTS = "creditReports"
REPORT_ITEMS = "reportItems"
DISPUTES = "disputes"
CREDIT_SCORES = "creditScores"
ACTION_PLANS = "actionPlans"
REPORT_CHANGES = "reportChanges"
NOTIFICATIONS = "notifications"
PORTFOLIO_ACCOUNTS = "portfolioAccounts"
PORTFOLIO_SNAPSHOTS = "portfolioSnapshots"
PLAID_ITEMS = "plaidItems"
BUDGET_ENTRIES = "budgetEntries"
GOALS = "goals"
CREDIT_FREEZES = "creditFreezes"
REFERRALS = "referrals"
