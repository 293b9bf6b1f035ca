"""Blueprint exports."""

from . import (
    accounts,
    admin,
    auth,
    billing,
    budgets,
    categories,
    debts,
    goals,
    import_jobs,
    imports,
    investments,
    members,
    planned_payments,
    plaid,
    reports,
    subscriptions,
    taxes,
    transactions,
)

__all__ = [
    "accounts",
    "admin",
    "auth",
    "billing",
    "budgets",
    "categories",
    "debts",
    "goals",
    "import_jobs",
    "imports",
    "investments",
    "members",
    "planned_payments",
    "plaid",
    "reports",
    "subscriptions",
    "taxes",
    "transactions",
]
