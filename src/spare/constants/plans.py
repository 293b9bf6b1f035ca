"""Default plans seeded by ``flask spare-seed``.

``None`` limits mean unlimited. Users without a live subscription fall back
to ``DEFAULT_LIMITS``.
"""

DEFAULT_LIMITS = {"max_transactions": 50, "max_accounts": 2}

DEFAULT_PLANS = [
    {
        "slug": "essential",
        "name": "Essential",
        "price_monthly": 7.99,
        "price_yearly": 79.99,
        "max_transactions": 500,
        "max_accounts": 10,
        "features": ["budgets", "goals", "csv_import", "reports"],
    },
    {
        "slug": "pro",
        "name": "Pro",
        "price_monthly": 12.99,
        "price_yearly": 129.99,
        "max_transactions": None,
        "max_accounts": None,
        "features": ["budgets", "goals", "csv_import", "reports", "bank_sync", "investments", "household"],
    },
]
