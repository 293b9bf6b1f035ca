"""Concrete repository implementations using SQLModel."""

from .account import SQLModelAccountRepository
from .billing import SQLModelBillingRepository
from .budget import SQLModelBudgetRepository
from .category import SQLModelCategoryRepository
from .debt import SQLModelDebtRepository
from .goal import SQLModelGoalRepository
from .import_job import SQLModelImportJobRepository
from .investment import SQLModelInvestmentRepository
from .member import SQLModelMemberRepository
from .plaid_item import SQLModelPlaidItemRepository
from .recurring import SQLModelPlannedPaymentRepository, SQLModelServiceSubscriptionRepository
from .tax import SQLModelTaxRepository
from .transaction import SQLModelTransactionRepository

__all__ = [
    "SQLModelAccountRepository",
    "SQLModelBillingRepository",
    "SQLModelBudgetRepository",
    "SQLModelCategoryRepository",
    "SQLModelDebtRepository",
    "SQLModelGoalRepository",
    "SQLModelImportJobRepository",
    "SQLModelInvestmentRepository",
    "SQLModelMemberRepository",
    "SQLModelPlaidItemRepository",
    "SQLModelPlannedPaymentRepository",
    "SQLModelServiceSubscriptionRepository",
    "SQLModelTaxRepository",
    "SQLModelTransactionRepository",
]
