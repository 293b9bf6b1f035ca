"""SQLModel table exports."""

from .account import Account
from .billing import Plan, PromoCode, Subscription
from .budget import Budget
from .category import Category, CategoryGroup, Subcategory
from .debt import Debt
from .goal import Goal
from .household import Household, HouseholdMember
from .import_job import ImportJob
from .investment import InvestmentTransaction, Security
from .plaid import PlaidItem
from .recurring import PlannedPayment, ServiceSubscription
from .tax import FederalTaxBracket, RegionalTaxRate
from .transaction import Transaction, TransactionSync
from .user import User

__all__ = [
    "Account",
    "Budget",
    "Category",
    "CategoryGroup",
    "Debt",
    "FederalTaxBracket",
    "Goal",
    "Household",
    "HouseholdMember",
    "ImportJob",
    "InvestmentTransaction",
    "PlaidItem",
    "Plan",
    "PlannedPayment",
    "PromoCode",
    "RegionalTaxRate",
    "Security",
    "ServiceSubscription",
    "Subcategory",
    "Subscription",
    "Transaction",
    "TransactionSync",
    "User",
]
