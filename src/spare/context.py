"""Application context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.engine import Engine

from .config import BaseConfig
from .errors import AppError
from .infra.database import SessionFactory, create_db_engine, create_session_factory, init_database
from .infra.integrations.plaid_gateway import PlaidGateway
from .infra.integrations.stripe_gateway import StripeGateway
from .infra.repositories import (
    SQLModelAccountRepository,
    SQLModelBillingRepository,
    SQLModelBudgetRepository,
    SQLModelCategoryRepository,
    SQLModelDebtRepository,
    SQLModelGoalRepository,
    SQLModelImportJobRepository,
    SQLModelInvestmentRepository,
    SQLModelMemberRepository,
    SQLModelPlaidItemRepository,
    SQLModelPlannedPaymentRepository,
    SQLModelServiceSubscriptionRepository,
    SQLModelTaxRepository,
    SQLModelTransactionRepository,
)


@dataclass
class AppContext:
    """Configuration, session factory, repositories and external gateways."""

    config: BaseConfig
    engine: Engine
    session_factory: SessionFactory

    account_repo: SQLModelAccountRepository
    transaction_repo: SQLModelTransactionRepository
    category_repo: SQLModelCategoryRepository
    budget_repo: SQLModelBudgetRepository
    goal_repo: SQLModelGoalRepository
    debt_repo: SQLModelDebtRepository
    service_subscription_repo: SQLModelServiceSubscriptionRepository
    planned_payment_repo: SQLModelPlannedPaymentRepository
    import_job_repo: SQLModelImportJobRepository
    plaid_item_repo: SQLModelPlaidItemRepository
    billing_repo: SQLModelBillingRepository
    member_repo: SQLModelMemberRepository
    tax_repo: SQLModelTaxRepository
    investment_repo: SQLModelInvestmentRepository

    # Gateways stay None when the integration is not configured; tests inject fakes.
    billing_gateway: Optional[Any] = None
    bank_gateway: Optional[Any] = None

    def require_billing(self):
        if self.billing_gateway is None:
            raise AppError("Billing is not configured", 503)
        return self.billing_gateway

    def require_bank(self):
        if self.bank_gateway is None:
            raise AppError("Bank linking is not configured", 503)
        return self.bank_gateway


def _build_gateways(config: BaseConfig) -> tuple[Optional[StripeGateway], Optional[PlaidGateway]]:
    billing = None
    if config.STRIPE_SECRET_KEY:
        billing = StripeGateway(config.STRIPE_SECRET_KEY, config.STRIPE_WEBHOOK_SECRET)
    bank = None
    if config.PLAID_CLIENT_ID and config.PLAID_SECRET:
        bank = PlaidGateway(
            client_id=config.PLAID_CLIENT_ID,
            secret=config.PLAID_SECRET,
            host=config.plaid_host,
            webhook_url=config.PLAID_WEBHOOK_URL,
            client_name=config.APP_NAME,
        )
    return billing, bank


def create_app_context(
    config: Optional[BaseConfig] = None, *, engine: Optional[Engine] = None
) -> AppContext:
    """Create the engine (unless given), ensure the schema and wire repositories."""

    if config is None:
        config = BaseConfig()
    if engine is None:
        engine = create_db_engine(config)
    init_database(engine)
    session_factory = create_session_factory(engine)
    billing_gateway, bank_gateway = _build_gateways(config)

    return AppContext(
        config=config,
        engine=engine,
        session_factory=session_factory,
        account_repo=SQLModelAccountRepository(session_factory),
        transaction_repo=SQLModelTransactionRepository(session_factory),
        category_repo=SQLModelCategoryRepository(session_factory),
        budget_repo=SQLModelBudgetRepository(session_factory),
        goal_repo=SQLModelGoalRepository(session_factory),
        debt_repo=SQLModelDebtRepository(session_factory),
        service_subscription_repo=SQLModelServiceSubscriptionRepository(session_factory),
        planned_payment_repo=SQLModelPlannedPaymentRepository(session_factory),
        import_job_repo=SQLModelImportJobRepository(session_factory),
        plaid_item_repo=SQLModelPlaidItemRepository(session_factory),
        billing_repo=SQLModelBillingRepository(session_factory),
        member_repo=SQLModelMemberRepository(session_factory),
        tax_repo=SQLModelTaxRepository(session_factory),
        investment_repo=SQLModelInvestmentRepository(session_factory),
        billing_gateway=billing_gateway,
        bank_gateway=bank_gateway,
    )
