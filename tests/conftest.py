"""Shared test fixtures for all test modules."""

import contextlib
import uuid
from datetime import datetime

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import recovery.models  # noqa: F401
from recovery.core import database as db_module
from recovery.core.database import Base
from recovery.models.customer import Customer
from recovery.models.dunning_campaign import CampaignStatus, DunningCampaign
from recovery.models.dunning_configuration import DunningConfiguration
from recovery.models.payment import Payment, PaymentStatus
from recovery.models.price import Price
from recovery.models.shared import utc_now
from recovery.models.subscription import Subscription
from recovery.models.workspace import Workspace

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Well-known default workspace ID used across all tests
DEFAULT_WORKSPACE_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")


def _seed_default_workspace(session: Session) -> None:
    """Insert a default workspace used by all tests."""
    workspace = session.query(Workspace).filter(Workspace.id == DEFAULT_WORKSPACE_ID).first()
    if workspace is None:
        workspace = Workspace(
            id=DEFAULT_WORKSPACE_ID,
            name="Default Test Workspace",
            support_email="help@test.example.com",
        )
        session.add(workspace)
        session.commit()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    # Patch module-level engine and session factory
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)

    # Seed default workspace so all tests can reference it
    session = _TestSessionLocal()
    try:
        _seed_default_workspace(session)
    finally:
        session.close()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    # Restore originals
    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def default_workspace_id():
    """Return the default workspace ID for tests."""
    return DEFAULT_WORKSPACE_ID


def _save(db: Session, obj):  # type: ignore[no-untyped-def]
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


def make_customer(
    db: Session,
    name: str = "Jane Doe",
    email: str | None = "jane@example.com",
    workspace_id: uuid.UUID = DEFAULT_WORKSPACE_ID,
) -> Customer:
    return _save(
        db,
        Customer(
            workspace_id=workspace_id,
            external_id=f"cust-{uuid.uuid4().hex[:8]}",
            name=name,
            email=email,
        ),
    )


def make_price(
    db: Session,
    unit_amount_cents: int = 2999,
    currency: str = "USD",
    workspace_id: uuid.UUID = DEFAULT_WORKSPACE_ID,
) -> Price:
    return _save(
        db,
        Price(workspace_id=workspace_id, unit_amount_cents=unit_amount_cents, currency=currency),
    )


def make_subscription(
    db: Session,
    customer: Customer | None = None,
    price: Price | None = None,
    product_name: str = "Pro Plan",
    workspace_id: uuid.UUID = DEFAULT_WORKSPACE_ID,
) -> Subscription:
    customer = customer or make_customer(db, workspace_id=workspace_id)
    price = price or make_price(db, workspace_id=workspace_id)
    return _save(
        db,
        Subscription(
            workspace_id=workspace_id,
            customer_id=customer.id,
            price_id=price.id,
            product_name=product_name,
            status="active",
        ),
    )


def make_payment(
    db: Session,
    customer: Customer | None = None,
    amount_cents: int = 5000,
    currency: str = "EUR",
    status: str = PaymentStatus.FAILED.value,
    subscription: Subscription | None = None,
    created_at: datetime | None = None,
    error_message: str | None = "card_declined",
) -> Payment:
    customer = customer or make_customer(db)
    return _save(
        db,
        Payment(
            workspace_id=customer.workspace_id,
            customer_id=customer.id,
            subscription_id=subscription.id if subscription else None,
            amount_cents=amount_cents,
            currency=currency,
            status=status,
            error_message=error_message,
            created_at=created_at or utc_now(),
        ),
    )


def make_configuration(
    db: Session,
    max_retry_attempts: int = 3,
    retry_interval_days: list[int] | None = None,
    attempt_actions: list[dict] | None = None,
    final_action: str = "cancel",
    is_default: bool = False,
    is_active: bool = True,
    grace_period_hours: int = 24,
    workspace_id: uuid.UUID = DEFAULT_WORKSPACE_ID,
) -> DunningConfiguration:
    return _save(
        db,
        DunningConfiguration(
            workspace_id=workspace_id,
            name="Test Policy",
            is_active=is_active,
            is_default=is_default,
            max_retry_attempts=max_retry_attempts,
            retry_interval_days=retry_interval_days if retry_interval_days is not None else [1, 3, 7],
            attempt_actions=attempt_actions or [],
            final_action=final_action,
            final_action_config={},
            grace_period_hours=grace_period_hours,
        ),
    )


def make_campaign(
    db: Session,
    configuration: DunningConfiguration,
    subscription: Subscription | None = None,
    payment: Payment | None = None,
    current_attempt: int = 0,
    next_retry_at: datetime | None = None,
    status: str = CampaignStatus.ACTIVE.value,
    amount_cents: int = 2999,
    currency: str = "USD",
) -> DunningCampaign:
    """Insert a campaign row directly, bypassing the service checks."""
    customer_id = subscription.customer_id if subscription else payment.customer_id  # type: ignore[union-attr]
    return _save(
        db,
        DunningCampaign(
            workspace_id=configuration.workspace_id,
            configuration_id=configuration.id,
            subscription_id=subscription.id if subscription else None,
            payment_id=payment.id if payment else None,
            customer_id=customer_id,
            status=status,
            current_attempt=current_attempt,
            max_retry_attempts=configuration.max_retry_attempts,
            next_retry_at=next_retry_at or utc_now(),
            original_amount_cents=amount_cents,
            currency=currency,
        ),
    )
