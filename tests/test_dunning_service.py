"""Tests for DunningService: configurations, campaign lifecycle, attempts and templates."""

import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.orm import Session

from recovery.core.database import get_db
from recovery.core.exceptions import (
    DuplicateCampaignError,
    FinalActionError,
    NotFoundError,
    ValidationError,
)
from recovery.models.dunning_attempt import AttemptStatus
from recovery.models.dunning_campaign import CampaignStatus
from recovery.models.dunning_email_template import EmailTemplateType
from recovery.models.shared import utc_now
from recovery.models.subscription import Subscription
from recovery.repositories.audit_log_repository import AuditLogRepository
from recovery.schemas.dunning_campaign import DunningCampaignCreate
from recovery.schemas.dunning_configuration import DunningConfigurationCreate
from recovery.schemas.dunning_email_template import DunningEmailTemplateCreate
from recovery.services.dunning_service import CANCELLATION_REASON, DUNNING_ACTOR, DunningService
from recovery.services.email_service import DEFAULT_DUNNING_TEMPLATES
from recovery.services.exchange_rate_service import (
    ExchangeRateService,
    ExchangeRateUnavailableError,
)
from tests.conftest import (
    DEFAULT_WORKSPACE_ID,
    make_campaign,
    make_configuration,
    make_customer,
    make_payment,
    make_subscription,
)


@pytest.fixture
def db_session():
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def service(db_session: Session) -> DunningService:
    return DunningService(db_session)


@pytest.fixture
def configuration(db_session: Session):
    return make_configuration(db_session, max_retry_attempts=3, retry_interval_days=[1, 3, 7])


@pytest.fixture
def subscription(db_session: Session) -> Subscription:
    return make_subscription(db_session)


def _params(configuration, **kwargs) -> DunningCampaignCreate:
    fields = {
        "configuration_id": configuration.id,
        "original_amount_cents": 2999,
        "currency": "usd",
        "trigger_reason": "card_declined",
    }
    fields.update(kwargs)
    return DunningCampaignCreate(**fields)


class TestConfigurations:
    def test_create_configuration(self, service: DunningService) -> None:
        data = DunningConfigurationCreate(
            name="Standard",
            max_retry_attempts=3,
            retry_interval_days=[1, 3],
            attempt_actions=[{"attempt": 1, "actions": ["retry_payment", "email"]}],
        )
        config = service.create_configuration(DEFAULT_WORKSPACE_ID, data)

        assert config.name == "Standard"
        assert config.max_retry_attempts == 3
        assert config.retry_interval_days == [1, 3]
        assert config.attempt_actions == [
            {"attempt": 1, "actions": ["retry_payment", "email"]}
        ]
        assert config.final_action == "cancel"
        assert config.schema_version == 1

    def test_create_configuration_from_dict(self, service: DunningService) -> None:
        config = service.create_configuration(
            DEFAULT_WORKSPACE_ID, {"name": "From dict", "final_action": "pause"}
        )
        assert config.final_action == "pause"
        assert config.retry_interval_days == [3, 7, 7, 7]

    def test_invalid_policy_dict_raises_validation_error(self, service: DunningService) -> None:
        with pytest.raises(ValidationError, match="Invalid dunning configuration"):
            service.create_configuration(
                DEFAULT_WORKSPACE_ID,
                {
                    "name": "Broken",
                    "max_retry_attempts": 2,
                    "retry_interval_days": [1],
                    "attempt_actions": [{"attempt": 3, "actions": ["email"]}],
                },
            )

    def test_new_default_replaces_previous_default(self, service: DunningService) -> None:
        first = service.create_configuration(
            DEFAULT_WORKSPACE_ID, DunningConfigurationCreate(name="First", is_default=True)
        )
        second = service.create_configuration(
            DEFAULT_WORKSPACE_ID, DunningConfigurationCreate(name="Second", is_default=True)
        )

        service.db.refresh(first)
        assert first.is_default is False
        assert second.is_default is True
        assert service.get_default_configuration(DEFAULT_WORKSPACE_ID).id == second.id

    def test_create_configuration_writes_audit_entry(
        self, db_session: Session, service: DunningService
    ) -> None:
        config = service.create_configuration(
            DEFAULT_WORKSPACE_ID, DunningConfigurationCreate(name="Audited")
        )
        logs = AuditLogRepository(db_session).get_by_resource("dunning_configuration", config.id)
        assert len(logs) == 1
        assert logs[0].action == "created"
        assert logs[0].changes["name"] == "Audited"

    def test_get_configuration_not_found(self, service: DunningService) -> None:
        with pytest.raises(NotFoundError):
            service.get_configuration(uuid.uuid4())

    def test_get_configuration_scoped_to_workspace(
        self, service: DunningService, configuration
    ) -> None:
        with pytest.raises(NotFoundError):
            service.get_configuration(configuration.id, uuid.uuid4())

    def test_get_policy_rejects_corrupt_stored_document(
        self, db_session: Session, service: DunningService, configuration
    ) -> None:
        configuration.attempt_actions = [{"attempt": 9, "actions": ["email"]}]
        db_session.commit()
        with pytest.raises(ValidationError, match="is invalid"):
            service.get_policy(configuration)


class TestCreateCampaign:
    def test_subscription_campaign(
        self, service: DunningService, configuration, subscription: Subscription
    ) -> None:
        before = utc_now()
        campaign = service.create_campaign(
            _params(configuration, subscription_id=subscription.id, strategy="standard")
        )

        assert campaign.status == CampaignStatus.ACTIVE.value
        assert campaign.subscription_id == subscription.id
        assert campaign.payment_id is None
        assert campaign.customer_id == subscription.customer_id
        assert campaign.workspace_id == DEFAULT_WORKSPACE_ID
        assert campaign.current_attempt == 0
        assert campaign.max_retry_attempts == 3
        assert campaign.currency == "USD"
        assert campaign.strategy == "standard"
        assert campaign.original_failure_reason == "card_declined"
        # First retry waits out the grace period
        assert campaign.next_retry_at >= before + timedelta(hours=24)
        assert campaign.next_retry_at <= utc_now() + timedelta(hours=24)

    def test_payment_campaign(self, db_session: Session, service: DunningService, configuration):
        payment = make_payment(db_session, amount_cents=5000, currency="EUR")
        campaign = service.create_campaign(
            _params(
                configuration,
                payment_id=payment.id,
                original_amount_cents=5000,
                currency="EUR",
            )
        )

        assert campaign.payment_id == payment.id
        assert campaign.subscription_id is None
        assert campaign.customer_id == payment.customer_id
        assert campaign.currency == "EUR"

    def test_requires_exactly_one_target(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        payment = make_payment(db_session)
        with pytest.raises(ValidationError, match="Exactly one"):
            service.create_campaign(_params(configuration))
        with pytest.raises(ValidationError, match="Exactly one"):
            service.create_campaign(
                _params(configuration, subscription_id=subscription.id, payment_id=payment.id)
            )

    def test_duplicate_open_campaign_rejected(
        self, service: DunningService, configuration, subscription
    ) -> None:
        existing = service.create_campaign(_params(configuration, subscription_id=subscription.id))

        with pytest.raises(DuplicateCampaignError) as exc_info:
            service.create_campaign(_params(configuration, subscription_id=subscription.id))

        assert exc_info.value.existing_campaign_id == existing.id
        assert exc_info.value.status_code == 409

    def test_paused_campaign_still_blocks_new_campaign(
        self, service: DunningService, configuration, subscription
    ) -> None:
        existing = service.create_campaign(_params(configuration, subscription_id=subscription.id))
        service.pause_campaign(existing.id)

        with pytest.raises(DuplicateCampaignError):
            service.create_campaign(_params(configuration, subscription_id=subscription.id))

    def test_new_campaign_allowed_after_terminal_state(
        self, service: DunningService, configuration, subscription
    ) -> None:
        first = service.create_campaign(_params(configuration, subscription_id=subscription.id))
        service.recover_campaign(first.id, 2999)

        second = service.create_campaign(_params(configuration, subscription_id=subscription.id))
        assert second.id != first.id

    def test_inactive_configuration_rejected(
        self, db_session: Session, service: DunningService, subscription
    ) -> None:
        config = make_configuration(db_session, is_active=False)
        with pytest.raises(ValidationError, match="not active"):
            service.create_campaign(_params(config, subscription_id=subscription.id))

    def test_unknown_subscription(self, service: DunningService, configuration) -> None:
        with pytest.raises(NotFoundError):
            service.create_campaign(_params(configuration, subscription_id=uuid.uuid4()))

    def test_customer_mismatch_rejected(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        other = make_customer(db_session, name="Someone Else")
        with pytest.raises(ValidationError, match="customer_id"):
            service.create_campaign(
                _params(configuration, subscription_id=subscription.id, customer_id=other.id)
            )

    def test_writes_audit_entry(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = service.create_campaign(_params(configuration, subscription_id=subscription.id))
        logs = AuditLogRepository(db_session).get_by_resource("dunning_campaign", campaign.id)
        assert len(logs) == 1
        assert logs[0].actor_type == DUNNING_ACTOR
        assert logs[0].changes["configuration_id"] == str(configuration.id)


class TestCampaignQueries:
    def test_campaign_detail(self, db_session: Session, service: DunningService, configuration):
        customer = make_customer(db_session, name="Ada", email="ada@example.com")
        subscription = make_subscription(db_session, customer=customer, product_name="Team Plan")
        campaign = make_campaign(db_session, configuration, subscription=subscription)

        detail = service.get_campaign_detail(campaign.id)

        assert detail.id == campaign.id
        assert detail.customer_name == "Ada"
        assert detail.customer_email == "ada@example.com"
        assert detail.product_name == "Team Plan"

    def test_payment_campaign_detail_has_no_product(
        self, db_session: Session, service: DunningService, configuration
    ) -> None:
        payment = make_payment(db_session)
        campaign = make_campaign(db_session, configuration, payment=payment)

        detail = service.get_campaign_detail(campaign.id)
        assert detail.product_name is None
        assert detail.customer_email == "jane@example.com"

    def test_list_campaigns_filters_by_status(
        self, db_session: Session, service: DunningService, configuration
    ) -> None:
        make_campaign(db_session, configuration, subscription=make_subscription(db_session))
        make_campaign(
            db_session,
            configuration,
            subscription=make_subscription(db_session),
            status=CampaignStatus.RECOVERED.value,
        )

        assert len(service.list_campaigns(DEFAULT_WORKSPACE_ID)) == 2
        active = service.list_campaigns(DEFAULT_WORKSPACE_ID, status="active")
        assert [c.status for c in active] == ["active"]

    def test_get_campaign_not_found(self, service: DunningService) -> None:
        with pytest.raises(NotFoundError):
            service.get_campaign(uuid.uuid4())


class TestTerminalTransitions:
    def test_recover_campaign(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)

        recovered = service.recover_campaign(campaign.id, 2999, attempt_number=1)

        assert recovered.status == CampaignStatus.RECOVERED.value
        assert recovered.recovered_amount_cents == 2999
        assert recovered.recovered_at is not None
        assert recovered.completed_at is not None
        assert recovered.next_retry_at is None
        assert recovered.current_attempt == 1

    def test_recovered_is_terminal(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)
        service.recover_campaign(campaign.id, 2999)

        with pytest.raises(ValidationError, match="already recovered"):
            service.recover_campaign(campaign.id, 2999)
        with pytest.raises(ValidationError, match="already recovered"):
            service.fail_campaign(campaign.id, "cancel")
        with pytest.raises(ValidationError):
            service.pause_campaign(campaign.id)

    def test_fail_campaign_cancels_subscription(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(
            db_session, configuration, subscription=subscription, current_attempt=2
        )

        failed = service.fail_campaign(campaign.id, "cancel", attempt_number=3)

        assert failed.status == CampaignStatus.FAILED.value
        assert failed.final_action_taken == "cancel"
        assert failed.final_action_at is not None
        assert failed.current_attempt == 3

        db_session.refresh(subscription)
        assert subscription.status == "canceled"
        assert subscription.cancel_at is not None
        assert subscription.canceled_at is not None
        assert subscription.cancellation_reason == CANCELLATION_REASON

        logs = AuditLogRepository(db_session).get_by_resource("subscription", subscription.id)
        assert len(logs) == 1
        assert logs[0].actor_type == DUNNING_ACTOR
        assert logs[0].actor_id == str(campaign.id)
        assert logs[0].changes == {"status": {"old": "active", "new": "canceled"}}
        assert logs[0].metadata_["campaign_id"] == str(campaign.id)

    def test_fail_campaign_pause_leaves_subscription(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)

        failed = service.fail_campaign(campaign.id, "pause")

        assert failed.final_action_taken == "pause"
        db_session.refresh(subscription)
        assert subscription.status == "active"

    def test_fail_payment_campaign_has_nothing_to_cancel(
        self, db_session: Session, service: DunningService, configuration
    ) -> None:
        campaign = make_campaign(db_session, configuration, payment=make_payment(db_session))

        failed = service.fail_campaign(campaign.id, "cancel")
        assert failed.status == CampaignStatus.FAILED.value

    def test_final_action_error_keeps_campaign_failed(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)
        service.subscription_repo.update = MagicMock(side_effect=RuntimeError("db down"))

        failed = service.fail_campaign(campaign.id, "cancel")

        assert failed.status == CampaignStatus.FAILED.value
        db_session.refresh(subscription)
        assert subscription.status == "active"

    def test_unknown_final_action(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)
        with pytest.raises(FinalActionError, match="Unknown final action"):
            service.execute_final_action(campaign, "explode")

    def test_transitions_are_audited(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)
        service.recover_campaign(campaign.id, 100)

        logs = AuditLogRepository(db_session).get_by_resource("dunning_campaign", campaign.id)
        assert logs[0].changes == {"status": {"old": "active", "new": "recovered"}}


class TestAdvanceCampaign:
    def test_advance_moves_counter_and_schedule(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)
        next_retry = utc_now() + timedelta(days=3)

        advanced = service.advance_campaign(campaign.id, 1, next_retry)

        assert advanced.current_attempt == 1
        assert advanced.last_retry_at is not None
        assert abs((advanced.next_retry_at - next_retry).total_seconds()) < 1

    def test_advance_rejects_going_backwards(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(
            db_session, configuration, subscription=subscription, current_attempt=2
        )
        with pytest.raises(ValidationError, match="behind"):
            service.advance_campaign(campaign.id, 1, utc_now())

    def test_advance_requires_active(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(
            db_session,
            configuration,
            subscription=subscription,
            status=CampaignStatus.PAUSED.value,
        )
        with pytest.raises(ValidationError, match="not active"):
            service.advance_campaign(campaign.id, 1, utc_now())


class TestPauseResume:
    def test_pause_clears_schedule(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)

        paused = service.pause_campaign(campaign.id, DEFAULT_WORKSPACE_ID)

        assert paused.status == CampaignStatus.PAUSED.value
        assert paused.next_retry_at is None

    def test_pause_twice_rejected(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)
        service.pause_campaign(campaign.id)
        with pytest.raises(ValidationError, match="Only active"):
            service.pause_campaign(campaign.id)

    def test_resume_reschedules(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)
        service.pause_campaign(campaign.id)

        before = utc_now()
        resumed = service.resume_campaign(campaign.id, delay=timedelta(hours=2))

        assert resumed.status == CampaignStatus.ACTIVE.value
        assert resumed.next_retry_at >= before + timedelta(hours=2)

    def test_resume_requires_paused(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)
        with pytest.raises(ValidationError, match="Only paused"):
            service.resume_campaign(campaign.id)

    def test_pause_wrong_workspace_not_found(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(db_session, configuration, subscription=subscription)
        with pytest.raises(NotFoundError):
            service.pause_campaign(campaign.id, uuid.uuid4())


class TestAttempts:
    @pytest.fixture
    def campaign(self, db_session: Session, configuration, subscription):
        return make_campaign(db_session, configuration, subscription=subscription)

    def test_create_pending_attempt(self, service: DunningService, campaign) -> None:
        attempt = service.create_attempt(campaign.id, 1, "retry_payment")

        assert attempt.campaign_id == campaign.id
        assert attempt.attempt_number == 1
        assert attempt.status == AttemptStatus.PENDING.value
        assert attempt.completed_at is None

    def test_attempt_number_must_advance(
        self, db_session: Session, service: DunningService, configuration, subscription
    ) -> None:
        campaign = make_campaign(
            db_session, configuration, subscription=subscription, current_attempt=1
        )
        with pytest.raises(ValidationError, match="greater than current attempt"):
            service.create_attempt(campaign.id, 1, "retry_payment")

    def test_attempt_number_bounded_by_max(self, service: DunningService, campaign) -> None:
        with pytest.raises(ValidationError, match="exceeds max_retry_attempts"):
            service.create_attempt(campaign.id, 4, "retry_payment")

    def test_pending_attempt_is_reused(self, service: DunningService, campaign) -> None:
        first = service.create_attempt(campaign.id, 1, "retry_payment")
        again = service.create_attempt(campaign.id, 1, "retry_payment+email")

        assert again.id == first.id
        assert again.attempt_type == "retry_payment+email"
        assert len(service.list_attempts(campaign.id)) == 1

    def test_completed_attempt_cannot_be_recreated(
        self, service: DunningService, campaign
    ) -> None:
        attempt = service.create_attempt(campaign.id, 1, "retry_payment")
        service.update_attempt_status(attempt.id, AttemptStatus.FAILED, error="declined")

        with pytest.raises(ValidationError, match="already completed"):
            service.create_attempt(campaign.id, 1, "retry_payment")

    def test_update_attempt_failed(self, service: DunningService, campaign) -> None:
        attempt = service.create_attempt(campaign.id, 1, "retry_payment")

        updated = service.update_attempt_status(
            attempt.id,
            "failed",
            error="insufficient_funds",
            communication_sent=True,
            metadata={"payment_status": "declined"},
        )

        assert updated.status == "failed"
        assert updated.payment_error == "insufficient_funds"
        assert updated.communication_sent is True
        assert updated.completed_at is not None
        assert updated.attempt_metadata == {"payment_status": "declined"}

    def test_update_attempt_success_ignores_error(self, service: DunningService, campaign):
        attempt = service.create_attempt(campaign.id, 1, "retry_payment")
        updated = service.update_attempt_status(
            attempt.id, AttemptStatus.SUCCESS, error="ignored", transaction_reference="tx_1"
        )
        assert updated.status == "success"
        assert updated.payment_error is None
        assert updated.transaction_reference == "tx_1"

    def test_completed_attempt_is_immutable(self, service: DunningService, campaign) -> None:
        attempt = service.create_attempt(campaign.id, 1, "retry_payment")
        service.update_attempt_status(attempt.id, AttemptStatus.SUCCESS)

        with pytest.raises(ValidationError, match="already completed"):
            service.update_attempt_status(attempt.id, AttemptStatus.FAILED, error="late")

    def test_update_attempt_rejects_pending_status(self, service: DunningService, campaign):
        attempt = service.create_attempt(campaign.id, 1, "retry_payment")
        with pytest.raises(ValidationError, match="Invalid attempt status"):
            service.update_attempt_status(attempt.id, "pending")

    def test_update_attempt_rejects_unknown_fields(self, service: DunningService, campaign):
        attempt = service.create_attempt(campaign.id, 1, "retry_payment")
        with pytest.raises(ValidationError, match="Unknown attempt fields: status_code"):
            service.update_attempt_status(attempt.id, "failed", status_code=500)

    def test_update_attempt_not_found(self, service: DunningService) -> None:
        with pytest.raises(NotFoundError):
            service.update_attempt_status(uuid.uuid4(), "failed")

    def test_list_attempts_in_order(
        self, db_session: Session, service: DunningService, campaign
    ) -> None:
        first = service.create_attempt(campaign.id, 1, "retry_payment")
        service.update_attempt_status(first.id, "failed", error="declined")
        service.advance_campaign(campaign.id, 1, utc_now())
        service.create_attempt(campaign.id, 2, "retry_payment")

        attempts = service.list_attempts(campaign.id, DEFAULT_WORKSPACE_ID)
        assert [a.attempt_number for a in attempts] == [1, 2]


class TestEmailTemplates:
    def _create(self, service: DunningService, name: str, **kwargs):
        fields = {
            "name": name,
            "template_type": EmailTemplateType.ATTEMPT_1,
            "subject": "Payment failed for {{ product_name }}",
            "body_html": "<p>Hi {{ customer_name }}</p>",
        }
        fields.update(kwargs)
        return service.create_email_template(
            DEFAULT_WORKSPACE_ID, DunningEmailTemplateCreate(**fields)
        )

    def test_create_fills_available_variables(self, service: DunningService) -> None:
        template = self._create(service, "First notice")
        assert "customer_name" in template.available_variables
        assert template.template_type == "attempt_1"

    def test_new_active_template_replaces_previous(self, service: DunningService) -> None:
        old = self._create(service, "Old")
        new = self._create(service, "New")

        service.db.refresh(old)
        assert old.is_active is False
        assert new.is_active is True

    def test_resolve_falls_back_to_builtin(self, service: DunningService) -> None:
        template = service.resolve_email_template(DEFAULT_WORKSPACE_ID, EmailTemplateType.ATTEMPT_2)
        assert template == DEFAULT_DUNNING_TEMPLATES["attempt_2"]

    def test_resolve_prefers_stored_template(self, service: DunningService) -> None:
        stored = self._create(service, "Stored")
        template = service.resolve_email_template(DEFAULT_WORKSPACE_ID, "attempt_1")
        assert template.id == stored.id

    def test_resolve_explicit_template(self, service: DunningService) -> None:
        explicit = self._create(
            service, "Explicit", template_type=EmailTemplateType.FINAL_NOTICE
        )
        template = service.resolve_email_template(
            DEFAULT_WORKSPACE_ID, EmailTemplateType.ATTEMPT_1, explicit.id
        )
        assert template.id == explicit.id

    def test_resolve_missing_explicit_template_falls_back(self, service: DunningService):
        template = service.resolve_email_template(
            DEFAULT_WORKSPACE_ID, EmailTemplateType.ATTEMPT_1, uuid.uuid4()
        )
        assert template == DEFAULT_DUNNING_TEMPLATES["attempt_1"]

    def test_list_by_type(self, service: DunningService) -> None:
        self._create(service, "A1")
        self._create(service, "Final", template_type=EmailTemplateType.FINAL_NOTICE)
        assert len(service.list_email_templates(DEFAULT_WORKSPACE_ID)) == 2
        finals = service.list_email_templates(DEFAULT_WORKSPACE_ID, "final_notice")
        assert [t.name for t in finals] == ["Final"]

    def test_get_email_template_not_found(self, service: DunningService) -> None:
        with pytest.raises(NotFoundError):
            service.get_email_template(uuid.uuid4())


class TestCampaignStats:
    def test_empty_workspace(self, service: DunningService) -> None:
        stats = service.get_campaign_stats(DEFAULT_WORKSPACE_ID)
        assert stats.total_campaigns == 0
        assert stats.recovery_rate == 0.0
        assert stats.total_at_risk_cents == 0
        assert stats.currency == "USD"

    def test_counts_and_converted_amounts(
        self, db_session: Session, service: DunningService, configuration
    ) -> None:
        make_campaign(
            db_session, configuration, subscription=make_subscription(db_session), amount_cents=1000
        )
        make_campaign(
            db_session,
            configuration,
            subscription=make_subscription(db_session),
            amount_cents=400,
            status=CampaignStatus.PAUSED.value,
        )
        make_campaign(
            db_session,
            configuration,
            subscription=make_subscription(db_session),
            amount_cents=500,
            currency="EUR",
            status=CampaignStatus.RECOVERED.value,
        )
        make_campaign(
            db_session,
            configuration,
            subscription=make_subscription(db_session),
            amount_cents=300,
            status=CampaignStatus.FAILED.value,
        )
        rates = ExchangeRateService(fetcher=lambda source, target: Decimal("1.5"))

        stats = service.get_campaign_stats(DEFAULT_WORKSPACE_ID, exchange_rates=rates)

        assert stats.total_campaigns == 4
        assert stats.active_campaigns == 1
        assert stats.paused_campaigns == 1
        assert stats.recovered_campaigns == 1
        assert stats.failed_campaigns == 1
        assert stats.recovery_rate == 0.5
        assert stats.total_at_risk_cents == 1400
        assert stats.total_recovered_cents == 750
        assert stats.total_lost_cents == 300

    def test_period_filter(self, db_session: Session, service: DunningService, configuration):
        make_campaign(db_session, configuration, subscription=make_subscription(db_session))
        stats = service.get_campaign_stats(
            DEFAULT_WORKSPACE_ID, start=utc_now() + timedelta(days=1)
        )
        assert stats.total_campaigns == 0

    def test_mixed_currency_without_rate_source(
        self, db_session: Session, service: DunningService, configuration
    ) -> None:
        make_campaign(
            db_session,
            configuration,
            subscription=make_subscription(db_session),
            currency="EUR",
        )
        with patch("recovery.services.exchange_rate_service.settings") as mock_settings:
            mock_settings.EXCHANGE_RATE_API_URL = ""
            mock_settings.EXCHANGE_RATE_TTL_SECONDS = 300
            mock_settings.EXCHANGE_RATE_TIMEOUT_SECONDS = 10.0
            with pytest.raises(ExchangeRateUnavailableError):
                service.get_campaign_stats(DEFAULT_WORKSPACE_ID)
