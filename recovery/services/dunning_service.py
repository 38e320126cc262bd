"""Dunning service: configurations, campaigns, attempts and email templates.

Every campaign and attempt state transition goes through this service so that
the invariants (one open campaign per target, strictly increasing attempts,
terminal recovered/failed states) are checked in one place.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recovery.core.config import settings
from recovery.core.exceptions import (
    ConflictError,
    DuplicateCampaignError,
    FinalActionError,
    NotFoundError,
    ValidationError,
)
from recovery.models.dunning_attempt import AttemptStatus, DunningAttempt
from recovery.models.dunning_campaign import OPEN_CAMPAIGN_STATUSES, CampaignStatus, DunningCampaign
from recovery.models.dunning_configuration import DunningConfiguration, FinalAction
from recovery.models.dunning_email_template import DunningEmailTemplate, EmailTemplateType
from recovery.models.shared import utc_now
from recovery.models.subscription import SubscriptionStatus
from recovery.repositories.customer_repository import CustomerRepository
from recovery.repositories.dunning_attempt_repository import DunningAttemptRepository
from recovery.repositories.dunning_campaign_repository import DunningCampaignRepository
from recovery.repositories.dunning_configuration_repository import DunningConfigurationRepository
from recovery.repositories.dunning_email_template_repository import DunningEmailTemplateRepository
from recovery.repositories.payment_repository import PaymentRepository
from recovery.repositories.subscription_repository import SubscriptionRepository
from recovery.schemas.dunning_campaign import (
    DunningCampaignCreate,
    DunningCampaignDetail,
    DunningCampaignStats,
)
from recovery.schemas.dunning_configuration import (
    POLICY_FIELDS,
    DunningConfigurationCreate,
    DunningPolicy,
)
from recovery.schemas.dunning_email_template import DunningEmailTemplateCreate
from recovery.services.audit_service import AuditService
from recovery.services.email_service import DEFAULT_DUNNING_TEMPLATES, DUNNING_TEMPLATE_VARIABLES
from recovery.services.exchange_rate_service import ExchangeRateService

logger = logging.getLogger(__name__)

DUNNING_ACTOR = "dunning_system"
CANCELLATION_REASON = "Failed dunning process - automatic cancellation"

_ATTEMPT_DETAIL_FIELDS = frozenset(
    {"transaction_reference", "communication_sent", "communication_error", "email_template_id"}
)


class DunningService:
    """Service for the dunning configuration and campaign lifecycle."""

    def __init__(self, db: Session, audit_service: AuditService | None = None):
        self.db = db
        self.config_repo = DunningConfigurationRepository(db)
        self.campaign_repo = DunningCampaignRepository(db)
        self.attempt_repo = DunningAttemptRepository(db)
        self.template_repo = DunningEmailTemplateRepository(db)
        self.subscription_repo = SubscriptionRepository(db)
        self.customer_repo = CustomerRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.audit_service = audit_service or AuditService(db)
        self._final_action_handlers: dict[
            FinalAction, Callable[[DunningCampaign, FinalAction], None]
        ] = {
            FinalAction.CANCEL: self._cancel_subscription,
            FinalAction.PAUSE: self._record_final_action,
            FinalAction.DOWNGRADE: self._record_final_action,
        }

    # Configurations

    def create_configuration(
        self,
        workspace_id: UUID,
        data: DunningConfigurationCreate | dict[str, Any],
    ) -> DunningConfiguration:
        """Create a configuration after validating its retry policy.

        A new default replaces the previous default in the same transaction.
        """
        if isinstance(data, dict):
            try:
                data = DunningConfigurationCreate.model_validate(data)
            except PydanticValidationError as exc:
                raise ValidationError(f"Invalid dunning configuration: {exc}") from exc

        policy = data.policy()
        fields = data.model_dump(exclude=set(POLICY_FIELDS))
        fields.update(policy.to_document())

        try:
            configuration = self.config_repo.create(workspace_id, **fields)
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(
                "Another default dunning configuration was created concurrently",
                context={"workspace_id": str(workspace_id)},
            ) from exc

        self.audit_service.log_create(
            resource_type="dunning_configuration",
            resource_id=configuration.id,  # type: ignore[arg-type]
            workspace_id=workspace_id,
            data={"name": configuration.name, "is_default": configuration.is_default},
        )
        return configuration

    def get_configuration(
        self, configuration_id: UUID, workspace_id: UUID | None = None
    ) -> DunningConfiguration:
        configuration = self.config_repo.get_by_id(configuration_id, workspace_id)
        if configuration is None:
            raise NotFoundError(f"Dunning configuration {configuration_id} not found")
        return configuration

    def get_default_configuration(self, workspace_id: UUID) -> DunningConfiguration | None:
        return self.config_repo.get_default(workspace_id)

    def list_configurations(
        self, workspace_id: UUID, skip: int = 0, limit: int = 100
    ) -> list[DunningConfiguration]:
        return self.config_repo.get_all(workspace_id, skip=skip, limit=limit)

    def get_policy(self, configuration: DunningConfiguration) -> DunningPolicy:
        """Parse the stored policy documents of a configuration."""
        try:
            return DunningPolicy.from_model(configuration)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Stored policy for configuration {configuration.id} is invalid: {exc}"
            ) from exc

    # Campaigns

    def create_campaign(self, params: DunningCampaignCreate) -> DunningCampaign:
        """Open a campaign for a failed subscription or payment.

        Raises:
            ValidationError: neither or both targets given, inactive configuration,
                or workspace/customer mismatch.
            DuplicateCampaignError: an active or paused campaign already covers the target.
            NotFoundError: the configuration or target does not exist.
        """
        if (params.subscription_id is None) == (params.payment_id is None):
            raise ValidationError("Exactly one of subscription_id or payment_id is required")

        if params.subscription_id is not None:
            existing = self.campaign_repo.get_open_for_subscription(params.subscription_id)
            target = f"subscription {params.subscription_id}"
        else:
            existing = self.campaign_repo.get_open_for_payment(params.payment_id)  # type: ignore[arg-type]
            target = f"payment {params.payment_id}"
        if existing is not None:
            raise DuplicateCampaignError(
                f"An open dunning campaign already exists for {target}",
                existing_campaign_id=existing.id,
            )

        configuration = self.get_configuration(params.configuration_id)
        if not configuration.is_active:
            raise ValidationError(f"Dunning configuration {configuration.id} is not active")
        policy = self.get_policy(configuration)

        workspace_id, customer_id = self._resolve_target(params)
        if configuration.workspace_id != workspace_id:
            raise ValidationError("Dunning configuration belongs to a different workspace")

        now = utc_now()
        try:
            campaign = self.campaign_repo.create(
                workspace_id=workspace_id,
                configuration_id=configuration.id,
                subscription_id=params.subscription_id,
                payment_id=params.payment_id,
                customer_id=customer_id,
                status=CampaignStatus.ACTIVE.value,
                started_at=now,
                current_attempt=0,
                max_retry_attempts=policy.max_retry_attempts,
                next_retry_at=now + timedelta(hours=policy.grace_period_hours),
                original_failure_reason=params.trigger_reason,
                original_amount_cents=params.original_amount_cents,
                currency=params.currency.upper(),
                strategy=params.strategy,
                campaign_metadata=params.metadata,
            )
        except IntegrityError as exc:
            self.db.rollback()
            raise DuplicateCampaignError(
                f"An open dunning campaign already exists for {target}"
            ) from exc

        self.audit_service.log_create(
            resource_type="dunning_campaign",
            resource_id=campaign.id,  # type: ignore[arg-type]
            workspace_id=workspace_id,
            actor_type=DUNNING_ACTOR,
            data={
                "target": target,
                "configuration_id": str(configuration.id),
                "original_amount_cents": params.original_amount_cents,
                "currency": campaign.currency,
                "strategy": params.strategy,
            },
        )
        logger.info(
            "Created dunning campaign %s for %s (strategy=%s, first retry at %s)",
            campaign.id,
            target,
            params.strategy,
            campaign.next_retry_at,
        )
        return campaign

    def _resolve_target(self, params: DunningCampaignCreate) -> tuple[UUID, UUID]:
        if params.subscription_id is not None:
            subscription = self.subscription_repo.get_by_id(params.subscription_id)
            if subscription is None:
                raise NotFoundError(f"Subscription {params.subscription_id} not found")
            workspace_id: UUID = subscription.workspace_id  # type: ignore[assignment]
            customer_id: UUID = subscription.customer_id  # type: ignore[assignment]
        else:
            payment = self.payment_repo.get_by_id(params.payment_id)  # type: ignore[arg-type]
            if payment is None:
                raise NotFoundError(f"Payment {params.payment_id} not found")
            workspace_id = payment.workspace_id  # type: ignore[assignment]
            customer_id = payment.customer_id  # type: ignore[assignment]

        if params.workspace_id is not None and params.workspace_id != workspace_id:
            raise ValidationError("workspace_id does not match the failed subscription or payment")
        if params.customer_id is not None and params.customer_id != customer_id:
            raise ValidationError("customer_id does not match the failed subscription or payment")
        return workspace_id, customer_id

    def get_campaign(
        self, campaign_id: UUID, workspace_id: UUID | None = None
    ) -> DunningCampaign:
        campaign = self.campaign_repo.get_by_id(campaign_id, workspace_id)
        if campaign is None:
            raise NotFoundError(f"Dunning campaign {campaign_id} not found")
        return campaign

    def get_campaign_detail(
        self, campaign_id: UUID, workspace_id: UUID | None = None
    ) -> DunningCampaignDetail:
        """Campaign with customer name/email and the subscription's product name."""
        campaign = self.get_campaign(campaign_id, workspace_id)
        detail = DunningCampaignDetail.model_validate(campaign)

        customer = self.customer_repo.get_by_id(campaign.customer_id)  # type: ignore[arg-type]
        if customer is not None:
            detail.customer_name = customer.name  # type: ignore[assignment]
            detail.customer_email = customer.email  # type: ignore[assignment]
        if campaign.subscription_id is not None:
            subscription = self.subscription_repo.get_by_id(campaign.subscription_id)  # type: ignore[arg-type]
            if subscription is not None:
                detail.product_name = subscription.product_name  # type: ignore[assignment]
        return detail

    def list_campaigns(
        self,
        workspace_id: UUID,
        status: str | None = None,
        skip: int = 0,
        limit: int = 100,
        order_by: str | None = None,
    ) -> list[DunningCampaign]:
        return self.campaign_repo.get_all(
            workspace_id, skip=skip, limit=limit, status=status, order_by=order_by
        )

    def advance_campaign(
        self, campaign_id: UUID, attempt_number: int, next_retry_at: datetime
    ) -> DunningCampaign:
        """Record a failed-but-not-final attempt and schedule the next one."""
        campaign = self.get_campaign(campaign_id)
        if campaign.status != CampaignStatus.ACTIVE.value:
            raise ValidationError(f"Campaign {campaign_id} is {campaign.status}, not active")
        if attempt_number < campaign.current_attempt:
            raise ValidationError(
                f"Attempt {attempt_number} is behind campaign attempt {campaign.current_attempt}"
            )
        return self.campaign_repo.update(
            campaign,
            current_attempt=attempt_number,
            last_retry_at=utc_now(),
            next_retry_at=next_retry_at,
        )

    def recover_campaign(
        self,
        campaign_id: UUID,
        recovered_amount_cents: int,
        attempt_number: int | None = None,
    ) -> DunningCampaign:
        """Mark a campaign recovered. Recovered is terminal."""
        campaign = self.get_campaign(campaign_id)
        if campaign.status not in OPEN_CAMPAIGN_STATUSES:
            raise ValidationError(f"Campaign {campaign_id} is already {campaign.status}")

        old_status = str(campaign.status)
        now = utc_now()
        fields: dict[str, Any] = {
            "status": CampaignStatus.RECOVERED.value,
            "recovered_amount_cents": recovered_amount_cents,
            "recovered_at": now,
            "completed_at": now,
            "next_retry_at": None,
        }
        if attempt_number is not None:
            fields["current_attempt"] = max(attempt_number, campaign.current_attempt)  # type: ignore[type-var]
            fields["last_retry_at"] = now
        campaign = self.campaign_repo.update(campaign, **fields)

        self._log_transition(campaign, old_status)
        logger.info(
            "Dunning campaign %s recovered %d %s",
            campaign.id,
            recovered_amount_cents,
            campaign.currency,
        )
        return campaign

    def fail_campaign(
        self,
        campaign_id: UUID,
        final_action: FinalAction | str,
        attempt_number: int | None = None,
    ) -> DunningCampaign:
        """Mark a campaign failed and run its final action once.

        A failing final action is logged; the campaign stays failed.
        """
        campaign = self.get_campaign(campaign_id)
        if campaign.status not in OPEN_CAMPAIGN_STATUSES:
            raise ValidationError(f"Campaign {campaign_id} is already {campaign.status}")

        old_status = str(campaign.status)
        action_value = final_action.value if isinstance(final_action, FinalAction) else final_action
        now = utc_now()
        fields: dict[str, Any] = {
            "status": CampaignStatus.FAILED.value,
            "final_action_taken": action_value,
            "final_action_at": now,
            "completed_at": now,
            "next_retry_at": None,
        }
        if attempt_number is not None:
            fields["current_attempt"] = max(attempt_number, campaign.current_attempt)  # type: ignore[type-var]
            fields["last_retry_at"] = now
        campaign = self.campaign_repo.update(campaign, **fields)
        self._log_transition(campaign, old_status)

        try:
            self.execute_final_action(campaign, action_value)
        except Exception:
            self.db.rollback()
            logger.exception(
                "Final action %s failed for dunning campaign %s", action_value, campaign.id
            )
        return campaign

    def execute_final_action(self, campaign: DunningCampaign, action: FinalAction | str) -> None:
        try:
            kind = FinalAction(action)
        except ValueError as exc:
            raise FinalActionError(f"Unknown final action: {action}") from exc
        self._final_action_handlers[kind](campaign, kind)

    def _cancel_subscription(self, campaign: DunningCampaign, action: FinalAction) -> None:
        if campaign.subscription_id is None:
            logger.info(
                "Dunning campaign %s targets payment %s; no subscription to cancel",
                campaign.id,
                campaign.payment_id,
            )
            return

        subscription = self.subscription_repo.get_by_id(campaign.subscription_id)  # type: ignore[arg-type]
        if subscription is None:
            raise FinalActionError(
                f"Subscription {campaign.subscription_id} not found for cancellation"
            )

        old_status = str(subscription.status)
        now = utc_now()
        self.subscription_repo.update(
            subscription,
            status=SubscriptionStatus.CANCELED.value,
            cancel_at=now,
            canceled_at=now,
            cancellation_reason=CANCELLATION_REASON,
        )
        self.audit_service.log_status_change(
            resource_type="subscription",
            resource_id=subscription.id,  # type: ignore[arg-type]
            workspace_id=subscription.workspace_id,  # type: ignore[arg-type]
            old_status=old_status,
            new_status=SubscriptionStatus.CANCELED.value,
            actor_type=DUNNING_ACTOR,
            actor_id=str(campaign.id),
            metadata={"reason": CANCELLATION_REASON, "campaign_id": str(campaign.id)},
        )
        logger.info(
            "Canceled subscription %s after failed dunning campaign %s",
            subscription.id,
            campaign.id,
        )

    def _record_final_action(self, campaign: DunningCampaign, action: FinalAction) -> None:
        logger.info("Final action %s recorded for dunning campaign %s", action.value, campaign.id)

    def pause_campaign(
        self, campaign_id: UUID, workspace_id: UUID | None = None, actor_type: str = "api"
    ) -> DunningCampaign:
        campaign = self.get_campaign(campaign_id, workspace_id)
        if campaign.status != CampaignStatus.ACTIVE.value:
            raise ValidationError(f"Only active campaigns can be paused (status={campaign.status})")
        campaign = self.campaign_repo.update(
            campaign, status=CampaignStatus.PAUSED.value, next_retry_at=None
        )
        self._log_transition(campaign, CampaignStatus.ACTIVE.value, actor_type=actor_type)
        return campaign

    def resume_campaign(
        self,
        campaign_id: UUID,
        workspace_id: UUID | None = None,
        delay: timedelta | None = None,
        actor_type: str = "api",
    ) -> DunningCampaign:
        campaign = self.get_campaign(campaign_id, workspace_id)
        if campaign.status != CampaignStatus.PAUSED.value:
            raise ValidationError(f"Only paused campaigns can be resumed (status={campaign.status})")
        if delay is None:
            delay = timedelta(hours=settings.DUNNING_RESUME_DELAY_HOURS)
        campaign = self.campaign_repo.update(
            campaign,
            status=CampaignStatus.ACTIVE.value,
            next_retry_at=utc_now() + delay,
        )
        self._log_transition(campaign, CampaignStatus.PAUSED.value, actor_type=actor_type)
        return campaign

    def _log_transition(
        self, campaign: DunningCampaign, old_status: str, actor_type: str = DUNNING_ACTOR
    ) -> None:
        self.audit_service.log_status_change(
            resource_type="dunning_campaign",
            resource_id=campaign.id,  # type: ignore[arg-type]
            workspace_id=campaign.workspace_id,  # type: ignore[arg-type]
            old_status=old_status,
            new_status=str(campaign.status),
            actor_type=actor_type,
        )

    # Attempts

    def create_attempt(
        self,
        campaign_id: UUID,
        attempt_number: int,
        attempt_type: str,
        email_template_id: UUID | None = None,
    ) -> DunningAttempt:
        """Create the pending attempt row for the campaign's next attempt number."""
        campaign = self.get_campaign(campaign_id)
        if attempt_number <= campaign.current_attempt:
            raise ValidationError(
                f"Attempt {attempt_number} must be greater than current attempt "
                f"{campaign.current_attempt}"
            )
        if attempt_number > campaign.max_retry_attempts:
            raise ValidationError(
                f"Attempt {attempt_number} exceeds max_retry_attempts {campaign.max_retry_attempts}"
            )

        # An interrupted run can leave a pending row behind; pick it back up.
        for existing in self.attempt_repo.get_by_campaign(campaign_id):
            if existing.attempt_number != attempt_number:
                continue
            if existing.completed_at is not None:
                raise ValidationError(
                    f"Attempt {attempt_number} of campaign {campaign_id} is already completed"
                )
            logger.warning(
                "Resuming interrupted attempt %d of dunning campaign %s",
                attempt_number,
                campaign_id,
            )
            return self.attempt_repo.update(
                existing, attempt_type=attempt_type, email_template_id=email_template_id
            )

        try:
            return self.attempt_repo.create(
                campaign_id=campaign_id,
                attempt_number=attempt_number,
                attempt_type=attempt_type,
                status=AttemptStatus.PENDING.value,
                started_at=utc_now(),
                email_template_id=email_template_id,
            )
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(
                f"Attempt {attempt_number} of campaign {campaign_id} was created concurrently"
            ) from exc

    def update_attempt_status(
        self,
        attempt_id: UUID,
        status: AttemptStatus | str,
        error: str | None = None,
        **details: Any,
    ) -> DunningAttempt:
        """Complete an attempt. Completed attempts are immutable."""
        attempt = self.attempt_repo.get_by_id(attempt_id)
        if attempt is None:
            raise NotFoundError(f"Dunning attempt {attempt_id} not found")
        if attempt.completed_at is not None:
            raise ValidationError(f"Dunning attempt {attempt_id} is already completed")

        status_value = status.value if isinstance(status, AttemptStatus) else status
        if status_value not in (AttemptStatus.SUCCESS.value, AttemptStatus.FAILED.value):
            raise ValidationError(f"Invalid attempt status: {status_value}")

        metadata = details.pop("metadata", None)
        unknown = set(details) - _ATTEMPT_DETAIL_FIELDS
        if unknown:
            raise ValidationError(f"Unknown attempt fields: {', '.join(sorted(unknown))}")

        fields: dict[str, Any] = {"status": status_value, "completed_at": utc_now(), **details}
        if status_value == AttemptStatus.FAILED.value:
            fields["payment_error"] = error
        if metadata:
            fields["attempt_metadata"] = {**(attempt.attempt_metadata or {}), **metadata}
        return self.attempt_repo.update(attempt, **fields)

    def list_attempts(
        self, campaign_id: UUID, workspace_id: UUID | None = None
    ) -> list[DunningAttempt]:
        self.get_campaign(campaign_id, workspace_id)
        return self.attempt_repo.get_by_campaign(campaign_id)

    # Email templates

    def create_email_template(
        self, workspace_id: UUID, data: DunningEmailTemplateCreate
    ) -> DunningEmailTemplate:
        fields = data.model_dump()
        fields["template_type"] = data.template_type.value
        if not fields["available_variables"]:
            fields["available_variables"] = list(DUNNING_TEMPLATE_VARIABLES)
        template = self.template_repo.create(workspace_id, **fields)
        self.audit_service.log_create(
            resource_type="dunning_email_template",
            resource_id=template.id,  # type: ignore[arg-type]
            workspace_id=workspace_id,
            data={"name": template.name, "template_type": template.template_type},
        )
        return template

    def list_email_templates(
        self, workspace_id: UUID, template_type: str | None = None
    ) -> list[DunningEmailTemplate]:
        return self.template_repo.get_all(workspace_id, template_type)

    def get_email_template(
        self, template_id: UUID, workspace_id: UUID | None = None
    ) -> DunningEmailTemplate:
        template = self.template_repo.get_by_id(template_id, workspace_id)
        if template is None:
            raise NotFoundError(f"Dunning email template {template_id} not found")
        return template

    def resolve_email_template(
        self,
        workspace_id: UUID,
        template_type: EmailTemplateType | str,
        template_id: UUID | None = None,
    ) -> DunningEmailTemplate | dict[str, str]:
        """Pick the template for an email: explicit id, stored by type, then built-in."""
        type_value = (
            template_type.value if isinstance(template_type, EmailTemplateType) else template_type
        )
        if template_id is not None:
            template = self.template_repo.get_by_id(template_id, workspace_id)
            if template is not None and template.is_active:
                return template
            logger.warning(
                "Email template %s unavailable, falling back to %s template",
                template_id,
                type_value,
            )

        stored = self.template_repo.get_active_by_type(workspace_id, type_value)
        if stored is not None:
            return stored
        return DEFAULT_DUNNING_TEMPLATES[type_value]

    # Stats

    def get_campaign_stats(
        self,
        workspace_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
        currency: str = "USD",
        exchange_rates: ExchangeRateService | None = None,
    ) -> DunningCampaignStats:
        """Campaign counts and amounts, converted into ``currency``."""
        counts = self.campaign_repo.status_counts(workspace_id, start, end)
        amounts = self.campaign_repo.amounts_by_currency(workspace_id, start, end)

        currency = currency.upper()
        at_risk = recovered_cents = lost = 0
        if amounts:
            rates = exchange_rates or ExchangeRateService()
            for source, source_at_risk, source_recovered, source_lost in amounts:
                at_risk += rates.convert_cents(source_at_risk, source, currency)
                recovered_cents += rates.convert_cents(source_recovered, source, currency)
                lost += rates.convert_cents(source_lost, source, currency)

        recovered = counts.get(CampaignStatus.RECOVERED.value, 0)
        failed = counts.get(CampaignStatus.FAILED.value, 0)
        finished = recovered + failed
        return DunningCampaignStats(
            total_campaigns=sum(counts.values()),
            active_campaigns=counts.get(CampaignStatus.ACTIVE.value, 0),
            paused_campaigns=counts.get(CampaignStatus.PAUSED.value, 0),
            recovered_campaigns=recovered,
            failed_campaigns=failed,
            recovery_rate=round(recovered / finished, 4) if finished else 0.0,
            total_at_risk_cents=at_risk,
            total_recovered_cents=recovered_cents,
            total_lost_cents=lost,
            currency=currency,
        )
