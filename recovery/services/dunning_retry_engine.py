"""Periodic engine that advances due dunning campaigns.

State machine per campaign run:

    active --attempt succeeds--------------> recovered
    active --attempt fails, attempts left--> active (counter advanced, rescheduled)
    active --attempt fails, exhausted------> failed (final action runs once)
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.orm import Session

from recovery.core.config import settings
from recovery.core.exceptions import ValidationError
from recovery.models.dunning_attempt import AttemptStatus
from recovery.models.dunning_campaign import CampaignStatus, DunningCampaign
from recovery.models.dunning_configuration import ActionKind, FinalAction
from recovery.models.dunning_email_template import EmailTemplateType
from recovery.models.shared import utc_now
from recovery.models.subscription import SubscriptionStatus
from recovery.repositories.payment_repository import PaymentRepository
from recovery.repositories.workspace_repository import WorkspaceRepository
from recovery.schemas.dunning_campaign import BatchResult, CampaignOutcome, DunningCampaignDetail
from recovery.schemas.dunning_configuration import AttemptActionSchema, DunningPolicy
from recovery.schemas.payment_failure import DetectionError, DetectionResult
from recovery.services.dunning_service import DunningService
from recovery.services.email_service import EmailService, build_dunning_context
from recovery.services.payment_client import PaymentClient, PaymentRequest, get_payment_client
from recovery.services.payment_failure_detector import PaymentFailureDetector

logger = logging.getLogger(__name__)

NO_PAYMENT_CLIENT = "payment client not configured"
NO_PAYMENT_ACTION = "no payment retry configured for attempt"


@dataclass
class AttemptRun:
    """Mutable state shared by the action handlers of a single attempt."""

    campaign: DunningCampaignDetail
    policy: DunningPolicy
    attempt_number: int
    entry: AttemptActionSchema
    is_last: bool
    next_retry_at: datetime | None
    payment_retried: bool = False
    payment_success: bool = False
    payment_error: str | None = None
    transaction_reference: str | None = None
    communication_sent: bool = False
    communication_error: str | None = None
    emails_sent: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


def email_template_type(attempt_number: int, is_last: bool) -> EmailTemplateType:
    if is_last or attempt_number >= 3:
        return EmailTemplateType.FINAL_NOTICE
    if attempt_number == 2:
        return EmailTemplateType.ATTEMPT_2
    return EmailTemplateType.ATTEMPT_1


class DunningRetryEngine:
    """Runs the configured actions for every campaign whose retry is due."""

    def __init__(
        self,
        db: Session,
        dunning_service: DunningService | None = None,
        email_service: EmailService | None = None,
        payment_client: PaymentClient | None = None,
        detector: PaymentFailureDetector | None = None,
    ):
        self.db = db
        self.dunning_service = dunning_service or DunningService(db)
        self.email_service = email_service or EmailService()
        self.payment_client = payment_client or get_payment_client()
        self.detector = detector or PaymentFailureDetector(db, self.dunning_service)
        self.payment_repo = PaymentRepository(db)
        self.workspace_repo = WorkspaceRepository(db)
        self._action_handlers: dict[ActionKind, Callable[[AttemptRun], Awaitable[None]]] = {
            ActionKind.RETRY_PAYMENT: self._retry_payment,
            ActionKind.EMAIL: self._send_attempt_email,
            ActionKind.IN_APP: self._notify_in_app,
        }

    async def process_due_campaigns(
        self,
        limit: int | None = None,
        deadline: datetime | None = None,
    ) -> BatchResult:
        """Process up to ``limit`` due campaigns, oldest ``next_retry_at`` first.

        A failure in one campaign is recorded as an ``error`` outcome and the
        batch continues. Once ``deadline`` passes no further campaigns are
        started; the remainder are reported as ``deferred``.
        """
        limit = limit or settings.DUNNING_BATCH_LIMIT
        campaigns = self.dunning_service.campaign_repo.get_due_for_retry(utc_now(), limit)
        campaign_ids = [campaign.id for campaign in campaigns]
        result = BatchResult()

        for index, campaign in enumerate(campaigns):
            if deadline is not None and utc_now() >= deadline:
                for deferred_id in campaign_ids[index:]:
                    result.outcomes.append(
                        CampaignOutcome(campaign_id=deferred_id, status="deferred")  # type: ignore[arg-type]
                    )
                logger.warning(
                    "Dunning batch deadline reached, deferring %d campaigns",
                    len(campaign_ids) - index,
                )
                break

            campaign_id = campaign_ids[index]
            try:
                outcome = await self.process_campaign(campaign)
            except Exception as exc:
                self.db.rollback()
                logger.exception("Error processing dunning campaign %s", campaign_id)
                outcome = CampaignOutcome(
                    campaign_id=campaign_id,  # type: ignore[arg-type]
                    status="error",
                    error=str(exc) or exc.__class__.__name__,
                )
            result.outcomes.append(outcome)

        logger.info(
            "Processed %d dunning campaigns: %d recovered, %d retried, %d failed, "
            "%d errors, %d deferred",
            result.total,
            result.recovered,
            result.retried,
            result.failed,
            result.errors,
            result.deferred,
        )
        return result

    async def process_campaign(self, campaign: DunningCampaign) -> CampaignOutcome:
        detail = self.dunning_service.get_campaign_detail(campaign.id)  # type: ignore[arg-type]
        if detail.status != CampaignStatus.ACTIVE.value:
            raise ValidationError(f"Campaign {detail.id} is {detail.status}, not active")

        configuration = self.dunning_service.get_configuration(detail.configuration_id)
        policy = self.dunning_service.get_policy(configuration)

        attempt_number = detail.current_attempt + 1
        entry = policy.actions_for(attempt_number)
        is_last = attempt_number >= detail.max_retry_attempts
        run = AttemptRun(
            campaign=detail,
            policy=policy,
            attempt_number=attempt_number,
            entry=entry,
            is_last=is_last,
            next_retry_at=None if is_last else utc_now() + self.retry_delay(policy, attempt_number),
        )

        attempt = self.dunning_service.create_attempt(
            detail.id,
            attempt_number,
            "+".join(action.value for action in entry.actions),
            entry.email_template_id,
        )

        for action in entry.actions:
            await self._action_handlers[action](run)
        if ActionKind.RETRY_PAYMENT not in entry.actions:
            run.payment_error = NO_PAYMENT_ACTION

        self.dunning_service.update_attempt_status(
            attempt.id,  # type: ignore[arg-type]
            AttemptStatus.SUCCESS if run.payment_success else AttemptStatus.FAILED,
            error=run.payment_error,
            transaction_reference=run.transaction_reference,
            communication_sent=run.communication_sent,
            communication_error=run.communication_error,
            metadata=run.metadata,
        )

        if run.payment_success:
            self.dunning_service.recover_campaign(
                detail.id, detail.original_amount_cents, attempt_number=attempt_number
            )
            run.emails_sent += await self._send_notice(run, EmailTemplateType.RECOVERY_SUCCESS)
            return self._outcome(run, "recovered")

        if is_last:
            self.dunning_service.fail_campaign(
                detail.id, policy.final_action, attempt_number=attempt_number
            )
            if policy.final_action == FinalAction.CANCEL and self._subscription_canceled(detail):
                run.emails_sent += await self._send_notice(run, EmailTemplateType.CANCELLATION)
            return self._outcome(run, "failed")

        self.dunning_service.advance_campaign(detail.id, attempt_number, run.next_retry_at)  # type: ignore[arg-type]
        logger.info(
            "Dunning campaign %s attempt %d failed (%s); next retry at %s",
            detail.id,
            attempt_number,
            run.payment_error,
            run.next_retry_at,
        )
        return self._outcome(run, "retried")

    def _outcome(self, run: AttemptRun, status: str) -> CampaignOutcome:
        return CampaignOutcome(
            campaign_id=run.campaign.id,
            status=status,  # type: ignore[arg-type]
            attempt_number=run.attempt_number,
            next_retry_at=run.next_retry_at if status == "retried" else None,
            payment_retried=run.payment_retried,
            emails_sent=run.emails_sent,
            error=run.payment_error if status != "recovered" else None,
        )

    def retry_delay(self, policy: DunningPolicy, attempt_number: int) -> timedelta:
        """Delay after a failed attempt, from ``retry_interval_days[attempt_number - 1]``."""
        intervals = policy.retry_interval_days
        if not intervals:
            logger.warning("retry_interval_days is empty; retrying in 1 day")
            return timedelta(days=1)
        index = attempt_number - 1
        if index >= len(intervals):
            logger.warning(
                "No retry interval for attempt %d; reusing last interval of %d days",
                attempt_number,
                intervals[-1],
            )
            return timedelta(days=intervals[-1])
        return timedelta(days=intervals[index])

    # Action handlers

    async def _retry_payment(self, run: AttemptRun) -> None:
        campaign = run.campaign
        if self.payment_client is None:
            logger.warning("No payment client configured; cannot retry campaign %s", campaign.id)
            run.payment_error = NO_PAYMENT_CLIENT
            return

        request = PaymentRequest(
            campaign_id=campaign.id,
            customer_id=campaign.customer_id,
            amount_cents=campaign.original_amount_cents,
            currency=campaign.currency,
            attempt_number=run.attempt_number,
            subscription_id=campaign.subscription_id,
            payment_id=campaign.payment_id,
        )
        run.payment_retried = True
        try:
            result = self.payment_client.process_payment(request)
        except Exception as exc:
            logger.warning("Payment retry failed for campaign %s: %s", campaign.id, exc)
            run.payment_error = str(exc) or exc.__class__.__name__
            return

        run.transaction_reference = result.transaction_reference
        run.metadata["payment_status"] = result.status
        if result.resource_usage:
            run.metadata["resource_usage"] = result.resource_usage
        if result.block_reference:
            run.metadata["block_reference"] = result.block_reference

        if result.is_success:
            run.payment_success = True
            run.payment_error = None
        else:
            run.payment_error = f"Payment status: {result.status}"

    async def _send_attempt_email(self, run: AttemptRun) -> None:
        campaign = run.campaign
        if not campaign.customer_email:
            logger.warning(
                "Customer %s has no email, skipping dunning email for campaign %s",
                campaign.customer_id,
                campaign.id,
            )
            run.communication_error = "customer has no email address"
            return

        template = self.dunning_service.resolve_email_template(
            campaign.workspace_id,
            email_template_type(run.attempt_number, run.is_last),
            run.entry.email_template_id,
        )
        try:
            await self.email_service.send_dunning_email(
                template, self._email_context(run), campaign.customer_email
            )
        except Exception as exc:
            logger.warning("Dunning email failed for campaign %s: %s", campaign.id, exc)
            run.communication_error = str(exc) or exc.__class__.__name__
            return
        run.communication_sent = True
        run.emails_sent += 1

    async def _notify_in_app(self, run: AttemptRun) -> None:
        logger.info(
            "In-app dunning notice for customer %s (campaign %s, attempt %d)",
            run.campaign.customer_id,
            run.campaign.id,
            run.attempt_number,
        )
        run.metadata["in_app_notified"] = True

    async def _send_notice(self, run: AttemptRun, template_type: EmailTemplateType) -> int:
        """Send a best-effort closing email; returns the number of emails sent."""
        campaign = run.campaign
        if not campaign.customer_email:
            return 0
        try:
            template = self.dunning_service.resolve_email_template(
                campaign.workspace_id, template_type
            )
            await self.email_service.send_dunning_email(
                template, self._email_context(run), campaign.customer_email
            )
        except Exception as exc:
            logger.warning(
                "%s email failed for campaign %s: %s", template_type.value, campaign.id, exc
            )
            return 0
        return 1

    def _subscription_canceled(self, campaign: DunningCampaignDetail) -> bool:
        if campaign.subscription_id is None:
            return False
        subscription = self.dunning_service.subscription_repo.get_by_id(campaign.subscription_id)
        return (
            subscription is not None
            and subscription.status == SubscriptionStatus.CANCELED.value
        )

    def _email_context(self, run: AttemptRun) -> dict[str, Any]:
        campaign = run.campaign
        workspace = self.workspace_repo.get_by_id(campaign.workspace_id)
        return build_dunning_context(
            customer_name=campaign.customer_name,
            customer_email=campaign.customer_email,
            amount_cents=campaign.original_amount_cents,
            currency=campaign.currency,
            product_name=campaign.product_name,
            retry_date=run.next_retry_at,
            attempts_remaining=campaign.max_retry_attempts - run.attempt_number,
            campaign_id=campaign.id,
            customer_id=campaign.customer_id,
            support_email=workspace.support_email if workspace else None,  # type: ignore[arg-type]
            merchant_name=workspace.name if workspace else None,  # type: ignore[arg-type]
        )

    # Monitoring

    def monitor_failed_payments(self, lookback: timedelta) -> DetectionResult:
        """Open campaigns for recent failed payments that nothing is chasing yet.

        Payments billed to a subscription open a subscription campaign, so a
        failure seen both as a payment and as a subscription event is chased
        once.
        """
        result = DetectionResult()
        for payment in self.payment_repo.get_failed_since(utc_now() - lookback):
            result.failures_found += 1
            try:
                if payment.subscription_id is not None:
                    self.detector.process_failed_subscription_payment(payment, result)
                else:
                    self.detector.process_failed_payment(payment, result)
            except Exception as exc:
                self.db.rollback()
                logger.exception("Failed to open campaign for payment %s", payment.id)
                result.errors.append(DetectionError(source_id=payment.id, message=str(exc)))  # type: ignore[arg-type]

        logger.info(
            "Monitored %d failed payments: %d campaigns created, %d skipped, %d errors",
            result.failures_found,
            result.campaigns_created,
            result.campaigns_skipped,
            len(result.errors),
        )
        return result

    def monitor_failed_subscriptions(self, lookback: timedelta) -> DetectionResult:
        return self.detector.detect_and_create_campaigns(lookback)
