"""Turn failed subscription events and failed payments into dunning campaigns."""

import logging
from datetime import timedelta
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from recovery.core.exceptions import DuplicateCampaignError, NotFoundError
from recovery.models.dunning_configuration import DEFAULT_RETRY_INTERVAL_DAYS, DunningConfiguration
from recovery.models.payment import Payment
from recovery.models.shared import utc_now
from recovery.models.subscription_event import SubscriptionEvent, SubscriptionEventType
from recovery.repositories.customer_repository import CustomerRepository
from recovery.repositories.dunning_configuration_repository import DunningConfigurationRepository
from recovery.repositories.payment_repository import PaymentRepository
from recovery.repositories.price_repository import PriceRepository
from recovery.repositories.subscription_event_repository import SubscriptionEventRepository
from recovery.repositories.subscription_repository import SubscriptionRepository
from recovery.schemas.dunning_campaign import DunningCampaignCreate
from recovery.schemas.dunning_configuration import DunningConfigurationCreate
from recovery.schemas.payment_failure import DetectionError, DetectionResult
from recovery.services.dunning_service import DunningService

logger = logging.getLogger(__name__)

DEFAULT_CONFIGURATION_NAME = "Default Auto-Created Configuration"
DEFAULT_TRIGGER_REASON = "Payment failed - subscription event"
DEFAULT_PAYMENT_TRIGGER_REASON = "Payment failed"

PREMIUM_AMOUNT_CENTS = 10000
MIN_HISTORY_FOR_SCORING = 3


def classify_strategy(successes: int, failures: int, amount_cents: int) -> str:
    """Label a failure by the customer's payment history.

    The label is informational: it is stored on the campaign and logged, and
    does not change the retry schedule.
    """
    total = successes + failures
    if total == 0 or total < MIN_HISTORY_FOR_SCORING:
        return "new_customer"
    success_rate = successes / total
    if success_rate >= 0.9 and amount_cents >= PREMIUM_AMOUNT_CENTS:
        return "premium"
    if success_rate >= 0.8:
        return "standard"
    if success_rate >= 0.5:
        return "cautious"
    return "high_risk"


class PaymentFailureDetector:
    """Detects payment failures and opens one campaign per failed target."""

    def __init__(self, db: Session, dunning_service: DunningService | None = None):
        self.db = db
        self.dunning_service = dunning_service or DunningService(db)
        self.event_repo = SubscriptionEventRepository(db)
        self.subscription_repo = SubscriptionRepository(db)
        self.customer_repo = CustomerRepository(db)
        self.price_repo = PriceRepository(db)
        self.payment_repo = PaymentRepository(db)
        self.config_repo = DunningConfigurationRepository(db)

    def detect_and_create_campaigns(self, lookback: timedelta) -> DetectionResult:
        """Open campaigns for failed subscription events within the lookback window.

        Each event is handled independently; only the initial listing can raise.
        """
        result = DetectionResult()
        events = self.event_repo.get_failures_since(utc_now() - lookback)
        result.failures_found = len(events)

        for event in events:
            try:
                self.process_failed_event(event, result)
            except Exception as exc:
                self.db.rollback()
                logger.exception("Failed to process subscription event %s", event.id)
                result.errors.append(DetectionError(source_id=event.id, message=str(exc)))  # type: ignore[arg-type]

        logger.info(
            "Detected %d failed subscription events: %d campaigns created, %d skipped, %d errors",
            result.failures_found,
            result.campaigns_created,
            result.campaigns_skipped,
            len(result.errors),
        )
        return result

    def process_failed_event(self, event: SubscriptionEvent, result: DetectionResult) -> None:
        subscription = self.subscription_repo.get_by_id(event.subscription_id)  # type: ignore[arg-type]
        if subscription is None:
            raise NotFoundError(f"Subscription {event.subscription_id} not found")
        customer = self.customer_repo.get_by_id(subscription.customer_id)  # type: ignore[arg-type]
        if customer is None:
            raise NotFoundError(f"Customer {subscription.customer_id} not found")
        price = self.price_repo.get_by_id(subscription.price_id)  # type: ignore[arg-type]
        if price is None:
            raise NotFoundError(f"Price {subscription.price_id} not found")

        if self._source_used(subscription.id, "source_event_id", event.id):  # type: ignore[arg-type]
            logger.debug("Subscription event %s already opened a campaign", event.id)
            result.campaigns_skipped += 1
            return
        if self.has_open_campaign_for_subscription(subscription.id):  # type: ignore[arg-type]
            logger.debug("Subscription %s already has an open campaign", subscription.id)
            result.campaigns_skipped += 1
            return

        workspace_id: UUID = subscription.workspace_id  # type: ignore[assignment]
        configuration = self.get_or_create_default_configuration(workspace_id)
        amount_cents = int(price.unit_amount_cents)  # type: ignore[arg-type]
        strategy = self.determine_subscription_strategy(subscription.id, amount_cents)  # type: ignore[arg-type]

        params = DunningCampaignCreate(
            configuration_id=configuration.id,  # type: ignore[arg-type]
            subscription_id=subscription.id,  # type: ignore[arg-type]
            workspace_id=workspace_id,
            customer_id=customer.id,  # type: ignore[arg-type]
            original_amount_cents=amount_cents,
            currency=str(price.currency),
            trigger_reason=event.error_message or DEFAULT_TRIGGER_REASON,
            strategy=strategy,
            metadata={"source_event_id": str(event.id), "event_type": event.event_type},
        )
        self._create(params, result)

    def process_failed_subscription_payment(self, payment: Payment, result: DetectionResult) -> None:
        """Open a subscription campaign for a failed payment billed to a subscription.

        Keyed on the subscription so the event detector and the payment monitor
        never chase the same failure twice.
        """
        subscription = self.subscription_repo.get_by_id(payment.subscription_id)  # type: ignore[arg-type]
        if subscription is None:
            raise NotFoundError(f"Subscription {payment.subscription_id} not found")

        if self._source_used(subscription.id, "source_payment_id", payment.id):  # type: ignore[arg-type]
            logger.debug("Payment %s already opened a campaign", payment.id)
            result.campaigns_skipped += 1
            return
        if self.has_open_campaign_for_subscription(subscription.id):  # type: ignore[arg-type]
            logger.debug("Subscription %s already has an open campaign", subscription.id)
            result.campaigns_skipped += 1
            return

        workspace_id: UUID = subscription.workspace_id  # type: ignore[assignment]
        configuration = self.get_or_create_default_configuration(workspace_id)
        amount_cents = int(payment.amount_cents)  # type: ignore[arg-type]
        strategy = self.determine_subscription_strategy(subscription.id, amount_cents)  # type: ignore[arg-type]

        params = DunningCampaignCreate(
            configuration_id=configuration.id,  # type: ignore[arg-type]
            subscription_id=subscription.id,  # type: ignore[arg-type]
            workspace_id=workspace_id,
            customer_id=subscription.customer_id,  # type: ignore[arg-type]
            original_amount_cents=amount_cents,
            currency=str(payment.currency),
            trigger_reason=payment.error_message or DEFAULT_PAYMENT_TRIGGER_REASON,
            strategy=strategy,
            metadata={"source_payment_id": str(payment.id)},
        )
        self._create(params, result)

    def process_failed_payment(self, payment: Payment, result: DetectionResult) -> None:
        """Open a campaign for a failed one-off payment."""
        campaign_repo = self.dunning_service.campaign_repo
        if campaign_repo.get_by_payment(payment.id):  # type: ignore[arg-type]
            logger.debug("Payment %s already has a campaign", payment.id)
            result.campaigns_skipped += 1
            return

        workspace_id: UUID = payment.workspace_id  # type: ignore[assignment]
        configuration = self.get_or_create_default_configuration(workspace_id)
        amount_cents = int(payment.amount_cents)  # type: ignore[arg-type]
        strategy = self.determine_payment_strategy(payment.customer_id, amount_cents)  # type: ignore[arg-type]

        params = DunningCampaignCreate(
            configuration_id=configuration.id,  # type: ignore[arg-type]
            payment_id=payment.id,  # type: ignore[arg-type]
            workspace_id=workspace_id,
            customer_id=payment.customer_id,  # type: ignore[arg-type]
            original_amount_cents=amount_cents,
            currency=str(payment.currency),
            trigger_reason=payment.error_message or DEFAULT_PAYMENT_TRIGGER_REASON,
            strategy=strategy,
            metadata={"source_payment_id": str(payment.id)},
        )
        self._create(params, result)

    def _create(self, params: DunningCampaignCreate, result: DetectionResult) -> None:
        try:
            campaign = self.dunning_service.create_campaign(params)
        except DuplicateCampaignError:
            logger.info(
                "Campaign for %s was opened concurrently; skipping",
                params.subscription_id or params.payment_id,
            )
            result.campaigns_skipped += 1
            return
        result.campaigns_created += 1
        result.created_campaign_ids.append(campaign.id)  # type: ignore[arg-type]

    def has_open_campaign_for_subscription(self, subscription_id: UUID) -> bool:
        """True when the subscription, or any of its payments, is already being chased."""
        campaign_repo = self.dunning_service.campaign_repo
        if campaign_repo.get_open_for_subscription(subscription_id) is not None:
            return True
        return campaign_repo.get_open_for_subscription_payments(subscription_id) is not None

    def _source_used(self, subscription_id: UUID, key: str, source_id: UUID) -> bool:
        # Closed campaigns count too: a failure opens at most one campaign.
        return any(
            (campaign.campaign_metadata or {}).get(key) == str(source_id)
            for campaign in self.dunning_service.campaign_repo.get_by_subscription(subscription_id)
        )

    def determine_subscription_strategy(self, subscription_id: UUID, amount_cents: int) -> str:
        try:
            successes, failures = self.event_repo.count_outcomes(subscription_id)
        except Exception:
            logger.exception(
                "Could not load payment history for subscription %s; using standard strategy",
                subscription_id,
            )
            return "standard"
        strategy = classify_strategy(successes, failures, amount_cents)
        logger.info(
            "Subscription %s strategy %s (%d successes, %d failures)",
            subscription_id,
            strategy,
            successes,
            failures,
        )
        return strategy

    def determine_payment_strategy(self, customer_id: UUID, amount_cents: int) -> str:
        try:
            successes, failures = self.payment_repo.count_outcomes_for_customer(customer_id)
        except Exception:
            logger.exception(
                "Could not load payment history for customer %s; using standard strategy",
                customer_id,
            )
            return "standard"
        return classify_strategy(successes, failures, amount_cents)

    def get_or_create_default_configuration(self, workspace_id: UUID) -> DunningConfiguration:
        """Return the default (or first active) configuration, creating one if none exist."""
        configuration = self.config_repo.get_default(workspace_id)
        if configuration is not None:
            return configuration
        configuration = self.config_repo.get_first_active(workspace_id)
        if configuration is not None:
            return configuration

        logger.info("Creating default dunning configuration for workspace %s", workspace_id)
        return self.dunning_service.create_configuration(
            workspace_id,
            DunningConfigurationCreate(
                name=DEFAULT_CONFIGURATION_NAME,
                description="Created automatically when the first payment failure was detected",
                max_retry_attempts=4,
                retry_interval_days=list(DEFAULT_RETRY_INTERVAL_DAYS),
                grace_period_hours=24,
                is_active=True,
                is_default=True,
            ),
        )

    def process_failed_payment_webhook(
        self,
        workspace_id: UUID,
        subscription_id: UUID,
        failure_data: dict[str, Any],
    ) -> DetectionResult:
        """Record a processor-reported failure as an event and open a campaign for it."""
        subscription = self.subscription_repo.get_by_id(subscription_id, workspace_id)
        if subscription is None:
            raise NotFoundError(f"Subscription {subscription_id} not found")
        price = self.price_repo.get_by_id(subscription.price_id)  # type: ignore[arg-type]
        if price is None:
            raise NotFoundError(f"Price {subscription.price_id} not found")

        now = utc_now()
        error_message = failure_data.get("error_message") or failure_data.get("reason")
        event = self.event_repo.create(
            subscription_id=subscription.id,
            event_type=SubscriptionEventType.FAILED_REDEMPTION.value,
            amount_cents=price.unit_amount_cents,
            error_message=str(error_message) if error_message else None,
            occurred_at=now,
            event_metadata={
                "webhook_source": "payment_processor",
                "failure_data": failure_data,
                "processed_at": now.isoformat(),
            },
        )

        result = DetectionResult(failures_found=1)
        self.process_failed_event(event, result)
        return result
