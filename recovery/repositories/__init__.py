from recovery.repositories.audit_log_repository import AuditLogRepository
from recovery.repositories.customer_repository import CustomerRepository
from recovery.repositories.dunning_attempt_repository import DunningAttemptRepository
from recovery.repositories.dunning_campaign_repository import DunningCampaignRepository
from recovery.repositories.dunning_configuration_repository import (
    DunningConfigurationRepository,
)
from recovery.repositories.dunning_email_template_repository import (
    DunningEmailTemplateRepository,
)
from recovery.repositories.payment_repository import PaymentRepository
from recovery.repositories.price_repository import PriceRepository
from recovery.repositories.subscription_event_repository import SubscriptionEventRepository
from recovery.repositories.subscription_repository import SubscriptionRepository
from recovery.repositories.workspace_repository import WorkspaceRepository

__all__ = [
    "AuditLogRepository",
    "CustomerRepository",
    "DunningAttemptRepository",
    "DunningCampaignRepository",
    "DunningConfigurationRepository",
    "DunningEmailTemplateRepository",
    "PaymentRepository",
    "PriceRepository",
    "SubscriptionEventRepository",
    "SubscriptionRepository",
    "WorkspaceRepository",
]
