from recovery.models.audit_log import AuditLog
from recovery.models.customer import Customer
from recovery.models.dunning_attempt import AttemptStatus, DunningAttempt
from recovery.models.dunning_campaign import (
    OPEN_CAMPAIGN_STATUSES,
    CampaignStatus,
    DunningCampaign,
)
from recovery.models.dunning_configuration import ActionKind, DunningConfiguration, FinalAction
from recovery.models.dunning_email_template import DunningEmailTemplate, EmailTemplateType
from recovery.models.payment import Payment, PaymentStatus
from recovery.models.price import Price
from recovery.models.subscription import Subscription, SubscriptionStatus
from recovery.models.subscription_event import SubscriptionEvent, SubscriptionEventType
from recovery.models.workspace import Workspace

__all__ = [
    "ActionKind",
    "AttemptStatus",
    "AuditLog",
    "CampaignStatus",
    "Customer",
    "DunningAttempt",
    "DunningCampaign",
    "DunningConfiguration",
    "DunningEmailTemplate",
    "EmailTemplateType",
    "FinalAction",
    "OPEN_CAMPAIGN_STATUSES",
    "Payment",
    "PaymentStatus",
    "Price",
    "Subscription",
    "SubscriptionEvent",
    "SubscriptionEventType",
    "SubscriptionStatus",
    "Workspace",
]
