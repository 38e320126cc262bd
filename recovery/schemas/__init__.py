from recovery.schemas.dunning_attempt import DunningAttemptResponse
from recovery.schemas.dunning_campaign import (
    BatchResult,
    CampaignOutcome,
    DunningCampaignCreate,
    DunningCampaignDetail,
    DunningCampaignResponse,
    DunningCampaignStats,
)
from recovery.schemas.dunning_configuration import (
    AttemptActionSchema,
    DunningConfigurationCreate,
    DunningConfigurationResponse,
    DunningPolicy,
)
from recovery.schemas.dunning_email_template import (
    DunningEmailTemplateCreate,
    DunningEmailTemplateResponse,
)
from recovery.schemas.payment_failure import (
    DetectionError,
    DetectionResult,
    PaymentFailureWebhookRequest,
)

__all__ = [
    "AttemptActionSchema",
    "BatchResult",
    "CampaignOutcome",
    "DetectionError",
    "DetectionResult",
    "DunningAttemptResponse",
    "DunningCampaignCreate",
    "DunningCampaignDetail",
    "DunningCampaignResponse",
    "DunningCampaignStats",
    "DunningConfigurationCreate",
    "DunningConfigurationResponse",
    "DunningEmailTemplateCreate",
    "DunningEmailTemplateResponse",
    "DunningPolicy",
    "PaymentFailureWebhookRequest",
]
