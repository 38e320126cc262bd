"""Dunning error taxonomy.

All errors derive from ``ValueError`` so callers that only distinguish
"bad input / missing row" from unexpected failures keep working.
"""

from typing import Any


class DunningError(ValueError):
    """Base dunning error carrying an HTTP status and context for API responses."""

    status_code = 400
    error_code = "DUNNING_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class NotFoundError(DunningError):
    """A directly requested entity does not exist."""

    status_code = 404
    error_code = "NOT_FOUND"


class ValidationError(DunningError):
    """Malformed input to a creation or transition operation."""

    status_code = 422
    error_code = "VALIDATION_ERROR"


class DuplicateCampaignError(DunningError):
    """An active or paused campaign already covers the subscription/payment."""

    status_code = 409
    error_code = "DUPLICATE_CAMPAIGN"

    def __init__(self, message: str, existing_campaign_id: Any = None):
        context = {}
        if existing_campaign_id is not None:
            context["existing_campaign_id"] = str(existing_campaign_id)
        super().__init__(message, context=context)
        self.existing_campaign_id = existing_campaign_id


class ConflictError(DunningError):
    """A concurrent writer violated a uniqueness guard."""

    status_code = 409
    error_code = "CONFLICT"


class FinalActionError(DunningError):
    """The terminal side effect of a failed campaign could not be carried out."""

    status_code = 500
    error_code = "FINAL_ACTION_FAILED"
