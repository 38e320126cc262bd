"""Dunning API endpoints."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from recovery.core.auth import get_current_workspace
from recovery.core.database import get_db
from recovery.core.exceptions import DunningError
from recovery.models.dunning_attempt import DunningAttempt
from recovery.models.dunning_campaign import CampaignStatus, DunningCampaign
from recovery.models.dunning_configuration import DunningConfiguration
from recovery.models.dunning_email_template import DunningEmailTemplate, EmailTemplateType
from recovery.schemas.dunning_attempt import DunningAttemptResponse
from recovery.schemas.dunning_campaign import (
    BatchResult,
    DunningCampaignDetail,
    DunningCampaignResponse,
    DunningCampaignStats,
)
from recovery.schemas.dunning_configuration import (
    DunningConfigurationCreate,
    DunningConfigurationResponse,
)
from recovery.schemas.dunning_email_template import (
    DunningEmailTemplateCreate,
    DunningEmailTemplateResponse,
)
from recovery.services.dunning_retry_engine import DunningRetryEngine
from recovery.services.dunning_service import DunningService

router = APIRouter()


def _http_error(exc: DunningError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


@router.post(
    "/configurations",
    response_model=DunningConfigurationResponse,
    status_code=201,
    summary="Create dunning configuration",
    responses={
        409: {"description": "A default configuration was created concurrently"},
        422: {"description": "Validation error"},
    },
)
async def create_configuration(
    data: DunningConfigurationCreate,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> DunningConfiguration:
    """Create a dunning configuration. A new default replaces the previous one."""
    try:
        return DunningService(db).create_configuration(workspace_id, data)
    except DunningError as e:
        raise _http_error(e) from e


@router.get(
    "/configurations",
    response_model=list[DunningConfigurationResponse],
    summary="List dunning configurations",
)
async def list_configurations(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> list[DunningConfiguration]:
    return DunningService(db).list_configurations(workspace_id, skip=skip, limit=limit)


@router.get(
    "/configurations/{configuration_id}",
    response_model=DunningConfigurationResponse,
    summary="Get dunning configuration",
    responses={404: {"description": "Dunning configuration not found"}},
)
async def get_configuration(
    configuration_id: UUID,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> DunningConfiguration:
    try:
        return DunningService(db).get_configuration(configuration_id, workspace_id)
    except DunningError as e:
        raise _http_error(e) from e


@router.get(
    "/campaigns",
    response_model=list[DunningCampaignResponse],
    summary="List dunning campaigns",
)
async def list_campaigns(
    status: CampaignStatus | None = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    order_by: str | None = Query(default=None),
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> list[DunningCampaign]:
    """List dunning campaigns with optional status filter."""
    return DunningService(db).list_campaigns(
        workspace_id,
        status=status.value if status else None,
        skip=skip,
        limit=limit,
        order_by=order_by,
    )


@router.get(
    "/campaigns/{campaign_id}",
    response_model=DunningCampaignDetail,
    summary="Get dunning campaign",
    responses={404: {"description": "Dunning campaign not found"}},
)
async def get_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> DunningCampaignDetail:
    try:
        return DunningService(db).get_campaign_detail(campaign_id, workspace_id)
    except DunningError as e:
        raise _http_error(e) from e


@router.get(
    "/campaigns/{campaign_id}/attempts",
    response_model=list[DunningAttemptResponse],
    summary="List campaign attempts",
    responses={404: {"description": "Dunning campaign not found"}},
)
async def list_campaign_attempts(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> list[DunningAttempt]:
    try:
        return DunningService(db).list_attempts(campaign_id, workspace_id)
    except DunningError as e:
        raise _http_error(e) from e


@router.post(
    "/campaigns/{campaign_id}/pause",
    response_model=DunningCampaignResponse,
    summary="Pause dunning campaign",
    responses={
        404: {"description": "Dunning campaign not found"},
        422: {"description": "Campaign is not active"},
    },
)
async def pause_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> DunningCampaign:
    try:
        return DunningService(db).pause_campaign(campaign_id, workspace_id)
    except DunningError as e:
        raise _http_error(e) from e


@router.post(
    "/campaigns/{campaign_id}/resume",
    response_model=DunningCampaignResponse,
    summary="Resume dunning campaign",
    responses={
        404: {"description": "Dunning campaign not found"},
        422: {"description": "Campaign is not paused"},
    },
)
async def resume_campaign(
    campaign_id: UUID,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> DunningCampaign:
    """Resume a paused campaign; the next retry is scheduled after the resume delay."""
    try:
        return DunningService(db).resume_campaign(campaign_id, workspace_id)
    except DunningError as e:
        raise _http_error(e) from e


@router.post(
    "/email_templates",
    response_model=DunningEmailTemplateResponse,
    status_code=201,
    summary="Create dunning email template",
    responses={422: {"description": "Validation error"}},
)
async def create_email_template(
    data: DunningEmailTemplateCreate,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> DunningEmailTemplate:
    return DunningService(db).create_email_template(workspace_id, data)


@router.get(
    "/email_templates",
    response_model=list[DunningEmailTemplateResponse],
    summary="List dunning email templates",
)
async def list_email_templates(
    template_type: EmailTemplateType | None = None,
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> list[DunningEmailTemplate]:
    return DunningService(db).list_email_templates(
        workspace_id, template_type.value if template_type else None
    )


@router.get(
    "/stats",
    response_model=DunningCampaignStats,
    summary="Dunning campaign statistics",
    responses={503: {"description": "Exchange rate unavailable"}},
)
async def get_stats(
    start: datetime | None = None,
    end: datetime | None = None,
    currency: str = Query(default="USD", min_length=3, max_length=3),
    db: Session = Depends(get_db),
    workspace_id: UUID = Depends(get_current_workspace),
) -> DunningCampaignStats:
    """Campaign counts and amounts for campaigns started in the period."""
    try:
        return DunningService(db).get_campaign_stats(workspace_id, start, end, currency)
    except DunningError as e:
        raise _http_error(e) from e


@router.post(
    "/process",
    response_model=BatchResult,
    summary="Process due dunning campaigns",
)
async def process_due_campaigns(
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> BatchResult:
    """Run one batch of due campaigns immediately instead of waiting for the worker."""
    engine = DunningRetryEngine(db)
    return await engine.process_due_campaigns(limit=limit)
