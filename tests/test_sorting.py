"""Tests for column sorting in repositories, the dunning API and the sorting utility."""

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from recovery.core.database import get_db
from recovery.core.sorting import apply_order_by
from recovery.main import app
from recovery.models.dunning_campaign import DunningCampaign
from recovery.models.shared import utc_now
from recovery.repositories.dunning_campaign_repository import DunningCampaignRepository
from recovery.repositories.dunning_configuration_repository import DunningConfigurationRepository
from tests.conftest import DEFAULT_WORKSPACE_ID, make_campaign, make_configuration, make_subscription


@pytest.fixture
def client():
    """Create test client."""
    return TestClient(app)


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
def campaigns(db_session: Session) -> list[DunningCampaign]:
    """Three campaigns with amounts 300, 100, 200 and staggered retry times."""
    config = make_configuration(db_session)
    now = utc_now()
    return [
        make_campaign(
            db_session,
            config,
            subscription=make_subscription(db_session),
            amount_cents=amount,
            next_retry_at=now + timedelta(hours=hours),
        )
        for amount, hours in ((300, 1), (100, 3), (200, 2))
    ]


# ---------------------------------------------------------------------------
# Unit tests for the apply_order_by utility
# ---------------------------------------------------------------------------


class TestApplyOrderBy:
    """Tests for the core sorting utility function."""

    def _amounts(self, db_session: Session, order_by: str | None, **kwargs) -> list[int]:
        query = db_session.query(DunningCampaign).filter(
            DunningCampaign.workspace_id == DEFAULT_WORKSPACE_ID
        )
        sorted_query = apply_order_by(query, DunningCampaign, order_by, **kwargs)
        return [c.original_amount_cents for c in sorted_query.all()]

    def test_sort_by_valid_field_asc(self, db_session: Session, campaigns):
        assert self._amounts(db_session, "original_amount_cents:asc") == [100, 200, 300]

    def test_sort_by_valid_field_desc(self, db_session: Session, campaigns):
        assert self._amounts(db_session, "original_amount_cents:desc") == [300, 200, 100]

    def test_no_direction_defaults_to_asc(self, db_session: Session, campaigns):
        assert self._amounts(db_session, "next_retry_at") == [300, 200, 100]

    def test_invalid_direction_falls_back_to_default(self, db_session: Session, campaigns):
        """Invalid direction should fall back to default direction (desc)."""
        assert self._amounts(db_session, "original_amount_cents:sideways") == [300, 200, 100]

    def test_invalid_field_falls_back_to_default(self, db_session: Session, campaigns):
        """Invalid field name should fall back to default (created_at)."""
        assert len(self._amounts(db_session, "nonexistent_column:asc")) == 3

    def test_custom_default_field(self, db_session: Session, campaigns):
        """Custom default field should be used when order_by is None."""
        amounts = self._amounts(
            db_session, None, default_field="original_amount_cents", default_direction="asc"
        )
        assert amounts == [100, 200, 300]

    def test_empty_string_uses_default(self, db_session: Session, campaigns):
        # Empty string -> candidate_field = "" -> hasattr(model, "") is False -> default
        assert len(self._amounts(db_session, "")) == 3


# ---------------------------------------------------------------------------
# Repository sorting
# ---------------------------------------------------------------------------


class TestRepositorySorting:
    def test_campaign_repo_sort(self, db_session: Session, campaigns):
        repo = DunningCampaignRepository(db_session)
        result = repo.get_all(DEFAULT_WORKSPACE_ID, order_by="original_amount_cents:asc")
        assert [c.original_amount_cents for c in result] == [100, 200, 300]

    def test_configuration_repo_sort_by_name(self, db_session: Session):
        for name in ("Beta", "Alpha", "Gamma"):
            config = make_configuration(db_session)
            config.name = name
        db_session.commit()

        repo = DunningConfigurationRepository(db_session)
        result = repo.get_all(DEFAULT_WORKSPACE_ID, order_by="name:asc")
        assert [c.name for c in result] == ["Alpha", "Beta", "Gamma"]


# ---------------------------------------------------------------------------
# API integration tests
# ---------------------------------------------------------------------------


class TestCampaignsApiSorting:
    def test_sort_by_amount_ascending(self, client: TestClient, campaigns):
        response = client.get("/v1/dunning/campaigns?order_by=original_amount_cents:asc")
        assert response.status_code == 200
        assert [c["original_amount_cents"] for c in response.json()] == [100, 200, 300]

    def test_sort_with_pagination(self, client: TestClient, campaigns):
        response = client.get(
            "/v1/dunning/campaigns?order_by=original_amount_cents:desc&skip=1&limit=1"
        )
        assert response.status_code == 200
        assert [c["original_amount_cents"] for c in response.json()] == [200]

    def test_invalid_field_returns_results(self, client: TestClient, campaigns):
        response = client.get("/v1/dunning/campaigns?order_by=bogus:asc")
        assert response.status_code == 200
        assert len(response.json()) == 3
