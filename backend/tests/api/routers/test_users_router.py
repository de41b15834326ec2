"""Tests for the account (usage and credits) router."""

from datetime import datetime, timezone

import pytest

from src.services.usage_ledger import UsageStatus


class TestUsageEndpoint:
    """Tests for GET /api/v1/usage."""

    def test_usage_for_plan_limit(self, client, mock_usage_ledger, mock_user):
        mock_usage_ledger.usage_status.return_value = UsageStatus(
            used=4, limit=50, remaining=46, reset_at=datetime(2026, 11, 1, tzinfo=timezone.utc)
        )

        response = client.get("/api/v1/usage")

        assert response.status_code == 200
        data = response.json()
        assert data["action_kind"] == "generate_design_system"
        assert data["used"] == 4
        assert data["limit"] == 50
        assert data["remaining"] == 46
        mock_usage_ledger.usage_status.assert_awaited_once_with(
            str(mock_user.id), "generate_design_system", 50
        )

    @pytest.mark.parametrize("action_kind", ["generate_colors", "export_advanced"])
    def test_unmetered_action_kinds_rejected(self, client, mock_usage_ledger, action_kind):
        response = client.get("/api/v1/usage", params={"action_kind": action_kind})

        assert response.status_code == 422
        mock_usage_ledger.usage_status.assert_not_awaited()

    def test_unknown_action_kind_rejected(self, client):
        response = client.get("/api/v1/usage", params={"action_kind": "mine_bitcoin"})

        assert response.status_code == 422

    def test_requires_auth(self, anonymous_client):
        response = anonymous_client.get("/api/v1/usage")

        assert response.status_code == 401


class TestCreditsEndpoint:
    """Tests for GET /api/v1/credits."""

    def test_paid_user(self, client):
        response = client.get("/api/v1/credits")

        assert response.status_code == 200
        data = response.json()
        assert data["balance"] == 12
        assert data["plan"] == "basic"
        assert data["can_generate"] is True
        assert data["tier"] == "basic"

    def test_exhausted_user(self, client, mock_user):
        mock_user.credits = 0
        mock_user.free_generations_used = 3

        data = client.get("/api/v1/credits").json()

        assert data["can_generate"] is False
        assert data["tier"] is None
        assert data["reason"]

    def test_banned_user_cannot_generate(self, client, mock_user):
        mock_user.banned = True

        data = client.get("/api/v1/credits").json()

        assert data["can_generate"] is False
