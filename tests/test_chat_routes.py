"""Tests for setup wizard chat API endpoints."""

import json

import pytest
from httpx import AsyncClient

from app.schemas.chat import current_year
from app.services.fallback_wizard import FALLBACK_DISCLOSURE, FALLBACK_QUESTIONS, STEP_GOAL
from app.services.gemini_client import GeminiError


def headers(user_id) -> dict:
    return {"X-User-Id": str(user_id)}


def wizard_config() -> dict:
    return {
        "monthly_income": 300000,
        "monthly_savings_target": 50000,
        "current_savings": 1200000,
        "life_goals": [
            {"title": "Home purchase", "target_amount": 5000000, "target_year": current_year() + 4, "priority": "high"},
            {"title": "Travel", "target_amount": "unknown", "target_year": "unknown", "priority": "unknown"},
        ],
        "suggested_budgets": {"housing": 80000, "food": 40000},
    }


@pytest.mark.asyncio
class TestChatTurn:
    """Test POST /api/chat."""

    async def test_ai_turn(self, api_client: AsyncClient, fake_client, user_id):
        fake_client.chat.return_value = "What is your monthly take-home pay?"

        response = await api_client.post(
            "/api/chat",
            json={"messages": [{"role": "assistant", "content": "Hi!"}], "message": "Let's start"},
            headers=headers(user_id),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["role"] == "assistant"
        assert data["content"] == "What is your monthly take-home pay?"
        assert data["is_complete"] is False
        assert data["config"] is None
        assert data["session"]["mode"] == "ai"

    async def test_failure_switches_to_fallback(self, api_client: AsyncClient, fake_client, user_id):
        fake_client.chat.side_effect = GeminiError("unavailable", status_code=503)

        response = await api_client.post(
            "/api/chat",
            json={"message": "Hello", "setup_context": {"monthly_income": 300000}},
            headers=headers(user_id),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["content"] == f"{FALLBACK_DISCLOSURE}\n\n{FALLBACK_QUESTIONS[STEP_GOAL]}"
        assert data["session"]["mode"] == "fallback"
        assert data["session"]["fallback_state"]["step"] == STEP_GOAL

    async def test_fallback_session_completes(self, api_client: AsyncClient, fake_client, user_id):
        session = {"mode": "fallback", "status": "in_progress", "fallback_state": {"step": 0}}

        for answer in ["house", "unknown", "300万", "2"]:
            response = await api_client.post(
                "/api/chat",
                json={"message": answer, "session": session, "setup_context": {"monthly_income": 200000}},
                headers=headers(user_id),
            )
            assert response.status_code == 200
            session = response.json()["session"]

        data = response.json()
        assert data["is_complete"] is True
        assert data["config"]["monthly_savings_target"] == 30000
        assert data["config"]["current_savings"] == 3000000
        assert data["config"]["life_goals"][0]["target_year"] == "unknown"
        assert session["status"] == "complete"
        fake_client.chat.assert_not_called()

    async def test_completed_session_conflict(self, api_client: AsyncClient, user_id):
        response = await api_client.post(
            "/api/chat",
            json={"message": "again", "session": {"status": "complete"}},
            headers=headers(user_id),
        )

        assert response.status_code == 409

    async def test_completion_returns_config(self, api_client: AsyncClient, fake_client, user_id):
        fake_client.chat.return_value = "All done! <SETUP_COMPLETE/>"
        fake_client.complete.side_effect = [
            json.dumps(
                {
                    "monthly_savings_target": 40000,
                    "life_goals": [
                        {"title": "Retirement", "target_amount": "unknown", "target_year": "unknown", "priority": "medium"}
                    ],
                }
            ),
            "not json",
        ]

        response = await api_client.post(
            "/api/chat",
            json={"message": "That's it", "setup_context": {"monthly_income": 250000}},
            headers=headers(user_id),
        )

        data = response.json()
        assert data["content"] == "All done!"
        assert data["is_complete"] is True
        assert data["config"]["monthly_income"] == 250000
        assert set(data["config"]["suggested_budgets"]) >= {"housing", "food", "other"}

    async def test_missing_user_header(self, api_client: AsyncClient):
        response = await api_client.post("/api/chat", json={"message": "hi"})

        assert response.status_code == 422

    async def test_invalid_user_header(self, api_client: AsyncClient):
        response = await api_client.post("/api/chat", json={"message": "hi"}, headers={"X-User-Id": "nope"})

        assert response.status_code == 401

    async def test_empty_message_rejected(self, api_client: AsyncClient, user_id):
        response = await api_client.post("/api/chat", json={"message": ""}, headers=headers(user_id))

        assert response.status_code == 422


@pytest.mark.asyncio
class TestSaveConfig:
    """Test POST /api/chat/save."""

    async def test_save(self, api_client: AsyncClient, wizard_store, user_id):
        response = await api_client.post(
            "/api/chat/save",
            json={"config": wizard_config(), "year_month": "2026-06"},
            headers=headers(user_id),
        )

        assert response.status_code == 201
        assert response.json() == {"year_month": "2026-06", "goals_created": 2, "budgets_written": 2}
        saved_user, saved_config, saved_month = wizard_store.saved[0]
        assert saved_user == user_id
        assert saved_month == "2026-06"
        assert saved_config.life_goals[1].target_amount.value == "unknown"

    async def test_save_invalid_month(self, api_client: AsyncClient, user_id):
        response = await api_client.post(
            "/api/chat/save",
            json={"config": wizard_config(), "year_month": "2026-13"},
            headers=headers(user_id),
        )

        assert response.status_code == 422

    async def test_save_requires_goal(self, api_client: AsyncClient, user_id):
        config = wizard_config()
        config["life_goals"] = []

        response = await api_client.post("/api/chat/save", json={"config": config}, headers=headers(user_id))

        assert response.status_code == 422
