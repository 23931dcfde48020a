# Tests for the Fallback Orchestrator
# Validates the fallback chain, cost calculation and usage bookkeeping

import json
import logging
from unittest.mock import MagicMock, patch

import pytest

from ai.error_handling import ALL_MODELS_FAILED_MESSAGE, AllModelsFailedError, ErrorCategory
from ai.llm.base import TokenUsage
from ai.llm.factory import get_backend
from ai.llm.failover import FallbackOrchestrator, build_fallback_chain
from ai.llm.model_config import AIModel, estimate_cost
from ai.model_router import ModelSelection
from helpers import HIGH_COMPLEXITY_TEXT, LOW_COMPLEXITY_TEXT, MEDIUM_COMPLEXITY_TEXT, VALID_ANALYSIS_JSON


@pytest.fixture
def orchestrator(db_session, backends):
    return FallbackOrchestrator(db_session, backend_factory=backends)


class TestFallbackChain:
    """Tests for the ordered candidate list."""

    def test_chain_order(self):
        chain = build_fallback_chain(AIModel.GPT_4_TURBO)

        assert [c.model for c in chain] == [AIModel.GPT_4_TURBO, AIModel.GPT_35_TURBO, AIModel.GEMINI]

    def test_secondary_requires_budget(self):
        secondary = build_fallback_chain(AIModel.GEMINI)[1]
        rich = ModelSelection(AIModel.GEMINI, "x", 0.1, remaining_budget=0.5)
        broke = ModelSelection(AIModel.GEMINI, "x", 0.1, remaining_budget=0.01)

        assert secondary.eligible(rich)
        assert not secondary.eligible(broke)


class TestPerformAnalysis:
    """Tests for perform_analysis."""

    def test_primary_success(self, orchestrator, backends, make_user):
        user = make_user(plan="premium", allocated=10.0)

        result = orchestrator.perform_analysis(user, HIGH_COMPLEXITY_TEXT, "prompt")

        assert result.model == AIModel.GPT_4_TURBO
        assert [a.to_dict() for a in result.fallback_chain] == [{"model": "gpt-4-turbo", "success": True}]
        assert backends.prompts == ["prompt"]
        assert not result.used_fallback

    def test_primary_failure_falls_back_to_mid_tier(self, orchestrator, backends, make_user):
        """A failed paid primary with budget left moves to gpt-3.5 and prices it accordingly."""
        user = make_user(plan="premium", allocated=10.0)
        backends.fail(AIModel.GPT_4_TURBO, error="connection reset", category=ErrorCategory.NETWORK)
        backends.succeed(AIModel.GPT_35_TURBO, usage=TokenUsage(prompt_tokens=1000, completion_tokens=500))

        result = orchestrator.perform_analysis(user, HIGH_COMPLEXITY_TEXT, "prompt")

        assert len(result.fallback_chain) == 2
        assert result.fallback_chain[0].to_dict() == {"model": "gpt-4-turbo", "success": False}
        assert result.fallback_chain[1].model == AIModel.GPT_35_TURBO
        assert result.actual_cost == pytest.approx(1500 / 1000 * 0.003)
        assert result.used_fallback

    def test_chain_ends_at_gemini(self, orchestrator, backends, make_user):
        user = make_user(plan="premium", allocated=10.0)
        backends.fail(AIModel.GPT_4_TURBO)
        backends.fail(AIModel.GPT_35_TURBO)

        result = orchestrator.perform_analysis(user, HIGH_COMPLEXITY_TEXT, "prompt")

        assert backends.calls == [AIModel.GPT_4_TURBO, AIModel.GPT_35_TURBO, AIModel.GEMINI]
        assert result.model == AIModel.GEMINI
        assert result.actual_cost == 0.0

    def test_mid_tier_primary_is_not_retried(self, orchestrator, backends, make_user):
        """A failed gpt-3.5 primary goes straight to gemini."""
        user = make_user(plan="standard", allocated=2.0)
        backends.fail(AIModel.GPT_35_TURBO)

        result = orchestrator.perform_analysis(user, MEDIUM_COMPLEXITY_TEXT, "prompt")

        assert backends.calls == [AIModel.GPT_35_TURBO, AIModel.GEMINI]
        assert result.model == AIModel.GEMINI

    def test_gemini_primary_can_fall_back_to_paid(self, orchestrator, backends, make_user):
        """A failed gemini primary uses gpt-3.5 when budget remains."""
        user = make_user(plan="premium", allocated=10.0)
        backends.fail(AIModel.GEMINI)

        result = orchestrator.perform_analysis(user, LOW_COMPLEXITY_TEXT, "prompt")

        assert backends.calls == [AIModel.GEMINI, AIModel.GPT_35_TURBO]
        assert result.model == AIModel.GPT_35_TURBO
        assert result.actual_cost == pytest.approx(estimate_cost(AIModel.GPT_35_TURBO, LOW_COMPLEXITY_TEXT))

    def test_free_user_has_single_attempt(self, orchestrator, backends, make_user):
        user = make_user(plan="free")
        backends.fail(AIModel.GEMINI)

        with pytest.raises(AllModelsFailedError):
            orchestrator.perform_analysis(user, LOW_COMPLEXITY_TEXT, "prompt")

        assert backends.calls == [AIModel.GEMINI]

    def test_cost_without_usage_uses_estimate(self, orchestrator, make_user):
        user = make_user(plan="premium", allocated=10.0)

        result = orchestrator.perform_analysis(user, HIGH_COMPLEXITY_TEXT, "prompt")

        assert result.actual_cost == pytest.approx(result.selection.estimated_cost)
        assert result.actual_cost == pytest.approx(estimate_cost(AIModel.GPT_4_TURBO, HIGH_COMPLEXITY_TEXT))

    def test_to_dict_shape(self, orchestrator, backends, make_user):
        user = make_user(plan="standard", allocated=2.0)
        backends.succeed(AIModel.GPT_35_TURBO, usage=TokenUsage(prompt_tokens=10, completion_tokens=5))

        data = orchestrator.perform_analysis(user, MEDIUM_COMPLEXITY_TEXT, "prompt").to_dict()

        assert set(data) == {"model", "response", "usage", "actualCost", "selection", "fallbackChain"}
        assert data["usage"] == {"promptTokens": 10, "completionTokens": 5}
        assert data["selection"]["model"] == "gpt-3.5-turbo"


class TestUsageBookkeeping:
    """Side effects of a successful analysis."""

    def test_paid_success_updates_budget_and_stats(self, orchestrator, backends, db_session, make_user):
        user = make_user(plan="standard", allocated=2.0, used=0.5)
        backends.succeed(AIModel.GPT_35_TURBO, usage=TokenUsage(prompt_tokens=2000, completion_tokens=1000))

        orchestrator.perform_analysis(user, MEDIUM_COMPLEXITY_TEXT, "prompt")

        db_session.expire_all()
        assert user.total_analyses == 1
        assert user.gpt_analyses == 1
        assert user.gemini_analyses == 0
        assert user.total_ai_cost == pytest.approx(0.009)
        assert user.ai_budget_used == pytest.approx(0.509)
        assert user.ai_usage_last_updated is not None

    def test_gemini_success_leaves_budget_untouched(self, orchestrator, db_session, make_user):
        user = make_user(plan="premium", allocated=10.0, used=1.0)

        orchestrator.perform_analysis(user, LOW_COMPLEXITY_TEXT, "prompt")

        db_session.expire_all()
        assert user.gemini_analyses == 1
        assert user.gpt_analyses == 0
        assert user.ai_budget_used == pytest.approx(1.0)

    def test_exhaustion_changes_no_counters(self, orchestrator, backends, db_session, make_user):
        user = make_user(plan="premium", allocated=10.0, used=2.0)
        backends.fail_all()

        with pytest.raises(AllModelsFailedError) as exc_info:
            orchestrator.perform_analysis(user, HIGH_COMPLEXITY_TEXT, "prompt")

        assert str(exc_info.value) == ALL_MODELS_FAILED_MESSAGE
        db_session.expire_all()
        assert user.total_analyses == 0
        assert user.total_ai_cost == 0.0
        assert user.ai_budget_used == pytest.approx(2.0)


class TestExhaustionDetail:
    """The terminal error keeps detail for operators only."""

    def test_not_configured(self, orchestrator, backends, make_user):
        user = make_user(plan="premium", allocated=10.0)
        backends.fail_all(error="not configured", category=ErrorCategory.NOT_CONFIGURED)

        with pytest.raises(AllModelsFailedError) as exc_info:
            orchestrator.perform_analysis(user, HIGH_COMPLEXITY_TEXT, "prompt")

        assert exc_info.value.failure_kind == "not_configured"
        assert [a.model for a in exc_info.value.attempts] == ["gpt-4-turbo", "gpt-3.5-turbo", "gemini"]

    def test_transient(self, orchestrator, backends, make_user):
        user = make_user(plan="premium", allocated=10.0)
        backends.fail_all(category=ErrorCategory.TIMEOUT)

        with pytest.raises(AllModelsFailedError) as exc_info:
            orchestrator.perform_analysis(user, HIGH_COMPLEXITY_TEXT, "prompt")

        assert exc_info.value.failure_kind == "transient"

    def test_budget_exhausted(self, orchestrator, backends, make_user):
        user = make_user(plan="premium", allocated=10.0, used=9.995)
        backends.fail_all()

        with pytest.raises(AllModelsFailedError) as exc_info:
            orchestrator.perform_analysis(user, HIGH_COMPLEXITY_TEXT, "prompt")

        assert exc_info.value.failure_kind == "budget_exhausted"
        assert exc_info.value.to_log_dict()["selection"]["model"] == "gemini"

    def test_structured_event_logged(self, orchestrator, backends, make_user, caplog):
        user = make_user(plan="free")
        backends.fail_all(category=ErrorCategory.SERVER_ERROR)

        with caplog.at_level(logging.INFO, logger="transparai.ai_events"):
            with pytest.raises(AllModelsFailedError):
                orchestrator.perform_analysis(user, LOW_COMPLEXITY_TEXT, "prompt")

        events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "transparai.ai_events"]
        names = [e["message"] for e in events]
        assert names == ["MODEL_SELECTED", "MODEL_ATTEMPT", "ALL_MODELS_FAILED"]
        assert events[-1]["failure_kind"] == "transient"
        assert events[-1]["attempts"][0]["category"] == "server_error"


class TestBackendConfigurationErrors:
    """Configuration problems skip a backend instead of ending the request."""

    def test_malformed_timeout_does_not_escape(self, db_session, make_user, monkeypatch):
        monkeypatch.setenv("AI_REQUEST_TIMEOUT", "45.5s")
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        user = make_user(plan="standard", allocated=2.0)
        orchestrator = FallbackOrchestrator(db_session, backend_factory=get_backend)

        with pytest.raises(AllModelsFailedError) as exc_info:
            orchestrator.perform_analysis(user, MEDIUM_COMPLEXITY_TEXT, "prompt")

        assert [a.model for a in exc_info.value.attempts] == ["gpt-3.5-turbo", "gemini"]
        assert exc_info.value.failure_kind == "not_configured"

    def test_empty_gemini_reply_moves_to_next_backend(self, db_session, make_user, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "g-test")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        user = make_user(plan="premium", allocated=10.0)
        orchestrator = FallbackOrchestrator(db_session, backend_factory=get_backend)
        empty = MagicMock(status_code=200)
        empty.json.return_value = {"candidates": [{"content": {"parts": [{"text": ""}]}}]}
        served = MagicMock(status_code=200)
        served.json.return_value = {
            "model": "gpt-3.5-turbo-0125",
            "choices": [{"message": {"content": VALID_ANALYSIS_JSON}}],
            "usage": {"prompt_tokens": 100, "completion_tokens": 50},
        }

        with patch("ai.llm.gemini.requests.post", return_value=empty), \
                patch("ai.llm.openai_client.requests.post", return_value=served):
            result = orchestrator.perform_analysis(user, LOW_COMPLEXITY_TEXT, "prompt")

        assert [a.to_dict() for a in result.fallback_chain] == [
            {"model": "gemini", "success": False},
            {"model": "gpt-3.5-turbo", "success": True},
        ]
        assert result.model == AIModel.GPT_35_TURBO
