# Fallback Orchestrator
# Runs the selector's choice, walks the fallback chain on failure, then books cost and usage
#
# Backends are tried strictly one after another, never concurrently: a successful
# paid call must not be duplicated by a parallel free one.

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from ai.error_handling import AllModelsFailedError, ErrorCategory, FailedAttempt
from ai.llm.base import BaseBackend, InvokeResult, TokenUsage
from ai.llm.factory import get_backend
from ai.llm.model_config import MIN_FALLBACK_BUDGET, AIModel, estimate_cost, get_model_config
from ai.model_router import ModelSelection, ModelSelector, SelectionReason
from ai.observability import ModelAttemptTrace, events
from models.database import User
from services.budget_ledger import BudgetLedger
from services.usage_tracker import UsageTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FallbackCandidate:
    """One step of the chain: a model and the condition under which it is tried."""

    model: AIModel
    eligible: Callable[[ModelSelection], bool] = lambda selection: True


@dataclass
class FallbackAttempt:
    """Record of one attempt, in order. Observability only."""

    model: AIModel
    success: bool
    error_category: ErrorCategory | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"model": self.model.value, "success": self.success}


@dataclass
class AnalysisResult:
    """Successful outcome of the chain."""

    model: AIModel
    response: str
    actual_cost: float
    selection: ModelSelection
    usage: TokenUsage | None = None
    provider_model: str | None = None
    fallback_chain: list[FallbackAttempt] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.model != self.selection.model

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "model": self.model.value,
            "response": self.response,
        }
        if self.usage is not None:
            data["usage"] = self.usage.to_dict()
        data["actualCost"] = self.actual_cost
        data["selection"] = self.selection.to_dict()
        data["fallbackChain"] = [attempt.to_dict() for attempt in self.fallback_chain]
        return data


def build_fallback_chain(primary: AIModel) -> list[FallbackCandidate]:
    """
    Ordered candidates for one analysis.

    primary -> gpt-3.5-turbo (when some budget is left) -> gemini.
    Models already tried are skipped by the orchestrator.
    """
    return [
        FallbackCandidate(primary),
        FallbackCandidate(
            AIModel.GPT_35_TURBO,
            lambda selection: selection.remaining_budget > MIN_FALLBACK_BUDGET,
        ),
        FallbackCandidate(AIModel.GEMINI),
    ]


def calculate_actual_cost(result: InvokeResult, selection: ModelSelection, text: str) -> float:
    """
    Cost of the call that served the analysis.

    Reported token usage is priced at the serving model's unit cost. Without
    usage the pre-call estimate for the serving model is used.
    """
    if result.usage is not None:
        return get_model_config(result.model).estimate_cost(result.usage.total_tokens)
    if result.model == selection.model:
        return selection.estimated_cost
    return estimate_cost(result.model, text)


class FallbackOrchestrator:
    """
    Executes one analysis through the fallback chain.

    On success the usage counters are incremented, paid spend is recorded in
    the budget ledger, and the user row is committed. When every candidate
    fails, AllModelsFailedError is raised and no counter is touched.
    """

    def __init__(
        self,
        db: Session,
        selector: ModelSelector | None = None,
        backend_factory: Callable[[AIModel], BaseBackend] = get_backend,
    ):
        self.db = db
        self.ledger = BudgetLedger(db)
        self.selector = selector or ModelSelector(self.ledger)
        self.usage_tracker = UsageTracker(db)
        self.backend_factory = backend_factory

    def perform_analysis(self, user: User, text: str, prompt: str) -> AnalysisResult:
        """
        Select a backend, invoke it and fall back on failure.

        Args:
            user: Requesting user
            text: Document text, used for selection and cost estimation
            prompt: Fully rendered prompt sent to the backend

        Returns:
            AnalysisResult for the backend that succeeded

        Raises:
            AllModelsFailedError: Every eligible backend failed
        """
        selection = self.selector.select_model(user, text)
        events.log_model_selected(user.id, selection.to_dict())

        chain: list[FallbackAttempt] = []
        failures: list[FailedAttempt] = []
        tried: set[AIModel] = set()
        result: InvokeResult | None = None

        for candidate in build_fallback_chain(selection.model):
            if candidate.model in tried or not candidate.eligible(selection):
                continue
            if tried:
                logger.info(f"Fallback: trying {candidate.model.value}")

            tried.add(candidate.model)
            result = self._attempt(user, candidate.model, prompt, step=len(chain) + 1)
            chain.append(FallbackAttempt(candidate.model, result.success, result.error_category))

            if result.success:
                break

            failures.append(
                FailedAttempt(
                    model=candidate.model.value,
                    error=result.error,
                    category=result.error_category or ErrorCategory.UNKNOWN,
                )
            )
            logger.warning(f"{candidate.model.value} failed, trying fallbacks...")

        if result is None or not result.success:
            error = AllModelsFailedError(
                attempts=failures,
                context={
                    "selection": selection.to_dict(),
                    "budget_exhausted": selection.reason == SelectionReason.BUDGET_EXHAUSTED,
                    "paid_attempted": any(model.is_paid for model in tried),
                },
            )
            events.log_all_models_failed(user.id, error.to_log_dict())
            raise error

        actual_cost = calculate_actual_cost(result, selection, text)
        self._record_success(user, result.model, actual_cost)

        return AnalysisResult(
            model=result.model,
            response=result.response or "",
            actual_cost=actual_cost,
            selection=selection,
            usage=result.usage,
            provider_model=result.provider_model,
            fallback_chain=chain,
        )

    def _attempt(self, user: User, model: AIModel, prompt: str, step: int) -> InvokeResult:
        backend = self.backend_factory(model)
        result = backend.invoke(prompt)

        events.log_model_attempt(
            ModelAttemptTrace(
                user_id=user.id,
                model=model.value,
                step=step,
                success=result.success,
                latency_ms=result.latency_ms,
                prompt_tokens=result.usage.prompt_tokens if result.usage else None,
                completion_tokens=result.usage.completion_tokens if result.usage else None,
                error=result.error,
                error_category=result.error_category.value if result.error_category else None,
            )
        )
        return result

    def _record_success(self, user: User, model: AIModel, cost: float) -> None:
        try:
            self.usage_tracker.record_analysis(user, model, cost)
            if model.is_paid:
                self.ledger.record_usage(user, cost)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Analysis served by {model.value}: cost=${cost:.6f}")
