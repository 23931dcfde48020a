# Model Selector - Cost-Aware Backend Selection
# Picks the AI backend for a document based on plan, user preference, complexity and remaining budget

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from ai.complexity import estimate_complexity
from ai.llm.model_config import (
    HIGH_COMPLEXITY_THRESHOLD,
    MEDIUM_COMPLEXITY_THRESHOLD,
    AIModel,
    PreferredModel,
    estimate_cost,
)
from models.database import User
from services.budget_ledger import BudgetLedger
from services.plan_catalog import PlanTier

logger = logging.getLogger(__name__)


class SelectionReason:
    """Human-readable reasons attached to a selection."""

    FREE_PLAN = "plan has no paid AI budget"
    USER_PREFERENCE = "user preference"
    HIGH_COMPLEXITY = "high complexity + premium plan"
    MEDIUM_COMPLEXITY = "medium complexity + budget available"
    BUDGET_EXHAUSTED = "budget exhausted - gemini fallback"
    LOW_COMPLEXITY = "low complexity - gemini sufficient"


@dataclass
class ModelSelection:
    """Decision made by the selector about which backend serves a document."""

    model: AIModel
    reason: str
    complexity: float
    remaining_budget: float
    estimated_cost: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model.value,
            "reason": self.reason,
            "complexity": self.complexity,
            "remainingBudget": self.remaining_budget,
            "estimatedCost": self.estimated_cost,
        }


class ModelSelector:
    """
    Chooses a backend for one analysis. First matching rule wins:

    1. Free plan: always gemini. Free users never reach a paid backend,
       whatever their preference says.
    2. Explicit preference: used when it is gemini or its estimated cost
       fits the remaining budget.
    3. Complexity above 0.7 on the premium plan: gpt-4-turbo if affordable.
    4. Complexity above 0.4: gpt-3.5-turbo if affordable.
    5. Otherwise gemini, with a reason telling a spent budget apart from
       a simple document.

    Steps 3 and 4 also require premium AI to be allowed in the user's
    settings. The selector never raises; gemini is the answer of last resort.
    """

    def __init__(self, ledger: BudgetLedger):
        self.ledger = ledger

    def select_model(self, user: User, text: str, now: datetime | None = None) -> ModelSelection:
        """
        Select the backend for ``text``.

        Args:
            user: The requesting user; their budget is rolled over and synced first
            text: Document text used for complexity and cost estimation
            now: Clock override for the month rollover

        Returns:
            ModelSelection with the chosen model and the reason
        """
        try:
            self.ledger.prepare(user, now)
        except SQLAlchemyError as e:
            self.ledger.db.rollback()
            logger.error(f"Budget preparation failed for user {user.id}, using stored values: {e}")

        complexity = estimate_complexity(text)
        remaining = self.ledger.remaining_budget(user)

        selection = self._decide(user, text, complexity, remaining)

        logger.info(
            f"Model selection: {selection.model.value} ({selection.reason}) | "
            f"complexity={complexity:.2f} | "
            f"estimated=${selection.estimated_cost:.4f} | "
            f"remaining=${remaining:.4f}"
        )
        return selection

    def _decide(self, user: User, text: str, complexity: float, remaining: float) -> ModelSelection:
        def select(model: AIModel, reason: str, cost: float = 0.0) -> ModelSelection:
            return ModelSelection(
                model=model,
                reason=reason,
                complexity=complexity,
                remaining_budget=remaining,
                estimated_cost=cost,
            )

        plan = PlanTier.from_value(user.plan)
        if plan == PlanTier.FREE:
            return select(AIModel.GEMINI, SelectionReason.FREE_PLAN)

        preferred = PreferredModel.parse(user.ai_preferred_model).as_model()
        if preferred is not None:
            cost = estimate_cost(preferred, text)
            if not preferred.is_paid or cost <= remaining:
                return select(preferred, SelectionReason.USER_PREFERENCE, cost)
            logger.info(
                f"Preferred model {preferred.value} does not fit budget "
                f"(${cost:.4f} > ${remaining:.4f}), auto-selecting"
            )

        allow_premium = user.ai_allow_premium is not False

        if complexity > HIGH_COMPLEXITY_THRESHOLD and plan == PlanTier.PREMIUM:
            cost = estimate_cost(AIModel.GPT_4_TURBO, text)
            if cost <= remaining and allow_premium:
                return select(AIModel.GPT_4_TURBO, SelectionReason.HIGH_COMPLEXITY, cost)

        if complexity > MEDIUM_COMPLEXITY_THRESHOLD:
            cost = estimate_cost(AIModel.GPT_35_TURBO, text)
            if cost <= remaining and allow_premium:
                return select(AIModel.GPT_35_TURBO, SelectionReason.MEDIUM_COMPLEXITY, cost)
            return select(AIModel.GEMINI, SelectionReason.BUDGET_EXHAUSTED)

        return select(AIModel.GEMINI, SelectionReason.LOW_COMPLEXITY)
