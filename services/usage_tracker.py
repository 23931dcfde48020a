# Usage Tracking Service
# Lifetime AI usage counters kept on the User row, and the reporting built on them

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.orm import Session

from ai.llm.model_config import AIModel
from models.database import User

logger = logging.getLogger(__name__)


class UsageTracker:
    """
    Tracks AI usage statistics for users.

    Features:
    - Per-analysis counters split by backend family (gpt / gemini)
    - Lifetime AI cost
    - Reporting for the AI settings endpoints

    Counters only ever grow. Increments are issued as SQL expressions so two
    analyses finishing at the same time both count.
    """

    def __init__(self, db: Session):
        self.db = db

    def record_analysis(self, user: User, model: AIModel | str, cost: float) -> None:
        """
        Count one successful analysis served by ``model``.

        The caller owns the commit.
        """
        model = AIModel(model)
        family_column = User.gpt_analyses if model.family == "gpt" else User.gemini_analyses

        self.db.flush()
        self.db.query(User).filter(User.id == user.id).update(
            {
                User.total_analyses: User.total_analyses + 1,
                family_column: family_column + 1,
                User.total_ai_cost: User.total_ai_cost + cost,
                User.ai_usage_last_updated: datetime.now(UTC),
            },
            synchronize_session=False,
        )
        self.db.refresh(
            user,
            attribute_names=[
                "total_analyses",
                "gpt_analyses",
                "gemini_analyses",
                "total_ai_cost",
                "ai_usage_last_updated",
            ],
        )

        logger.info(
            f"Analysis recorded: user={user.id}, model={model.value}, "
            f"cost=${cost:.6f}, total={user.total_analyses}"
        )

    def get_stats(self, user: User) -> dict[str, Any]:
        """Raw usage counters."""
        return {
            "total_analyses": user.total_analyses or 0,
            "gpt_analyses": user.gpt_analyses or 0,
            "gemini_analyses": user.gemini_analyses or 0,
            "total_ai_cost": user.total_ai_cost or 0.0,
            "last_updated": user.ai_usage_last_updated.isoformat() if user.ai_usage_last_updated else None,
        }

    def get_usage_summary(self, user: User) -> dict[str, Any]:
        """
        Get a usage summary for a user.

        Returns:
            Dict with usage counts, this month's budget, and costs
        """
        total = user.total_analyses or 0
        gpt = user.gpt_analyses or 0
        total_cost = user.total_ai_cost or 0.0

        allocated = user.ai_budget_allocated or 0.0
        used = user.ai_budget_used or 0.0

        return {
            # Usage
            "usage": {
                "total_analyses": total,
                "gpt_analyses": gpt,
                "gemini_analyses": user.gemini_analyses or 0,
                "gpt_percentage": round(gpt / total * 100, 1) if total > 0 else 0.0,
            },

            # Budget
            "budget": {
                "allocated": allocated,
                "used": used,
                "remaining": max(0.0, allocated - used),
                "percentage": round(used / allocated * 100, 1) if allocated > 0 else 0.0,
            },

            # Costs
            "costs": {
                "total_ai_cost": total_cost,
                "average_cost_per_analysis": round(total_cost / total, 4) if total > 0 else 0.0,
            },

            "last_updated": user.ai_usage_last_updated.isoformat() if user.ai_usage_last_updated else None,
        }


def get_usage_tracker(db: Session) -> UsageTracker:
    """Factory function to create a UsageTracker instance."""
    return UsageTracker(db)
