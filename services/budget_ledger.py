# Budget Ledger
# Per-user monthly AI spend: plan sync, month rollover and atomic usage recording

import logging
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from ai.llm.model_config import PreferredModel
from models.database import User
from services.plan_catalog import get_ai_budget

logger = logging.getLogger(__name__)


def _year_month(moment: datetime | None) -> tuple[int, int] | None:
    if moment is None:
        return None
    return moment.year, moment.month


class BudgetLedger:
    """
    Maintains the AI budget embedded in the User row.

    Remaining budget is always ``allocated - used``. The budget is advisory:
    recording usage never fails, even past the allocation, because the AI
    call that incurred the cost has already happened. ``record_usage`` is a
    single SQL increment so concurrent analyses for the same user cannot lose
    each other's spend.
    """

    def __init__(self, db: Session):
        self.db = db

    def sync_budget_with_plan(self, user: User, now: datetime | None = None) -> bool:
        """
        Align the allocation with the user's current plan.

        Initializes AI settings when the user has none. When the allocation
        is lowered below what was already used, usage is reset so the remaining
        budget does not stay negative. Raising it never resets usage.

        Returns:
            True if anything was modified
        """
        expected = get_ai_budget(user.plan)
        now = now or datetime.now(UTC)

        if not user.has_ai_settings:
            user.ai_preferred_model = PreferredModel.AUTO.value
            user.ai_allow_premium = True
            user.ai_budget_allocated = expected
            user.ai_budget_used = 0.0
            user.ai_budget_last_reset = now
            logger.info(f"Initialized AI settings for user {user.id}: ${expected:.2f}")
            return True

        current = user.ai_budget_allocated
        if current == expected:
            return False

        user.ai_budget_allocated = expected
        if expected < current and expected < (user.ai_budget_used or 0.0):
            user.ai_budget_used = 0.0
            user.ai_budget_last_reset = now
            logger.info(f"Reset AI usage for user {user.id} after plan change")

        logger.info(f"Synced AI budget for user {user.id}: ${current:.2f} -> ${expected:.2f}")
        return True

    def check_month_rollover(self, user: User, now: datetime | None = None) -> bool:
        """
        Reset monthly usage when the calendar month changed since the last reset.

        Returns:
            True if usage was reset
        """
        now = now or datetime.now(UTC)
        if _year_month(user.ai_budget_last_reset) == _year_month(now):
            return False

        user.ai_budget_used = 0.0
        user.ai_budget_last_reset = now
        logger.info(f"Monthly AI budget rollover for user {user.id}")
        return True

    def prepare(self, user: User, now: datetime | None = None) -> bool:
        """Roll over and sync before any budget read. Commits when something changed."""
        rolled_over = self.check_month_rollover(user, now)
        synced = self.sync_budget_with_plan(user, now)
        if rolled_over or synced:
            self.db.commit()
            self.db.refresh(user)
        return rolled_over or synced

    def record_usage(self, user: User, cost: float) -> None:
        """
        Add ``cost`` to this month's usage with an atomic increment.

        Overdraft is allowed. The caller owns the commit.
        """
        if cost < 0:
            raise ValueError(f"Cost must be non-negative, got {cost}")
        if cost == 0:
            return

        self.db.flush()
        self.db.query(User).filter(User.id == user.id).update(
            {User.ai_budget_used: User.ai_budget_used + cost},
            synchronize_session=False,
        )
        self.db.refresh(user, attribute_names=["ai_budget_used"])
        logger.info(
            f"Recorded AI spend for user {user.id}: ${cost:.6f} "
            f"(used ${user.ai_budget_used:.4f} of ${user.ai_budget_allocated or 0.0:.2f})"
        )

    def remaining_budget(self, user: User) -> float:
        """allocated - used; may be negative after an overdraft."""
        return (user.ai_budget_allocated or 0.0) - (user.ai_budget_used or 0.0)

    def display_remaining(self, user: User) -> float:
        """Remaining budget as shown to end users, never below zero."""
        return max(0.0, self.remaining_budget(user))


def get_budget_ledger(db: Session) -> BudgetLedger:
    """Factory function to create a BudgetLedger instance."""
    return BudgetLedger(db)
