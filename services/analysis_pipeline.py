# Analysis Pipeline
# Quota bookkeeping, text preprocessing, smart AI analysis and persistence of one document analysis

import json
import logging
import re
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, Field, ValidationError
from sqlalchemy.orm import Session

from ai.error_handling import InvalidAIResponseError, TextTooShortError
from ai.llm.failover import FallbackOrchestrator
from ai.observability import tracer
from ai.prompts import generate_analysis_prompt
from models.database import Analysis, User
from services.budget_ledger import BudgetLedger
from services.plan_catalog import (
    UNLIMITED,
    Feature,
    can_analyze,
    get_monthly_limit,
    has_feature,
)

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 100
MAX_TEXT_LENGTH = 200_000

_FENCE_START_RE = re.compile(r"^```(?:json)?\s*")
_FENCE_END_RE = re.compile(r"\s*```$")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def _coerce_to_str_list(v: Any) -> list[str]:
    if isinstance(v, list):
        return [item if isinstance(item, str) else json.dumps(item) for item in v]
    return v


class AnalysisPayload(BaseModel):
    """Shape every backend must answer with."""

    summary: str = Field(min_length=1)
    score: Literal["Excellent", "Good", "Average", "Poor", "Problematic"]
    clauses: Annotated[list[str], BeforeValidator(_coerce_to_str_list)] = Field(min_length=1)


def preprocess_text(text: str) -> str:
    """
    Normalize whitespace and enforce length bounds.

    Raises:
        TextTooShortError: Fewer than 100 characters after cleaning
    """
    cleaned = re.sub(r"\s+", " ", text or "").strip()

    if len(cleaned) < MIN_TEXT_LENGTH:
        raise TextTooShortError()

    if len(cleaned) > MAX_TEXT_LENGTH:
        logger.info(f"Truncating document from {len(cleaned)} to {MAX_TEXT_LENGTH} characters")
        cleaned = f"{cleaned[:MAX_TEXT_LENGTH]}..."

    return cleaned


def parse_analysis_response(raw: str) -> AnalysisPayload:
    """
    Extract and validate the JSON analysis from a backend response.

    Tolerates markdown code fences and text around the JSON object.

    Raises:
        InvalidAIResponseError: No JSON object, or one that does not match AnalysisPayload
    """
    cleaned = _FENCE_END_RE.sub("", _FENCE_START_RE.sub("", (raw or "").strip()))

    match = _JSON_OBJECT_RE.search(cleaned)
    if match:
        cleaned = match.group(0)

    try:
        return AnalysisPayload.model_validate(json.loads(cleaned))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Invalid AI response ({e.__class__.__name__}): {(raw or '')[:500]}")
        raise InvalidAIResponseError() from e


class AnalysisPipeline:
    """
    Runs one analysis request end to end.

    Steps:
    1. Monthly quota rollover, AI budget sync, quota limit sync with the plan
    2. Quota check
    3. Preprocess text and render the plan's prompt
    4. Smart AI analysis through the fallback orchestrator
    5. Validate the AI response
    6. Save history (plans with the history feature) and count the analysis
    """

    def __init__(self, db: Session, orchestrator: FallbackOrchestrator | None = None):
        self.db = db
        self.orchestrator = orchestrator or FallbackOrchestrator(db)
        self.ledger = BudgetLedger(db)

    def sync_quota(self, user: User, now: datetime | None = None) -> None:
        """Reset the analysis quota on a new month and align its limit with the plan."""
        now = now or datetime.now(UTC)
        last_reset = user.last_quota_reset
        if last_reset is None or (last_reset.year, last_reset.month) != (now.year, now.month):
            user.monthly_quota_used = 0
            user.last_quota_reset = now
            logger.info(f"Monthly quota reset for user {user.id}")

        expected_limit = get_monthly_limit(user.plan)
        if user.monthly_quota_limit != expected_limit:
            user.monthly_quota_limit = expected_limit

        if self.ledger.sync_budget_with_plan(user, now):
            logger.info(f"Synced AI budget for user {user.id}: ${user.ai_budget_allocated:.2f}")

        self.db.commit()
        self.db.refresh(user)

    def process_analysis(self, user: User, text: str, source: str) -> dict[str, Any]:
        """
        Analyze ``text`` for ``user``.

        Returns:
            Outcome dict. ``quota_reached`` is True when the monthly quota is used up,
            in which case nothing else was done.

        Raises:
            TextTooShortError: Text under 100 characters after cleaning
            AllModelsFailedError: Every AI backend failed
            InvalidAIResponseError: The serving backend returned an unusable answer
        """
        self.sync_quota(user)

        used = user.monthly_quota_used or 0
        if not can_analyze(user.plan, used):
            logger.info(f"Quota reached for user {user.id} ({used}/{user.monthly_quota_limit})")
            return {
                "quota_reached": True,
                "message": f'Monthly quota reached for plan "{user.plan}".',
                "remaining": 0,
            }

        processed = preprocess_text(text)
        prompt = generate_analysis_prompt(user.plan, processed)

        with tracer.trace_operation("analysis", user_id=user.id, source=source, chars=len(processed)):
            ai_result = self.orchestrator.perform_analysis(user, processed, prompt)
            logger.info(f"AI analysis completed with {ai_result.model.value} (cost: ${ai_result.actual_cost:.4f})")

            payload = parse_analysis_response(ai_result.response)
            analysis_id = self._save(user, source, payload, ai_result.model.value,
                                     ai_result.selection.complexity, ai_result.actual_cost)

        limit = user.monthly_quota_limit
        remaining = UNLIMITED if limit == UNLIMITED else max(0, limit - user.monthly_quota_used)

        return {
            "summary": payload.summary,
            "score": payload.score,
            "clauses": payload.clauses,
            "analysis_id": analysis_id,
            "can_export_pdf": has_feature(user.plan, Feature.PDF_EXPORT),
            "remaining": remaining,
            "quota_reached": False,
            "ai_model_used": ai_result.model.value,
            "analysis_complexity": ai_result.selection.complexity,
            "ai_cost": ai_result.actual_cost,
            "remaining_ai_budget": self.ledger.display_remaining(user),
        }

    def _save(
        self,
        user: User,
        source: str,
        payload: AnalysisPayload,
        model: str,
        complexity: float,
        cost: float,
    ) -> str | None:
        analysis_id = None
        try:
            if has_feature(user.plan, Feature.HISTORY):
                analysis = Analysis(
                    user_id=user.id,
                    source=source,
                    summary=payload.summary,
                    score=payload.score,
                    clauses=payload.clauses,
                    model=model,
                    complexity=complexity,
                    cost_usd=cost,
                )
                self.db.add(analysis)
                self.db.flush()
                analysis_id = analysis.id

            self.db.query(User).filter(User.id == user.id).update(
                {User.monthly_quota_used: User.monthly_quota_used + 1},
                synchronize_session=False,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(user)
        return analysis_id


def get_analysis_pipeline(db: Session) -> AnalysisPipeline:
    """Factory function to create an AnalysisPipeline instance."""
    return AnalysisPipeline(db)
