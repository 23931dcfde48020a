# Plan Catalog
# Static subscription tiers: analysis quotas, AI budgets and feature flags
# Defined at deploy time, read-only at runtime

import logging
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)

UNLIMITED = -1


class PlanTier(StrEnum):
    """Subscription levels."""

    FREE = "free"
    STANDARD = "standard"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"

    @classmethod
    def from_value(cls, value: str | None) -> "PlanTier":
        """Convert a stored plan id to the enum; unknown or missing ids map to FREE."""
        if not value:
            return cls.FREE
        try:
            return cls(value.lower())
        except ValueError:
            logger.warning(f"Unknown plan '{value}', treating as free")
            return cls.FREE


class Feature(StrEnum):
    """Feature flags granted by a plan."""

    PDF_EXPORT = "pdf_export"
    HISTORY = "history"
    PRIORITY_SUPPORT = "priority_support"
    ADVANCED_ANALYSIS = "advanced_analysis"
    TEAM_FEATURES = "team_features"
    API_ACCESS = "api_access"
    PREMIUM_AI = "premium_ai"
    OCR_PROCESSING = "ocr_processing"


@dataclass(frozen=True)
class PlanConfig:
    """Quota, budget and features of one plan."""
    tier: PlanTier
    name: str
    monthly_analysis_limit: int         # UNLIMITED (-1) for no cap
    monthly_ai_budget: float            # USD per month for paid AI backends
    features: frozenset[Feature]

    @property
    def is_unlimited(self) -> bool:
        return self.monthly_analysis_limit == UNLIMITED

    def has_feature(self, feature: Feature | str) -> bool:
        try:
            return Feature(feature) in self.features
        except ValueError:
            return False


PLAN_CATALOG: dict[PlanTier, PlanConfig] = {
    PlanTier.FREE: PlanConfig(
        tier=PlanTier.FREE,
        name="Free",
        monthly_analysis_limit=20,
        monthly_ai_budget=0.0,
        features=frozenset({Feature.OCR_PROCESSING}),
    ),
    PlanTier.STANDARD: PlanConfig(
        tier=PlanTier.STANDARD,
        name="Standard",
        monthly_analysis_limit=40,
        monthly_ai_budget=2.0,
        features=frozenset({
            Feature.OCR_PROCESSING,
            Feature.PDF_EXPORT,
            Feature.HISTORY,
            Feature.PREMIUM_AI,
        }),
    ),
    PlanTier.PREMIUM: PlanConfig(
        tier=PlanTier.PREMIUM,
        name="Premium",
        monthly_analysis_limit=UNLIMITED,
        monthly_ai_budget=10.0,
        features=frozenset({
            Feature.OCR_PROCESSING,
            Feature.PDF_EXPORT,
            Feature.HISTORY,
            Feature.PREMIUM_AI,
            Feature.PRIORITY_SUPPORT,
            Feature.ADVANCED_ANALYSIS,
            Feature.API_ACCESS,
        }),
    ),
    PlanTier.ENTERPRISE: PlanConfig(
        tier=PlanTier.ENTERPRISE,
        name="Enterprise",
        monthly_analysis_limit=UNLIMITED,
        monthly_ai_budget=50.0,
        features=frozenset(Feature),
    ),
}


@dataclass(frozen=True)
class UpgradeRecommendation:
    suggested: PlanTier
    reason: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"suggested": self.suggested.value, "reason": self.reason, "message": self.message}


def get_plan_config(plan: str | None) -> PlanConfig:
    """Get the configuration for a plan, falling back to the free tier."""
    return PLAN_CATALOG[PlanTier.from_value(plan)]


def get_ai_budget(plan: str | None) -> float:
    """Monthly AI budget in USD; 0.0 for plans without paid AI."""
    return get_plan_config(plan).monthly_ai_budget


def get_monthly_limit(plan: str | None) -> int:
    return get_plan_config(plan).monthly_analysis_limit


def has_feature(plan: str | None, feature: Feature | str) -> bool:
    return get_plan_config(plan).has_feature(feature)


def is_premium_user(plan: str | None) -> bool:
    """True for any paid plan."""
    return PlanTier.from_value(plan) != PlanTier.FREE


def can_analyze(plan: str | None, used_analyses: int) -> bool:
    """Quota check for the current month."""
    limit = get_monthly_limit(plan)
    if limit == UNLIMITED:
        return True
    return used_analyses < limit


def get_remaining_analyses(plan: str | None, used_analyses: int) -> int:
    """Analyses left this month, UNLIMITED (-1) for uncapped plans."""
    limit = get_monthly_limit(plan)
    if limit == UNLIMITED:
        return UNLIMITED
    return max(0, limit - used_analyses)


def has_ai_access(plan: str | None, allocated: float | None, used: float | None) -> bool:
    """True when the plan includes premium AI and budget is left this month."""
    if not has_feature(plan, Feature.PREMIUM_AI):
        return False
    return (allocated or 0.0) > (used or 0.0)


def get_upgrade_recommendation(plan: str | None, used_analyses: int) -> UpgradeRecommendation | None:
    """Suggest a higher plan when analysis usage approaches the quota."""
    config = get_plan_config(plan)
    limit = config.monthly_analysis_limit

    if config.tier == PlanTier.FREE:
        if limit != UNLIMITED and used_analyses >= limit * 0.8:
            return UpgradeRecommendation(
                suggested=PlanTier.STANDARD,
                reason="quota_nearly_reached",
                message="You are close to your monthly limit. Upgrade to Standard for 40 analyses and history.",
            )
        if used_analyses >= 5:
            return UpgradeRecommendation(
                suggested=PlanTier.STANDARD,
                reason="active_user",
                message="Unlock more analyses and history with Standard.",
            )

    if config.tier == PlanTier.STANDARD and limit != UNLIMITED and used_analyses >= limit * 0.9:
        return UpgradeRecommendation(
            suggested=PlanTier.PREMIUM,
            reason="heavy_usage",
            message="Unlimited analyses and priority support with Premium.",
        )

    return None


def get_ai_upgrade_recommendation(
    plan: str | None,
    total_analyses: int,
    allocated: float | None,
    used: float | None,
) -> UpgradeRecommendation | None:
    """Suggest a higher plan when premium AI is missing or its budget is running out."""
    config = get_plan_config(plan)

    if not config.has_feature(Feature.PREMIUM_AI):
        if total_analyses > 5:
            return UpgradeRecommendation(
                suggested=PlanTier.STANDARD,
                reason="premium_ai_needed",
                message="Unlock premium AI for more precise analyses with the Standard plan.",
            )
        return None

    allocated = allocated or 0.0
    used = used or 0.0
    if allocated > 0 and used >= allocated * 0.8 and config.tier != PlanTier.ENTERPRISE:
        next_plan = PlanTier.PREMIUM if config.tier == PlanTier.STANDARD else PlanTier.ENTERPRISE
        return UpgradeRecommendation(
            suggested=next_plan,
            reason="ai_budget_exhausted",
            message=f"AI budget almost used up. Move to {PLAN_CATALOG[next_plan].name} for more premium analyses.",
        )

    return None
