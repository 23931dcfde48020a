# Analysis Prompts
# Plan-specific prompt templates for contract and terms-of-service analysis

from dataclasses import dataclass

from services.plan_catalog import PlanTier

VALID_SCORES = ("Excellent", "Good", "Average", "Poor", "Problematic")


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    depth: str
    criteria: tuple[str, ...]
    include_insights: bool = False
    include_compliance: bool = False
    include_business: bool = False

    @property
    def min_clauses(self) -> int:
        return len(self.criteria)

    @property
    def max_clauses(self) -> int:
        return len(self.criteria) + 4


_CORE_CRITERIA = (
    "Transparency of terms",
    "Ease of cancellation",
    "Hidden fees",
    "Data protection",
    "Guarantees offered",
    "Dispute resolution",
)

_ADVANCED_CRITERIA = (
    "Contractual balance",
    "Consumer law compliance",
    "Legal certainty",
    "Commercial flexibility",
)

PLAN_TEMPLATES: dict[PlanTier, PromptTemplate] = {
    PlanTier.FREE: PromptTemplate(
        name="Basic Analysis",
        depth="basic",
        criteria=("Clarity of terms", "Ease of cancellation", "Hidden fees"),
    ),
    PlanTier.STANDARD: PromptTemplate(
        name="Standard Analysis",
        depth="complete",
        criteria=_CORE_CRITERIA,
    ),
    PlanTier.PREMIUM: PromptTemplate(
        name="Premium Analysis",
        depth="in-depth",
        criteria=_CORE_CRITERIA + _ADVANCED_CRITERIA,
        include_insights=True,
    ),
    PlanTier.ENTERPRISE: PromptTemplate(
        name="Enterprise Analysis",
        depth="expert",
        criteria=_CORE_CRITERIA + _ADVANCED_CRITERIA + (
            "Regulatory compliance",
            "Risk management",
            "Business impact",
            "Market competitiveness",
        ),
        include_insights=True,
        include_compliance=True,
        include_business=True,
    ),
}


def get_prompt_template(plan: str | None) -> PromptTemplate:
    return PLAN_TEMPLATES[PlanTier.from_value(plan)]


def generate_analysis_prompt(plan: str | None, document_text: str) -> str:
    """
    Render the analysis prompt for a user's plan.

    The backend must answer with a JSON object holding "summary", "score"
    and "clauses"; see services.analysis_pipeline.parse_analysis_response.
    """
    template = get_prompt_template(plan)
    criteria_list = "\n".join(f"- {criterion}" for criterion in template.criteria)

    extra_instructions = ""
    if template.include_insights:
        extra_instructions += "\n   - Include relevant industry insights"
    if template.include_compliance:
        extra_instructions += "\n   - Mention regulatory compliance (GDPR, consumer code, etc.)"
    if template.include_business:
        extra_instructions += "\n   - Add business impact and competitiveness"

    return f"""You are a legal expert specializing in the analysis of terms of service and contractual documents.
TASK: Analyze the document below and produce a {template.depth}, structured and actionable assessment.

CRITERIA TO ANALYZE ({template.name}):
{criteria_list}

OUTPUT: Respond with a valid JSON object containing exactly these keys:
1. "summary": 2-3 sentences covering what the service or contract is about and the precise justification of the score.
2. "score": one of "Excellent", "Good", "Average", "Poor", "Problematic".
   - "Excellent": very favorable to the consumer, clear clauses, rights well protected
   - "Good": balanced, a few minor points of attention
   - "Average": standard document with potentially problematic clauses
   - "Poor": unfavorable, several abusive or ambiguous clauses
   - "Problematic": very unfavorable, potentially illegal clauses
3. "clauses": a list of {template.min_clauses}-{template.max_clauses} key points ordered by decreasing criticality:
   - Always start with the 3-4 most critical or problematic items
   - Then the significant advantages
   - Finally neutral or informative points{extra_instructions}

Example JSON output format:
{{
    "summary": "Subscription service with...",
    "score": "Good",
    "clauses": ["Restrictive cancellation clause...", "Potential hidden fees...", "Money-back guarantee..."]
}}

CRITICAL: Output ONLY the JSON object. Do NOT include any preamble text or markdown code blocks.

Document to analyze:
```
{document_text}
```"""
