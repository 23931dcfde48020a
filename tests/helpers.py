# Shared test data and fake backends

from ai.error_handling import ErrorCategory
from ai.llm.base import InvokeResult, TokenUsage
from ai.llm.model_config import AIModel

VALID_ANALYSIS_JSON = (
    '{"summary": "Streaming subscription with monthly billing. Rated Average because '
    'cancellation requires written notice.", "score": "Average", '
    '"clauses": ["Cancellation requires 30 days written notice", "Refund within 14 days", '
    '"Support available by email"]}'
)

# Plain filler without legal vocabulary: one repetition is 81 characters
_FILLER = "The customer can use the platform to store files and share them with colleagues. "

# Complexity 0.025, well under the medium threshold
LOW_COMPLEXITY_TEXT = _FILLER * 3

# Complexity 0.5: 3240 characters (0.3) + 4 legal terms (0.2)
MEDIUM_COMPLEXITY_TEXT = _FILLER * 40 + "liability warranty breach covenant"

_LEGAL_PARAGRAPH = (
    "Section 1. Whereas the Provider hereby agrees, pursuant to clause 2, to indemnify the Customer. "
    '"Service" means the hosted platform. If the Customer is in breach, the Provider may terminate '
    "the agreement subject to prior notice. "
)

# Complexity 1.0 and longer than 10,000 characters, so gpt-3.5-turbo costs more than $0.01
HIGH_COMPLEXITY_TEXT = _LEGAL_PARAGRAPH * 100


def ok_result(model: AIModel, response: str = VALID_ANALYSIS_JSON, usage: TokenUsage | None = None) -> InvokeResult:
    return InvokeResult(success=True, model=AIModel(model), response=response, usage=usage, latency_ms=5)


def failed_result(model: AIModel, error: str = "boom", category: ErrorCategory = ErrorCategory.NETWORK) -> InvokeResult:
    return InvokeResult(success=False, model=AIModel(model), error=error, error_category=category)


class FakeBackend:
    """Stands in for a real backend; returns a preset InvokeResult."""

    def __init__(self, model: AIModel, registry: "FakeBackendRegistry"):
        self.model = model
        self.registry = registry

    def invoke(self, prompt: str) -> InvokeResult:
        self.registry.calls.append(self.model)
        self.registry.prompts.append(prompt)
        return self.registry.results[self.model]


class FakeBackendRegistry:
    """Backend factory for the orchestrator. Every model succeeds unless told otherwise."""

    def __init__(self):
        self.results: dict[AIModel, InvokeResult] = {model: ok_result(model) for model in AIModel}
        self.calls: list[AIModel] = []
        self.prompts: list[str] = []

    def succeed(self, model: AIModel, **kwargs):
        self.results[AIModel(model)] = ok_result(model, **kwargs)

    def fail(self, model: AIModel, **kwargs):
        self.results[AIModel(model)] = failed_result(model, **kwargs)

    def fail_all(self, **kwargs):
        for model in AIModel:
            self.fail(model, **kwargs)

    def __call__(self, model: AIModel) -> FakeBackend:
        return FakeBackend(AIModel(model), self)
