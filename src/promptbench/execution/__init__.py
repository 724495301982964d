"""promptbench execution - orchestration, pricing and rate limiting."""

from promptbench.execution.cost import (
    CostEstimate,
    calculate_cost,
    estimate_token_count,
    get_available_providers,
    get_models_for_provider,
)
from promptbench.execution.rate_limit import RateLimitDecision, RateLimiter
from promptbench.execution.runner import (
    CredentialInactiveError,
    NotRerunnableError,
    RateLimitExceededError,
    RunNotFoundError,
    RunOptions,
    TestNotFoundError,
    TestRunner,
    substitute_variables,
)

__all__ = [
    "CostEstimate",
    "CredentialInactiveError",
    "NotRerunnableError",
    "RateLimitDecision",
    "RateLimitExceededError",
    "RateLimiter",
    "RunNotFoundError",
    "RunOptions",
    "TestNotFoundError",
    "TestRunner",
    "calculate_cost",
    "estimate_token_count",
    "get_available_providers",
    "get_models_for_provider",
    "substitute_variables",
]
