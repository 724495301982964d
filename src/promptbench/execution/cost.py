"""Cost estimation from token usage and model pricing.

Provides a static per-provider pricing table and the fallback ladder used
when a model or provider is missing from it: unknown models are priced at
their provider's default model, unknown providers at a flat combined rate.
Cost is always computable; the is_estimated flag says how much to trust it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

# Assumed completion length when pricing a dry run.
DRY_RUN_OUTPUT_TOKENS = 500

# USD per token for providers missing from the table ($10 per million).
UNKNOWN_PROVIDER_RATE = 0.00001


@dataclass(frozen=True)
class ModelPricing:
    """Pricing per million tokens for a single model."""

    input_per_million: float
    output_per_million: float


@dataclass(frozen=True)
class ProviderPricing:
    """Display metadata and the model price list for one provider."""

    display_name: str
    default_model: str
    models: dict[str, ModelPricing] = field(default_factory=dict)


@dataclass(frozen=True)
class CostEstimate:
    """USD cost of one run and whether it came from a fallback rate."""

    cost: float
    is_estimated: bool


# Prices are in USD per million tokens.
PROVIDER_PRICING: dict[str, ProviderPricing] = {
    "openai": ProviderPricing(
        display_name="OpenAI",
        default_model="gpt-4o",
        models={
            "gpt-4o": ModelPricing(input_per_million=2.50, output_per_million=10.00),
            "gpt-4o-mini": ModelPricing(input_per_million=0.15, output_per_million=0.60),
            "gpt-4-turbo": ModelPricing(input_per_million=10.00, output_per_million=30.00),
            "gpt-4": ModelPricing(input_per_million=30.00, output_per_million=60.00),
            "gpt-3.5-turbo": ModelPricing(input_per_million=0.50, output_per_million=1.50),
            "o1": ModelPricing(input_per_million=15.00, output_per_million=60.00),
            "o1-mini": ModelPricing(input_per_million=3.00, output_per_million=12.00),
        },
    ),
    "anthropic": ProviderPricing(
        display_name="Anthropic",
        default_model="claude-sonnet-4-20250514",
        models={
            "claude-sonnet-4-20250514": ModelPricing(input_per_million=3.00, output_per_million=15.00),
            "claude-opus-4-20250514": ModelPricing(input_per_million=15.00, output_per_million=75.00),
            "claude-3-5-sonnet-20241022": ModelPricing(input_per_million=3.00, output_per_million=15.00),
            "claude-3-5-haiku-20241022": ModelPricing(input_per_million=0.80, output_per_million=4.00),
            "claude-3-opus-20240229": ModelPricing(input_per_million=15.00, output_per_million=75.00),
            "claude-3-sonnet-20240229": ModelPricing(input_per_million=3.00, output_per_million=15.00),
            "claude-3-haiku-20240307": ModelPricing(input_per_million=0.25, output_per_million=1.25),
        },
    ),
    "google": ProviderPricing(
        display_name="Google Gemini",
        default_model="gemini-1.5-pro",
        models={
            "gemini-1.5-pro": ModelPricing(input_per_million=1.25, output_per_million=5.00),
            "gemini-1.5-flash": ModelPricing(input_per_million=0.075, output_per_million=0.30),
            "gemini-1.5-flash-8b": ModelPricing(input_per_million=0.0375, output_per_million=0.15),
            "gemini-2.0-flash-exp": ModelPricing(input_per_million=0.10, output_per_million=0.40),
        },
    ),
    "deepseek": ProviderPricing(
        display_name="DeepSeek",
        default_model="deepseek-chat",
        models={
            "deepseek-chat": ModelPricing(input_per_million=0.14, output_per_million=0.28),
            "deepseek-reasoner": ModelPricing(input_per_million=0.55, output_per_million=2.19),
        },
    ),
    "local": ProviderPricing(
        display_name="Local/OpenAI-Compatible",
        default_model="default",
        models={
            "default": ModelPricing(input_per_million=0.0, output_per_million=0.0),
        },
    ),
}


def _linear_cost(pricing: ModelPricing, input_tokens: int, output_tokens: int) -> float:
    return (
        (input_tokens / 1_000_000) * pricing.input_per_million
        + (output_tokens / 1_000_000) * pricing.output_per_million
    )


def calculate_cost(
    provider: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
) -> CostEstimate:
    """Estimate the USD cost of one run from its token counts.

    Args:
        provider: Provider name (e.g., "openai").
        model: Model id (e.g., "gpt-4o").
        input_tokens: Number of input/prompt tokens.
        output_tokens: Number of output/completion tokens.

    Returns:
        CostEstimate; is_estimated is True whenever a fallback rate was used.
    """
    provider_pricing = PROVIDER_PRICING.get(provider)
    if provider_pricing is None:
        return CostEstimate(
            cost=(input_tokens + output_tokens) * UNKNOWN_PROVIDER_RATE,
            is_estimated=True,
        )

    pricing = provider_pricing.models.get(model)
    if pricing is not None:
        return CostEstimate(
            cost=_linear_cost(pricing, input_tokens, output_tokens),
            is_estimated=False,
        )

    default_pricing = provider_pricing.models.get(provider_pricing.default_model)
    if default_pricing is None:
        return CostEstimate(
            cost=(input_tokens + output_tokens) * UNKNOWN_PROVIDER_RATE,
            is_estimated=True,
        )
    return CostEstimate(
        cost=_linear_cost(default_pricing, input_tokens, output_tokens),
        is_estimated=True,
    )


def estimate_token_count(text: str) -> int:
    """Rough token count: about four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def get_models_for_provider(provider: str) -> list[str]:
    """Return priced model ids for a provider, or [] if unknown."""
    provider_pricing = PROVIDER_PRICING.get(provider)
    if provider_pricing is None:
        return []
    return list(provider_pricing.models)


def get_available_providers() -> list[tuple[str, str]]:
    """Return (provider name, display name) pairs from the pricing table."""
    return [(name, pricing.display_name) for name, pricing in PROVIDER_PRICING.items()]
