"""Tests for promptbench.execution.cost - pricing table and cost estimation."""

from __future__ import annotations

import pytest

from promptbench.execution.cost import (
    DRY_RUN_OUTPUT_TOKENS,
    PROVIDER_PRICING,
    calculate_cost,
    estimate_token_count,
    get_available_providers,
    get_models_for_provider,
)


class TestCalculateCost:
    """Test the pricing fallback ladder."""

    def test_known_model_exact_price(self) -> None:
        """gpt-4o: 1000 in at $2.50/M + 500 out at $10/M = $0.0075."""
        estimate = calculate_cost("openai", "gpt-4o", 1000, 500)
        assert estimate.cost == pytest.approx(0.0075)
        assert estimate.is_estimated is False

    def test_anthropic_known_model(self) -> None:
        estimate = calculate_cost("anthropic", "claude-3-haiku-20240307", 1_000_000, 1_000_000)
        assert estimate.cost == pytest.approx(0.25 + 1.25)
        assert estimate.is_estimated is False

    def test_unknown_model_uses_provider_default(self) -> None:
        """An unpriced OpenAI model is billed at gpt-4o rates and flagged."""
        estimate = calculate_cost("openai", "gpt-99-preview", 1000, 500)
        assert estimate.cost == pytest.approx(0.0075)
        assert estimate.is_estimated is True

    def test_unknown_provider_flat_rate(self) -> None:
        estimate = calculate_cost("mystery", "whatever", 100, 50)
        assert estimate.cost == pytest.approx(150 * 0.00001)
        assert estimate.is_estimated is True

    def test_local_is_free(self) -> None:
        estimate = calculate_cost("local", "default", 5000, 5000)
        assert estimate.cost == 0.0
        assert estimate.is_estimated is False

    def test_local_unknown_model_falls_back_to_free_default(self) -> None:
        estimate = calculate_cost("local", "llama3", 5000, 5000)
        assert estimate.cost == 0.0
        assert estimate.is_estimated is True

    def test_zero_tokens(self) -> None:
        assert calculate_cost("openai", "gpt-4o", 0, 0).cost == 0.0

    def test_cost_is_not_rounded(self) -> None:
        estimate = calculate_cost("google", "gemini-1.5-flash-8b", 1, 1)
        assert estimate.cost == pytest.approx((0.0375 + 0.15) / 1_000_000)


class TestEstimateTokenCount:
    """Test the four-characters-per-token heuristic."""

    def test_empty(self) -> None:
        assert estimate_token_count("") == 0

    def test_rounds_up(self) -> None:
        assert estimate_token_count("abcde") == 2

    def test_exact_multiple(self) -> None:
        assert estimate_token_count("abcdefgh") == 2

    def test_dry_run_output_assumption(self) -> None:
        assert DRY_RUN_OUTPUT_TOKENS == 500


class TestPricingLookups:
    """Test provider and model listings."""

    def test_every_provider_default_is_priced(self) -> None:
        for name, pricing in PROVIDER_PRICING.items():
            assert pricing.default_model in pricing.models, name

    def test_models_for_provider(self) -> None:
        models = get_models_for_provider("deepseek")
        assert models == ["deepseek-chat", "deepseek-reasoner"]

    def test_models_for_unknown_provider(self) -> None:
        assert get_models_for_provider("nope") == []

    def test_available_providers(self) -> None:
        providers = dict(get_available_providers())
        assert providers["openai"] == "OpenAI"
        assert providers["local"] == "Local/OpenAI-Compatible"
        assert set(providers) == {"openai", "anthropic", "google", "deepseek", "local"}
