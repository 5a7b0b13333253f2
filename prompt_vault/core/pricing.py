"""
Pricing calculations and rate management.

Estimates the cost of a usage record from per-million-token rates.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from prompt_vault.storage.models import UsageRecord

ONE_MILLION = Decimal("1000000")


@dataclass(frozen=True)
class ModelPricing:
    """Per-million-token pricing for a model family."""
    input_per_million: Decimal
    output_per_million: Decimal


@dataclass(frozen=True)
class PricingTable:
    """Pricing keyed by model-family substrings.

    Keys are matched in insertion order; the first key contained in the
    model identifier wins.
    """
    prices: Dict[str, ModelPricing]
    default: ModelPricing

    def get_pricing(self, model: str) -> ModelPricing:
        """Get pricing for a model, falling back to the default rates.

        Args:
            model: Model identifier

        Returns:
            ModelPricing for the first matching family, or the default
        """
        for key, pricing in self.prices.items():
            if key in model:
                return pricing
        return self.default


# Approximate public rates, for estimation only
PRICING_TABLE = PricingTable(
    prices={
        "gemini-3-pro": ModelPricing(Decimal("1.25"), Decimal("5.00")),
        "gemini-3-flash": ModelPricing(Decimal("0.075"), Decimal("0.30")),
        "gemini-2.5-pro": ModelPricing(Decimal("1.25"), Decimal("5.00")),
        "gemini-2.5-flash": ModelPricing(Decimal("0.075"), Decimal("0.30")),
        "gemma": ModelPricing(Decimal("0"), Decimal("0")),
    },
    default=ModelPricing(Decimal("0.50"), Decimal("1.50")),
)


def calculate_cost(record: UsageRecord, table: Optional[PricingTable] = None) -> Decimal:
    """Calculate the estimated cost of a usage record.

    Only prompt and candidate tokens are billed; the result is exact
    (no rounding).

    Args:
        record: Usage record to price
        table: Pricing table, defaults to PRICING_TABLE

    Returns:
        Estimated cost in dollars
    """
    pricing = (table or PRICING_TABLE).get_pricing(record.model)
    input_cost = (Decimal(record.prompt_tokens) / ONE_MILLION) * pricing.input_per_million
    output_cost = (Decimal(record.candidates_tokens) / ONE_MILLION) * pricing.output_per_million
    return input_cost + output_cost
