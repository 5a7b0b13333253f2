"""
Usage analytics aggregation.

Derives totals, cost estimates and cache efficiency from the append-only
sequence of usage records. All derived values are recomputed from the
records; only per-record costs are cached.
"""

import csv
import io
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from prompt_vault.storage.db import DEFAULT_DB_PATH
from prompt_vault.storage.models import UsageRecord
from prompt_vault.storage.repository import fetch_usage_records

from .notifications import Notifier, Severity
from .pricing import PRICING_TABLE, PricingTable, calculate_cost

TREND_WINDOW = 20

CSV_HEADERS = [
    "Timestamp", "Model", "Action", "Prompt Tokens", "Thinking Tokens",
    "Output Tokens", "Cached Tokens", "Total Tokens", "Est. Cost ($)",
]


@dataclass(frozen=True)
class UsageStats:
    """Aggregate view over all usage records."""
    total_input: int
    total_output: int
    total_thinking: int
    total_cached: int
    total_tokens: int
    cost: Decimal
    cache_hit_rate: float
    count: int


@dataclass(frozen=True)
class ModelUsage:
    input: int
    output: int


@dataclass(frozen=True)
class LoadDistribution:
    """Token split for the overview breakdown."""
    input: int
    thinking: int
    pure_output: int
    cached: int


def cache_hit_rate(total_input: int, total_cached: int) -> float:
    """Percentage of prompt-side tokens served from cache."""
    denominator = total_input + total_cached
    if denominator == 0:
        return 0.0
    return total_cached / denominator * 100


class UsageAggregator:
    """Owner of the usage record sequence.

    Ingestion is append-only; records are never reordered, deduplicated or
    modified after they arrive.
    """

    def __init__(self, pricing: Optional[PricingTable] = None, notifier: Optional[Notifier] = None):
        self._pricing = pricing or PRICING_TABLE
        self._notifier = notifier
        self._records: List[UsageRecord] = []
        self._costs: List[Decimal] = []

    @classmethod
    def from_ledger(cls, db_path: str = DEFAULT_DB_PATH, pricing: Optional[PricingTable] = None) -> "UsageAggregator":
        """Rebuild an aggregator from the persisted usage ledger."""
        aggregator = cls(pricing=pricing)
        for record in fetch_usage_records(db_path=db_path):
            aggregator.record_usage(record)
        return aggregator

    @property
    def records(self) -> Tuple[UsageRecord, ...]:
        return tuple(self._records)

    def record_usage(self, record: UsageRecord) -> None:
        self._records.append(record)
        self._costs.append(calculate_cost(record, self._pricing))
        if self._notifier is not None:
            self._notifier.notify(f"Metrics updated: {record.total_tokens} tokens", Severity.INFO)

    def cost_of(self, index: int) -> Decimal:
        return self._costs[index]

    def stats(self) -> UsageStats:
        total_input = sum(r.prompt_tokens for r in self._records)
        total_output = sum(r.candidates_tokens for r in self._records)
        total_thinking = sum(r.thinking_tokens or 0 for r in self._records)
        total_cached = sum(r.cached_content_tokens or 0 for r in self._records)
        return UsageStats(
            total_input=total_input,
            total_output=total_output,
            total_thinking=total_thinking,
            total_cached=total_cached,
            total_tokens=total_input + total_output,
            cost=sum(self._costs, Decimal("0")),
            cache_hit_rate=cache_hit_rate(total_input, total_cached),
            count=len(self._records),
        )

    def load_distribution(self) -> LoadDistribution:
        stats = self.stats()
        return LoadDistribution(
            input=stats.total_input,
            thinking=stats.total_thinking,
            pure_output=stats.total_output - stats.total_thinking,
            cached=stats.total_cached,
        )

    def by_model(self) -> Dict[str, ModelUsage]:
        """Input and output tokens per model, in first-seen order."""
        groups: Dict[str, ModelUsage] = {}
        for record in self._records:
            current = groups.get(record.model, ModelUsage(0, 0))
            groups[record.model] = ModelUsage(
                input=current.input + record.prompt_tokens,
                output=current.output + record.candidates_tokens,
            )
        return groups

    def chronological(self, limit: int = TREND_WINDOW) -> List[UsageRecord]:
        """Most recent ``limit`` records in ascending timestamp order."""
        ordered = sorted(self._records, key=lambda r: r.timestamp)
        return ordered[-limit:] if limit > 0 else []

    def log_entries(self) -> List[Tuple[UsageRecord, Decimal]]:
        """Records with their cost, newest first."""
        pairs = list(zip(self._records, self._costs))
        return sorted(pairs, key=lambda pair: pair[0].timestamp, reverse=True)

    def to_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADERS)
        for record, cost in zip(self._records, self._costs):
            writer.writerow([
                _iso_timestamp(record.timestamp),
                record.model,
                record.action_type.value,
                record.prompt_tokens,
                record.thinking_tokens or 0,
                record.candidates_tokens,
                record.cached_content_tokens or 0,
                record.total_tokens,
                f"{cost:.6f}",
            ])
        return buffer.getvalue()

    def to_json(self) -> str:
        return json.dumps([r.to_dict() for r in self._records], indent=2)


def _iso_timestamp(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc).isoformat()
