"""
Spend statistics over usage records.

Pure functions: daily series, period totals and model/project breakdowns.
Anything that depends on the current day takes an optional ``today``.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from costlog.storage.models import Provider, UsageRecord

DEFAULT_PROJECT_ID = "default"
DEFAULT_PROJECT_NAME = "Default"


@dataclass(frozen=True)
class DailySpend:
    """Spend for one calendar day, split by provider."""
    date: date
    openai_cost: float
    anthropic_cost: float

    @property
    def total_cost(self) -> float:
        return self.openai_cost + self.anthropic_cost


@dataclass(frozen=True)
class ModelBreakdown:
    """Aggregate usage of a single model."""
    model: str
    provider: Provider
    tokens: int
    cost: float
    percentage: float


@dataclass(frozen=True)
class ProjectBreakdown:
    """Aggregate usage of a single project on one provider."""
    project_id: str
    project_name: str
    provider: Provider
    tokens: int
    cost: float
    percentage: float


def _today(today: Optional[date]) -> date:
    return today if today is not None else date.today()


def _sum_cost(records: Sequence[UsageRecord]) -> float:
    return sum(r.cost for r in records)


def daily_series(
    records: Sequence[UsageRecord],
    window_days: int = 30,
    today: Optional[date] = None,
) -> List[DailySpend]:
    """Bucket spend into ``window_days`` consecutive days ending today.

    Days without records are present with zero cost. Ordered oldest first.
    """
    end = _today(today)
    buckets: Dict[date, Dict[Provider, float]] = {}
    for record in records:
        day = buckets.setdefault(record.date, {})
        day[record.provider] = day.get(record.provider, 0.0) + record.cost

    series = []
    for offset in range(window_days - 1, -1, -1):
        day = end - timedelta(days=offset)
        costs = buckets.get(day, {})
        series.append(DailySpend(
            date=day,
            openai_cost=costs.get(Provider.OPENAI, 0.0),
            anthropic_cost=costs.get(Provider.ANTHROPIC, 0.0),
        ))
    return series


def total_spend(records: Sequence[UsageRecord]) -> float:
    return _sum_cost(records)


def today_spend(records: Sequence[UsageRecord], today: Optional[date] = None) -> float:
    day = _today(today)
    return _sum_cost([r for r in records if r.date == day])


def week_spend(records: Sequence[UsageRecord], today: Optional[date] = None) -> float:
    """Spend on or after the day one week before today."""
    week_ago = _today(today) - timedelta(days=7)
    return _sum_cost([r for r in records if r.date >= week_ago])


def month_spend(records: Sequence[UsageRecord], today: Optional[date] = None) -> float:
    """Spend since the first day of the current calendar month."""
    month_start = _today(today).replace(day=1)
    return _sum_cost([r for r in records if r.date >= month_start])


def spend_by_provider(records: Sequence[UsageRecord]) -> Dict[str, float]:
    totals = {p.value: 0.0 for p in Provider}
    for record in records:
        totals[record.provider.value] += record.cost
    return totals


def model_breakdown(records: Sequence[UsageRecord]) -> List[ModelBreakdown]:
    """Group usage by model, most expensive first.

    A model's provider is the provider of the first record seen for it.
    """
    grouped: Dict[str, Tuple[Provider, int, float]] = {}
    for record in records:
        provider, tokens, cost = grouped.get(record.model, (record.provider, 0, 0.0))
        grouped[record.model] = (provider, tokens + record.tokens, cost + record.cost)

    total = sum(cost for _, _, cost in grouped.values())
    rows = [
        ModelBreakdown(
            model=model,
            provider=provider,
            tokens=tokens,
            cost=cost,
            percentage=(cost / total) * 100 if total > 0 else 0.0,
        )
        for model, (provider, tokens, cost) in grouped.items()
    ]
    return sorted(rows, key=lambda row: row.cost, reverse=True)


def project_breakdown(records: Sequence[UsageRecord]) -> List[ProjectBreakdown]:
    """Group usage by (project, provider), most expensive first.

    Records without a project are attributed to the default project.
    """
    grouped: Dict[Tuple[str, Provider], Tuple[str, int, float]] = {}
    for record in records:
        project_id = record.project_id or DEFAULT_PROJECT_ID
        key = (project_id, record.provider)
        name = record.project_name or (
            DEFAULT_PROJECT_NAME if project_id == DEFAULT_PROJECT_ID else project_id
        )
        name, tokens, cost = grouped.get(key, (name, 0, 0.0))
        grouped[key] = (name, tokens + record.tokens, cost + record.cost)

    total = sum(cost for _, _, cost in grouped.values())
    rows = [
        ProjectBreakdown(
            project_id=project_id,
            project_name=name,
            provider=provider,
            tokens=tokens,
            cost=cost,
            percentage=(cost / total) * 100 if total > 0 else 0.0,
        )
        for (project_id, provider), (name, tokens, cost) in grouped.items()
    ]
    return sorted(rows, key=lambda row: row.cost, reverse=True)


def format_currency(amount: float) -> str:
    """Format a USD amount, e.g. ``$1,234.50`` or ``-$3.00``."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_number(n: float) -> str:
    """Abbreviate large counts: ``1.5M``, ``2.3K``, ``999``."""
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}K"
    return f"{n:g}"
