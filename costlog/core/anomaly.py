"""
Anomaly detection for daily spend.

Flags recent days whose total spend is well above the trailing average.
"""

import statistics
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from costlog.storage.models import UsageRecord

from .stats import daily_series

MIN_SERIES_DAYS = 7
MIN_HISTORY_DAYS = 3
RECENT_DAYS = 3
STDDEV_MULTIPLIER = 2.0
MEAN_MULTIPLIER = 1.5


@dataclass(frozen=True)
class Anomaly:
    """A day whose spend exceeded the historical baseline."""
    date: date
    expected_spend: float
    actual_spend: float

    @property
    def percentage_increase(self) -> float:
        return (self.actual_spend - self.expected_spend) / self.expected_spend * 100


def detect_anomalies(
    records: Sequence[UsageRecord],
    window_days: int = 14,
    today: Optional[date] = None,
) -> List[Anomaly]:
    """Detect spend spikes among the last few days of the window.

    Rules:
    - History is every day of the window except the most recent, with
      zero-spend days dropped.
    - A recent day is anomalous when its total exceeds both
      ``mean + 2 * stddev`` and ``1.5 * mean`` of the history. The second
      bound keeps near-constant histories (stddev ~ 0) from flagging
      small wobbles.

    Args:
        records: Usage records to analyse
        window_days: Length of the daily series
        today: Last day of the window (defaults to today)

    Returns:
        Anomalies for the flagged days, oldest first (empty when the window
        is shorter than 7 days or fewer than 3 history days have spend)
    """
    series = daily_series(records, window_days=window_days, today=today)
    if len(series) < MIN_SERIES_DAYS:
        return []

    history = [day.total_cost for day in series[:-1] if day.total_cost > 0]
    if len(history) < MIN_HISTORY_DAYS:
        return []

    mean = statistics.fmean(history)
    stddev = statistics.pstdev(history, mu=mean)
    upper_bound = mean + STDDEV_MULTIPLIER * stddev
    spike_bound = mean * MEAN_MULTIPLIER

    anomalies = []
    for day in series[-RECENT_DAYS:]:
        if day.total_cost > upper_bound and day.total_cost > spike_bound:
            anomalies.append(Anomaly(
                date=day.date,
                expected_spend=mean,
                actual_spend=day.total_cost,
            ))
    return anomalies
