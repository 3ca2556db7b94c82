from __future__ import annotations

import statistics
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from .models import CheckIn, Journal

ANXIETY_TERMS = {
    "anxious",
    "anxiety",
    "stressed",
    "overwhelmed",
    "nervous",
    "worried",
    "panicked",
    "panic",
}
LOW_MOOD_THRESHOLD = 3.0
TREND_LOOKBACK_DAYS = 14


@dataclass
class ReportMetrics:
    period_days: int
    check_in_count: int
    check_in_days: int
    active_days: int
    missing_days: int
    check_in_rate: float
    journal_count: int
    average_mood: Optional[float]
    median_mood: Optional[float]
    mood_std: Optional[float]
    mood_min: Optional[float]
    mood_max: Optional[float]
    low_mood_days: int
    trend_slope: float
    current_streak: int
    best_streak: int
    anxiety_frequency: float
    anxiety_level: str

    def to_dict(self) -> dict:
        return asdict(self)


def period_day_count(period_start: datetime, period_end: datetime) -> int:
    return max(1, (period_end.date() - period_start.date()).days + 1)


def daily_mood_means(check_ins: List[CheckIn]) -> Dict[date, float]:
    by_day: Dict[date, List[int]] = {}
    for item in check_ins:
        by_day.setdefault(item.created_at.date(), []).append(item.responses.emotional_intensity)
    return {day: statistics.mean(values) for day, values in sorted(by_day.items())}


def compute_trend_slope(scores_by_day: Dict[date, float], lookback_days: int = TREND_LOOKBACK_DAYS) -> float:
    if not scores_by_day:
        return 0.0
    days_sorted = sorted(scores_by_day.keys())[-lookback_days:]
    if len(days_sorted) < 2:
        return 0.0
    y_values = [scores_by_day[day] for day in days_sorted]
    x_values = list(range(len(y_values)))
    x_mean = statistics.mean(x_values)
    y_mean = statistics.mean(y_values)
    numerator = sum((x - x_mean) * (y - y_mean) for x, y in zip(x_values, y_values))
    denominator = sum((x - x_mean) ** 2 for x in x_values)
    if denominator == 0:
        return 0.0
    return numerator / denominator


def compute_current_streak(dates: List[date], today: date) -> int:
    if not dates:
        return 0
    date_set = set(dates)
    streak = 0
    day = today
    while day in date_set:
        streak += 1
        day = day - timedelta(days=1)
    return streak


def compute_best_streak(dates: List[date]) -> int:
    if not dates:
        return 0
    dates = sorted(set(dates))
    best = 1
    current = 1
    for prev, curr in zip(dates, dates[1:]):
        if curr == prev + timedelta(days=1):
            current += 1
            best = max(best, current)
        else:
            current = 1
    return best


def is_anxious(check_in: CheckIn) -> bool:
    return any(label.lower() in ANXIETY_TERMS for label in check_in.responses.emotional_category)


def classify_anxiety(frequency: float) -> str:
    if frequency < 0.2:
        return "low"
    if frequency < 0.5:
        return "moderate"
    return "high"


def compute_report_metrics(
    check_ins: List[CheckIn],
    journals: List[Journal],
    period_start: datetime,
    period_end: datetime,
) -> ReportMetrics:
    period_days = period_day_count(period_start, period_end)
    mood_by_day = daily_mood_means(check_ins)
    check_in_dates = sorted(mood_by_day.keys())
    active_dates = set(check_in_dates) | {journal.created_at.date() for journal in journals}

    daily_values = list(mood_by_day.values())
    average_mood = median_mood = mood_std = mood_min = mood_max = None
    if daily_values:
        average_mood = round(statistics.mean(daily_values), 2)
        median_mood = round(statistics.median(daily_values), 2)
        mood_std = round(statistics.pstdev(daily_values), 2) if len(daily_values) >= 2 else 0.0
        mood_min = round(min(daily_values), 2)
        mood_max = round(max(daily_values), 2)

    anxious_count = sum(1 for item in check_ins if is_anxious(item))
    anxiety_frequency = round(anxious_count / len(check_ins), 2) if check_ins else 0.0

    return ReportMetrics(
        period_days=period_days,
        check_in_count=len(check_ins),
        check_in_days=len(check_in_dates),
        active_days=len(active_dates),
        missing_days=max(0, period_days - len(check_in_dates)),
        check_in_rate=round(min(100.0, len(check_in_dates) / period_days * 100), 2),
        journal_count=len(journals),
        average_mood=average_mood,
        median_mood=median_mood,
        mood_std=mood_std,
        mood_min=mood_min,
        mood_max=mood_max,
        low_mood_days=sum(1 for value in daily_values if value <= LOW_MOOD_THRESHOLD),
        trend_slope=round(compute_trend_slope(mood_by_day), 4),
        current_streak=compute_current_streak(check_in_dates, period_end.date()),
        best_streak=compute_best_streak(check_in_dates),
        anxiety_frequency=anxiety_frequency,
        anxiety_level=classify_anxiety(anxiety_frequency),
    )
