"""Insight processing.

Turns raw check-ins, consented journals and chat summaries for a period into a
structured insight: weighted sources, themes, emotional pattern, recurring
contexts and a time context. Insights are stored so reports can reference them
instead of copying personal content.
"""
from __future__ import annotations

import logging
import statistics
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from . import config
from .checkins import get_check_ins
from .errors import NotFoundError
from .journals import get_chat_summaries, get_consented_journals
from .models import (
    ChatSummary,
    CheckIn,
    EmotionalPattern,
    Insight,
    InsightSource,
    InsightTheme,
    Journal,
    RecurrenceSignal,
    TimeContext,
    to_document,
    utcnow,
)
from .store import DocumentStore, user_collection

logger = logging.getLogger(__name__)

SOURCE_WEIGHTS = {
    "check_in": 0.5,
    "journal": 0.8,
    "chat_summary": 0.6,
}
VOLATILITY_STD = 2.5
TREND_DELTA = 1.0


def insights_collection(user_id: str) -> str:
    return user_collection(user_id, "insights")


def build_sources(
    check_ins: List[CheckIn],
    journals: List[Journal],
    chat_summaries: List[ChatSummary],
) -> List[InsightSource]:
    sources = [InsightSource(type="check_in", id=item.id, weight=SOURCE_WEIGHTS["check_in"]) for item in check_ins]
    sources += [InsightSource(type="journal", id=item.id, weight=SOURCE_WEIGHTS["journal"]) for item in journals]
    sources += [
        InsightSource(type="chat_summary", id=item.id, weight=SOURCE_WEIGHTS["chat_summary"])
        for item in chat_summaries
    ]
    return sources


def extract_themes(check_ins: List[CheckIn], journals: List[Journal]) -> List[InsightTheme]:
    """Count emotions, contexts and journal categories; journal text itself is never read."""
    counts: Dict[str, int] = {}
    first_seen: Dict[str, datetime] = {}
    order: List[str] = []

    def add(name: str, seen_at: datetime) -> None:
        if name not in counts:
            counts[name] = 0
            first_seen[name] = seen_at
            order.append(name)
        counts[name] += 1
        first_seen[name] = min(first_seen[name], seen_at)

    for item in sorted(check_ins, key=lambda c: c.created_at):
        for label in item.responses.emotional_category + item.responses.context_flag:
            add(label, item.created_at)
    for journal in sorted(journals, key=lambda j: j.created_at):
        if journal.category:
            add(journal.category, journal.created_at)

    total_entries = max(1, len(check_ins) + len(journals))
    ranked = sorted(order, key=lambda name: (-counts[name], first_seen[name]))
    return [
        InsightTheme(
            name=name,
            count=counts[name],
            strength=round(min(1.0, counts[name] / total_entries), 2),
            first_appearance=first_seen[name],
        )
        for name in ranked[: config.MAX_THEMES]
    ]


def calculate_trend(intensities: List[float]) -> str:
    if len(intensities) < 3:
        return "stable"
    half = len(intensities) // 2
    first_avg = statistics.mean(intensities[:half])
    second_avg = statistics.mean(intensities[half:])
    if statistics.pstdev(intensities) > VOLATILITY_STD:
        return "volatile"
    if second_avg > first_avg + TREND_DELTA:
        return "improving"
    if second_avg < first_avg - TREND_DELTA:
        return "declining"
    return "stable"


def analyze_emotional_patterns(check_ins: List[CheckIn]) -> EmotionalPattern:
    if not check_ins:
        return EmotionalPattern(dominant=[], intensity=5.0, trend="stable")
    ordered = sorted(check_ins, key=lambda c: c.created_at)

    emotion_count: Dict[str, int] = {}
    for item in ordered:
        for emotion in item.responses.emotional_category:
            emotion_count[emotion] = emotion_count.get(emotion, 0) + 1
    ranked = sorted(emotion_count.items(), key=lambda pair: -pair[1])
    dominant = [emotion for emotion, _ in ranked[:3]]

    intensities = [item.responses.emotional_intensity for item in ordered]
    return EmotionalPattern(
        dominant=dominant,
        intensity=round(statistics.mean(intensities), 1),
        trend=calculate_trend(intensities),
    )


def detect_recurrence_signals(check_ins: List[CheckIn]) -> List[RecurrenceSignal]:
    seen: Dict[str, Tuple[int, datetime, datetime]] = {}
    for item in sorted(check_ins, key=lambda c: c.created_at):
        for context in item.responses.context_flag:
            count, first, _ = seen.get(context, (0, item.created_at, item.created_at))
            seen[context] = (count + 1, first, item.created_at)

    signals = [
        RecurrenceSignal(pattern=pattern, frequency=count, first_seen=first, last_seen=last)
        for pattern, (count, first, last) in seen.items()
        if count >= config.RECURRENCE_MIN_FREQUENCY
    ]
    signals.sort(key=lambda signal: -signal.frequency)
    return signals


def format_period(period_start: datetime, period_end: datetime) -> str:
    return f"{period_start.strftime('%b %d, %Y')} - {period_end.strftime('%b %d, %Y')}"


def build_insight(
    user_id: str,
    period_start: datetime,
    period_end: datetime,
    check_ins: List[CheckIn],
    journals: List[Journal],
    chat_summaries: List[ChatSummary],
    now: datetime,
) -> Insight:
    return Insight(
        user_id=user_id,
        created_at=now,
        period_start=period_start,
        period_end=period_end,
        sources=build_sources(check_ins, journals, chat_summaries),
        themes=extract_themes(check_ins, journals),
        emotional_patterns=analyze_emotional_patterns(check_ins),
        recurrence_signals=detect_recurrence_signals(check_ins),
        time_context=TimeContext(
            period=format_period(period_start, period_end),
            significant_dates=sorted(item.created_at for item in check_ins),
        ),
    )


def generate_insights(
    store: DocumentStore,
    user_id: str,
    period_start: datetime,
    period_end: datetime,
    now: Optional[datetime] = None,
    include_start: bool = True,
) -> Optional[Insight]:
    now = now or utcnow()
    check_ins = get_check_ins(store, user_id, period_start, period_end, include_start)
    journals = get_consented_journals(store, user_id, period_start, period_end, include_start)
    chat_summaries = get_chat_summaries(store, user_id, period_start, period_end, include_start)

    if not check_ins and not journals and not chat_summaries:
        logger.info("No insight sources for user %s in %s", user_id, format_period(period_start, period_end))
        return None

    insight = build_insight(user_id, period_start, period_end, check_ins, journals, chat_summaries, now)
    insight.id = store.add(insights_collection(user_id), to_document(insight))
    logger.info(
        "Insight %s generated for user %s from %s sources",
        insight.id,
        user_id,
        len(insight.sources),
    )
    return insight


def get_insight(store: DocumentStore, user_id: str, insight_id: str) -> Insight:
    data = store.get(insights_collection(user_id), insight_id)
    if data is None:
        raise NotFoundError("Insight not found")
    data["id"] = insight_id
    return Insight.model_validate(data)


def get_user_insights(store: DocumentStore, user_id: str) -> List[Insight]:
    insights = []
    for doc_id, data in store.query(insights_collection(user_id)):
        data["id"] = doc_id
        insights.append(Insight.model_validate(data))
    insights.sort(key=lambda item: item.created_at, reverse=True)
    return insights
