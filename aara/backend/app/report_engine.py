"""Clinical report synthesis.

A report is an immutable snapshot built from one insight plus period metrics.
Three kinds exist: ``pre_therapy`` (the baseline), ``therapy`` (compared
against the baseline) and ``self_insight``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from . import config
from .checkins import get_check_ins, mark_check_ins_processed
from .eligibility import assert_can_generate, compute_eligibility
from .errors import InsufficientDataError, NotFoundError, ReportLockedError, ValidationError
from .insight_engine import generate_insights
from .journals import get_consented_journals, mark_journals_processed
from .metrics_engine import ReportMetrics, compute_report_metrics
from .models import (
    REPORT_TYPES,
    Comparison,
    ComparisonChange,
    Insight,
    Pattern,
    Report,
    ReportContent,
    Theme,
    to_document,
    utcnow,
)
from .store import DocumentStore, user_collection

logger = logging.getLogger(__name__)

PRE_THERAPY_DEFAULT_DAYS = 7


@dataclass(frozen=True)
class ComparedMetric:
    key: str
    label: str
    higher_is_better: bool
    stable_band: float
    scale: float


COMPARED_METRICS = [
    ComparedMetric("average_mood", "average_mood", True, 0.5, 9.0),
    ComparedMetric("check_in_rate", "check_in_rate", True, 10.0, 100.0),
    ComparedMetric("anxiety_frequency", "anxiety_frequency", False, 0.1, 1.0),
    ComparedMetric("mood_std", "mood_volatility", False, 0.5, 4.5),
]


def reports_collection(user_id: str) -> str:
    return user_collection(user_id, "reports")


def _load_report(user_id: str, doc_id: str, data: dict) -> Report:
    data.setdefault("user_id", user_id)
    data["id"] = doc_id
    return Report.model_validate(data)


# retrieval


def get_report(store: DocumentStore, user_id: str, report_id: str) -> Report:
    data = store.get(reports_collection(user_id), report_id)
    if data is None:
        raise NotFoundError("Report not found")
    return _load_report(user_id, report_id, data)


def get_user_reports(store: DocumentStore, user_id: str) -> List[Report]:
    reports = [_load_report(user_id, doc_id, data) for doc_id, data in store.query(reports_collection(user_id))]
    reports.sort(key=lambda item: (item.created_at, item.version), reverse=True)
    return reports


def get_latest_report(store: DocumentStore, user_id: str, report_type: str) -> Optional[Report]:
    for report in get_user_reports(store, user_id):
        if report.type == report_type:
            return report
    return None


def get_next_report_version(store: DocumentStore, user_id: str) -> int:
    versions = [data.get("version") or 0 for _, data in store.query(reports_collection(user_id))]
    return max(versions, default=0) + 1


# immutability


def lock_report(store: DocumentStore, user_id: str, report_id: str) -> None:
    store.update(reports_collection(user_id), report_id, {"locked": True})


def update_report_content(store: DocumentStore, user_id: str, report_id: str, content: ReportContent) -> Report:
    report = get_report(store, user_id, report_id)
    if report.locked:
        raise ReportLockedError("Reports are immutable once generated.")
    store.update(reports_collection(user_id), report_id, {"content": to_document(content)})
    report.content = content
    return report


# content


def default_period(
    store: DocumentStore,
    user_id: str,
    report_type: str,
    now: datetime,
) -> Tuple[datetime, bool]:
    """Default period start and whether records stamped exactly at it belong to the period.

    A therapy report that continues from the previous one leaves its start
    instant to that report.
    """
    if report_type == "pre_therapy":
        return now - timedelta(days=PRE_THERAPY_DEFAULT_DAYS), True
    if report_type == "therapy":
        last_report = get_latest_report(store, user_id, "therapy")
        if last_report is not None:
            return last_report.period_end, False
        return now - timedelta(days=config.THERAPY_DEFAULT_DAYS), True
    return now - timedelta(days=config.SELF_INSIGHT_DEFAULT_DAYS), True


def describe_frequency(metrics: ReportMetrics) -> str:
    if metrics.check_in_rate >= 85.0:
        return "daily"
    weeks = max(1.0, metrics.period_days / 7)
    per_week = metrics.check_in_days / weeks
    return f"{per_week:.1f}x per week"


def describe_slope(slope: float) -> str:
    if slope >= 0.1:
        return "increasing"
    if slope <= -0.1:
        return "decreasing"
    return "stable"


def build_themes(insight: Insight) -> List[Theme]:
    return [
        Theme(
            name=theme.name,
            strength=theme.strength,
            description=f"Recurring theme: {theme.name} ({theme.count} mention{'s' if theme.count != 1 else ''})",
            first_appearance=theme.first_appearance,
        )
        for theme in insight.themes
    ]


def build_patterns(insight: Insight, metrics: ReportMetrics) -> List[Pattern]:
    emotional = insight.emotional_patterns
    dominant = ", ".join(emotional.dominant) if emotional.dominant else "none recorded"
    patterns = [
        Pattern(
            type="emotional",
            description=f"Dominant emotions: {dominant}",
            frequency=describe_frequency(metrics),
            trend=emotional.trend,
        ),
        Pattern(
            type="behavioral",
            description=(
                f"Checked in on {metrics.check_in_days} of {metrics.period_days} days "
                f"(best streak {metrics.best_streak} day{'s' if metrics.best_streak != 1 else ''})"
            ),
            frequency=f"{metrics.check_in_rate:.0f}% of days",
            trend=describe_slope(metrics.trend_slope),
        ),
    ]
    if metrics.journal_count:
        patterns.append(Pattern(
            type="behavioral",
            description=f"Shared {metrics.journal_count} journal entr{'ies' if metrics.journal_count != 1 else 'y'}",
            frequency=f"{metrics.journal_count} entries",
            trend="stable",
        ))
    for signal in insight.recurrence_signals:
        patterns.append(Pattern(
            type="contextual",
            description=signal.pattern,
            frequency=f"{signal.frequency} occurrences",
            trend="recurring",
        ))
    return patterns


def build_summary(insight: Insight) -> str:
    emotional = insight.emotional_patterns
    top_themes = [theme.name for theme in insight.themes[:3]]
    themes_text = ", ".join(top_themes) if top_themes else "none yet"
    return (
        f"Report for {insight.time_context.period}. "
        f"Average mood: {emotional.intensity}/10. "
        f"Trend: {emotional.trend}. "
        f"Main themes: {themes_text}."
    )


def generate_recommendations(insight: Insight, metrics: ReportMetrics) -> List[str]:
    """User-facing suggestions. Not medical advice."""
    recommendations: List[str] = []
    trend = insight.emotional_patterns.trend
    if trend == "declining":
        recommendations.append("Consider discussing coping strategies with your therapist")
    elif trend == "improving":
        recommendations.append("Continue with current approaches - they seem to be helping")
    if len(insight.recurrence_signals) > 2:
        recommendations.append("Notice recurring patterns - these may be valuable discussion points")
    if insight.emotional_patterns.intensity < 4:
        recommendations.append("Low mood detected - prioritize self-care and support")
    if metrics.check_in_count and metrics.check_in_rate < 50.0:
        recommendations.append("Check in more regularly so your report reflects your true patterns")
    if not recommendations:
        recommendations.append("Your patterns look steady. Keep checking in to track changes over time")
    return recommendations


def classify_change(metric: ComparedMetric, baseline_value: float, current_value: float) -> ComparisonChange:
    delta = current_value - baseline_value
    if abs(delta) < metric.stable_band:
        direction = "stable"
    elif (delta > 0) == metric.higher_is_better:
        direction = "improved"
    else:
        direction = "declined"
    return ComparisonChange(
        metric=metric.label,
        direction=direction,
        magnitude=round(min(1.0, abs(delta) / metric.scale), 2),
        baseline_value=baseline_value,
        current_value=current_value,
    )


def compare_metrics(baseline: Report, metrics: ReportMetrics) -> Comparison:
    current = metrics.to_dict()
    previous = baseline.content.metrics or {}
    changes = []
    for metric in COMPARED_METRICS:
        baseline_value = previous.get(metric.key)
        current_value = current.get(metric.key)
        if baseline_value is None or current_value is None:
            continue
        changes.append(classify_change(metric, float(baseline_value), float(current_value)))
    return Comparison(baseline_report_id=baseline.id, changes=changes)


def create_report_content(
    store: DocumentStore,
    user_id: str,
    insight: Insight,
    metrics: ReportMetrics,
    report_type: str,
) -> ReportContent:
    content = ReportContent(
        summary=build_summary(insight),
        themes=build_themes(insight),
        patterns=build_patterns(insight, metrics),
        recommendations=generate_recommendations(insight, metrics),
        metrics=metrics.to_dict(),
    )
    if report_type == "therapy":
        baseline = get_latest_report(store, user_id, "pre_therapy")
        if baseline is not None:
            content.comparison = compare_metrics(baseline, metrics)
    return content


# generation


def generate_report(
    store: DocumentStore,
    user_id: str,
    report_type: str,
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
    now: Optional[datetime] = None,
    enforce_eligibility: bool = True,
) -> Report:
    if report_type not in REPORT_TYPES:
        raise ValidationError("Invalid report type. Must be: pre_therapy, therapy, or self_insight")
    now = now or utcnow()
    period_end = period_end or now
    include_start = True
    if period_start is None:
        period_start, include_start = default_period(store, user_id, report_type, now)
    if period_start >= period_end:
        raise ValidationError("Report period start must be before its end")

    if enforce_eligibility:
        assert_can_generate(compute_eligibility(store, user_id, now), report_type)

    insight = generate_insights(
        store, user_id, period_start, period_end, now=now, include_start=include_start
    )
    if insight is None:
        raise InsufficientDataError("Insufficient data to generate report")

    check_ins = get_check_ins(store, user_id, period_start, period_end, include_start)
    journals = get_consented_journals(store, user_id, period_start, period_end, include_start)
    metrics = compute_report_metrics(check_ins, journals, period_start, period_end)
    content = create_report_content(store, user_id, insight, metrics, report_type)

    report = Report(
        user_id=user_id,
        type=report_type,
        version=get_next_report_version(store, user_id),
        created_at=now,
        locked=False,
        period_start=period_start,
        period_end=period_end,
        insight_ids=[insight.id],
        content=content,
    )
    report.id = store.add(reports_collection(user_id), to_document(report))
    lock_report(store, user_id, report.id)
    report.locked = True

    if report_type == "therapy":
        mark_journals_processed(store, user_id, [journal.id for journal in journals], report.id, now=now)
        mark_check_ins_processed(store, user_id, [item.id for item in check_ins], now=now)

    logger.info("Report %s (%s v%s) generated for user %s", report.id, report_type, report.version, user_id)
    return report


# client shape


def normalize_report(report: Report) -> dict:
    payload = to_document(report)
    payload["generated_at"] = report.created_at.isoformat()
    payload["period"] = {
        "start": report.period_start.isoformat(),
        "end": report.period_end.isoformat(),
    }
    payload["shares"] = [
        {
            "token": share.id,
            "created_at": share.shared_at.isoformat(),
            "status": "expired" if share.revoked_at else "active",
        }
        for share in report.share_history
    ]
    return payload


def list_reports_with_eligibility(store: DocumentStore, user_id: str, now: Optional[datetime] = None) -> dict:
    reports = get_user_reports(store, user_id)
    eligibility = compute_eligibility(store, user_id, now)
    return {
        "reports": [normalize_report(report) for report in reports],
        "eligibility": eligibility.to_dict(),
        "count": len(reports),
    }
