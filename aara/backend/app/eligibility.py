from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Optional

from . import config
from .checkins import check_ins_collection, get_all_check_ins
from .errors import NotEligibleError
from .journals import get_journals, journals_collection
from .models import utcnow
from .profiles import load_profile, profile_exists, save_profile
from .store import DocumentStore, user_collection

logger = logging.getLogger(__name__)

PAID_FEATURES = {"therapist_match", "chat_context", "data_history"}


@dataclass
class ReportEligibility:
    has_baseline: bool
    first_check_in: Optional[datetime]
    check_in_count: int
    days_since_first: float
    days_remaining: int
    check_ins_remaining: int
    can_generate_pre_therapy: bool
    next_report_type: str

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["first_check_in"] = self.first_check_in.isoformat() if self.first_check_in else None
        return payload


def has_baseline_report(store: DocumentStore, user_id: str) -> bool:
    return bool(store.query(user_collection(user_id, "reports"), where={"type": "pre_therapy"}))


def compute_eligibility(store: DocumentStore, user_id: str, now: Optional[datetime] = None) -> ReportEligibility:
    now = now or utcnow()
    check_ins = get_all_check_ins(store, user_id)
    first_check_in = check_ins[0].created_at if check_ins else None
    check_in_count = len(check_ins)
    has_baseline = has_baseline_report(store, user_id)

    days_since_first = 0.0
    days_remaining = config.PRE_THERAPY_MIN_DAYS
    if first_check_in is not None:
        days_since_first = (now - first_check_in).total_seconds() / 86400
        days_remaining = max(0, math.ceil(config.PRE_THERAPY_MIN_DAYS - days_since_first))

    return ReportEligibility(
        has_baseline=has_baseline,
        first_check_in=first_check_in,
        check_in_count=check_in_count,
        days_since_first=round(days_since_first, 2),
        days_remaining=days_remaining,
        check_ins_remaining=max(0, config.PRE_THERAPY_MIN_CHECKINS - check_in_count),
        can_generate_pre_therapy=(
            not has_baseline
            and days_remaining == 0
            and check_in_count >= config.PRE_THERAPY_MIN_CHECKINS
        ),
        next_report_type="therapy" if has_baseline else "pre_therapy",
    )


def assert_can_generate(eligibility: ReportEligibility, report_type: str) -> None:
    if report_type == "pre_therapy":
        if eligibility.has_baseline:
            raise NotEligibleError("A pre-therapy baseline report already exists.", eligibility.to_dict())
        if not eligibility.can_generate_pre_therapy:
            raise NotEligibleError(
                f"Pre-therapy report unlocks in {eligibility.days_remaining} day(s) "
                f"and {eligibility.check_ins_remaining} more check-in(s).",
                eligibility.to_dict(),
            )
    elif report_type == "therapy":
        if not eligibility.has_baseline:
            raise NotEligibleError("Generate a pre-therapy report before a therapy report.", eligibility.to_dict())
    elif eligibility.check_in_count < config.PRE_THERAPY_MIN_CHECKINS:
        raise NotEligibleError(
            f"Complete {eligibility.check_ins_remaining} more check-in(s) to unlock insights.",
            eligibility.to_dict(),
        )


def can_access_feature(feature: str, is_paid: bool, active_days: int) -> bool:
    if feature == "mood_flow":
        return True
    if feature == "reports":
        return is_paid and active_days >= config.REPORT_UNLOCK_ACTIVE_DAYS
    if feature in PAID_FEATURES:
        return is_paid
    return True


def unlock_progress(active_days: int) -> dict:
    return {"current": active_days, "required": config.REPORT_UNLOCK_ACTIVE_DAYS}


def record_activity(store: DocumentStore, user_id: str, now: Optional[datetime] = None) -> int:
    """Count a usage day at most once per calendar day. Returns the active day total."""
    now = now or utcnow()
    profile = load_profile(store, user_id)
    today = now.date()
    if profile.last_active_date != today:
        profile.last_active_date = today
        profile.active_days_count += 1
        save_profile(store, profile)
    return profile.active_days_count


def prune_trial_history(store: DocumentStore, user_id: str, now: Optional[datetime] = None) -> dict:
    """Trial users keep a rolling window of history; paid users keep everything."""
    now = now or utcnow()
    if not profile_exists(store, user_id) or load_profile(store, user_id).is_paid:
        return {"check_ins": 0, "journals": 0}
    cutoff = now - timedelta(days=config.TRIAL_HISTORY_DAYS)

    removed_check_ins = 0
    for item in get_all_check_ins(store, user_id):
        if item.created_at < cutoff:
            store.delete(check_ins_collection(user_id), item.id)
            removed_check_ins += 1
    removed_journals = 0
    for journal in get_journals(store, user_id):
        if journal.created_at < cutoff:
            store.delete(journals_collection(user_id), journal.id)
            removed_journals += 1

    if removed_check_ins or removed_journals:
        logger.info(
            "Pruned trial history for user %s: %s check-ins, %s journals",
            user_id,
            removed_check_ins,
            removed_journals,
        )
    return {"check_ins": removed_check_ins, "journals": removed_journals}
