from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from . import config
from .errors import ConsentRequiredError, InvalidTransitionError, NotFoundError
from .models import USER_STATES, StateChange, UserProfile, utcnow
from .profiles import load_profile, profile_exists, save_profile
from .report_engine import get_user_reports
from .store import DocumentStore

logger = logging.getLogger(__name__)

VALID_TRANSITIONS = {
    "exploration": ["preparing", "in_therapy"],
    "preparing": ["in_therapy", "exploration"],
    "in_therapy": ["maintenance", "preparing"],
    "maintenance": ["in_therapy"],
}


@dataclass
class TransitionSuggestion:
    suggested_state: str
    reason: str


def get_user_state(store: DocumentStore, user_id: str, now: Optional[datetime] = None) -> UserProfile:
    if not profile_exists(store, user_id):
        raise NotFoundError("User not found")
    profile = load_profile(store, user_id)
    if profile.state is None:
        profile.state = "exploration"
        profile.state_changed_at = now or utcnow()
        profile.state_history = []
        save_profile(store, profile)
    return profile


def is_valid_transition(from_state: str, to_state: str, trigger_type: str) -> bool:
    if from_state == to_state:
        return True
    if trigger_type == "user_action":
        return True
    return to_state in VALID_TRANSITIONS.get(from_state, [])


def update_user_state(
    store: DocumentStore,
    user_id: str,
    new_state: str,
    trigger_type: str,
    user_confirmed: bool,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> UserProfile:
    now = now or utcnow()
    if new_state not in USER_STATES:
        raise InvalidTransitionError(f"Unknown state: {new_state}")
    profile = get_user_state(store, user_id, now)
    current = profile.state
    if current == new_state:
        return profile
    if not is_valid_transition(current, new_state, trigger_type):
        raise InvalidTransitionError(f"Invalid transition from {current} to {new_state}")
    if not user_confirmed:
        raise ConsentRequiredError("User confirmation required for state change")

    profile.state_history.append(StateChange(
        from_state=current,
        to_state=new_state,
        changed_at=now,
        trigger_type=trigger_type,
        user_confirmed=user_confirmed,
        reason=reason,
    ))
    profile.state = new_state
    profile.state_changed_at = now
    save_profile(store, profile)
    logger.info("User %s moved from %s to %s (%s)", user_id, current, new_state, trigger_type)
    return profile


def get_state_history(store: DocumentStore, user_id: str) -> List[StateChange]:
    return get_user_state(store, user_id).state_history


def track_therapist_page_view(store: DocumentStore, user_id: str) -> int:
    profile = load_profile(store, user_id)
    profile.therapist_page_views += 1
    save_profile(store, profile)
    return profile.therapist_page_views


def detect_transition_triggers(
    store: DocumentStore,
    user_id: str,
    now: Optional[datetime] = None,
) -> Optional[TransitionSuggestion]:
    now = now or utcnow()
    profile = get_user_state(store, user_id, now)

    if profile.state == "exploration":
        if profile.therapist_page_views >= config.THERAPIST_VIEWS_FOR_PREPARING:
            return TransitionSuggestion(
                "preparing",
                "You've been exploring therapists. Ready to prepare for therapy?",
            )
        return None

    therapy_reports = [report for report in get_user_reports(store, user_id) if report.type == "therapy"]

    if profile.state == "preparing":
        if any(report.share_history for report in therapy_reports):
            return TransitionSuggestion(
                "in_therapy",
                "You've shared your first therapy report. Update your status?",
            )
        return None

    if profile.state == "in_therapy" and therapy_reports:
        latest = therapy_reports[0]
        if latest.share_history:
            last_shared = max(share.shared_at for share in latest.share_history)
            if (now - last_shared).days >= config.MAINTENANCE_AFTER_DAYS:
                return TransitionSuggestion(
                    "maintenance",
                    "It's been 90 days since your last report. In maintenance mode now?",
                )
    return None
