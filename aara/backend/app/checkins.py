from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from . import config
from .errors import CheckInTooSoonError
from .models import CheckIn, CheckInResponses, in_period, to_document, utcnow
from .profiles import load_profile, save_profile
from .store import DocumentStore, user_collection

logger = logging.getLogger(__name__)

TOO_SOON_MESSAGE = "You can check in once every 24 hours. Come back tomorrow!"


@dataclass
class CheckInWindow:
    allowed: bool
    reason: Optional[str] = None
    last_check_in: Optional[datetime] = None
    retry_after_seconds: int = 0


def check_ins_collection(user_id: str) -> str:
    return user_collection(user_id, "check_ins")


def _load(user_id: str, doc_id: str, data: dict) -> CheckIn:
    data.setdefault("user_id", user_id)
    data["id"] = doc_id
    return CheckIn.model_validate(data)


def get_all_check_ins(store: DocumentStore, user_id: str) -> List[CheckIn]:
    """All check-ins for a user, oldest first."""
    rows = store.query(check_ins_collection(user_id))
    check_ins = [_load(user_id, doc_id, data) for doc_id, data in rows]
    check_ins.sort(key=lambda item: item.created_at)
    return check_ins


def get_check_ins(
    store: DocumentStore,
    user_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    include_start: bool = True,
) -> List[CheckIn]:
    """Check-ins inside ``[start, end]`` (``(start, end]`` without ``include_start``), newest first."""
    items = [
        item
        for item in get_all_check_ins(store, user_id)
        if in_period(item.created_at, start, end, include_start)
    ]
    items.reverse()
    return items


def get_latest_check_in(store: DocumentStore, user_id: str) -> Optional[CheckIn]:
    check_ins = get_all_check_ins(store, user_id)
    return check_ins[-1] if check_ins else None


def get_unprocessed_check_ins(store: DocumentStore, user_id: str) -> List[CheckIn]:
    return [item for item in get_all_check_ins(store, user_id) if not item.processed]


def get_first_check_in_date(store: DocumentStore, user_id: str) -> Optional[datetime]:
    check_ins = get_all_check_ins(store, user_id)
    return check_ins[0].created_at if check_ins else None


def get_check_in_count(store: DocumentStore, user_id: str) -> int:
    return len(store.query(check_ins_collection(user_id)))


def get_current_check_in_level(store: DocumentStore, user_id: str) -> int:
    return load_profile(store, user_id).check_in_level or 1


def can_check_in(store: DocumentStore, user_id: str, now: Optional[datetime] = None) -> CheckInWindow:
    now = now or utcnow()
    latest = get_latest_check_in(store, user_id)
    if latest is None:
        return CheckInWindow(allowed=True)
    interval = timedelta(hours=config.CHECKIN_INTERVAL_HOURS)
    elapsed = now - latest.created_at
    if elapsed < interval:
        retry_after = max(60, int((interval - elapsed).total_seconds()))
        return CheckInWindow(
            allowed=False,
            reason=TOO_SOON_MESSAGE,
            last_check_in=latest.created_at,
            retry_after_seconds=retry_after,
        )
    return CheckInWindow(allowed=True, last_check_in=latest.created_at)


def create_check_in(
    store: DocumentStore,
    user_id: str,
    responses: CheckInResponses,
    level: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CheckIn:
    from .eligibility import record_activity

    now = now or utcnow()
    window = can_check_in(store, user_id, now)
    if not window.allowed:
        raise CheckInTooSoonError(window.reason or TOO_SOON_MESSAGE, window.retry_after_seconds)

    profile = load_profile(store, user_id)
    check_in_level = level or profile.check_in_level or 1
    check_in = CheckIn(
        user_id=user_id,
        created_at=now,
        level=check_in_level,
        responses=responses,
    )
    doc_id = store.add(check_ins_collection(user_id), to_document(check_in))
    check_in.id = doc_id

    profile.last_check_in_date = now
    profile.check_in_level = min(check_in_level + 1, config.MAX_CHECKIN_LEVEL)
    save_profile(store, profile)
    record_activity(store, user_id, now)

    logger.info("Check-in %s stored for user %s at level %s", doc_id, user_id, check_in_level)
    return check_in


def mark_check_ins_processed(
    store: DocumentStore,
    user_id: str,
    check_in_ids: List[str],
    now: Optional[datetime] = None,
) -> int:
    now = now or utcnow()
    collection = check_ins_collection(user_id)
    for check_in_id in check_in_ids:
        store.update(collection, check_in_id, {
            "processed": True,
            "processed_at": now.isoformat(),
        })
    return len(check_in_ids)
