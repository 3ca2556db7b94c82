from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .errors import NotFoundError, ShareRevokedError, ValidationError
from .models import ShareRecord, to_document, utcnow
from .report_engine import get_report, get_user_reports, reports_collection
from .store import DocumentStore

logger = logging.getLogger(__name__)

SHARE_TOKENS = "share_tokens"
SHARE_METHODS = {"pdf", "secure_link"}


@dataclass
class ShareAccess:
    user_id: str
    report_id: str
    share_id: str
    access_count: int


def shares_collection(user_id: str, report_id: str) -> str:
    return f"{reports_collection(user_id)}/{report_id}/shares"


def generate_secure_token() -> str:
    return secrets.token_hex(32)


def _load_share(doc_id: str, data: dict) -> ShareRecord:
    data["id"] = doc_id
    return ShareRecord.model_validate(data)


def get_shares(store: DocumentStore, user_id: str, report_id: str) -> List[ShareRecord]:
    shares = [_load_share(doc_id, data) for doc_id, data in store.query(shares_collection(user_id, report_id))]
    shares.sort(key=lambda item: item.shared_at)
    return shares


def _sync_share_history(store: DocumentStore, user_id: str, report_id: str) -> None:
    history = [to_document(share) for share in get_shares(store, user_id, report_id)]
    store.update(reports_collection(user_id), report_id, {"share_history": history})


def create_share(
    store: DocumentStore,
    user_id: str,
    report_id: str,
    share_method: str,
    recipient_type: str = "therapist",
    now: Optional[datetime] = None,
) -> ShareRecord:
    if share_method not in SHARE_METHODS:
        raise ValidationError("Invalid share method. Must be: pdf or secure_link")
    now = now or utcnow()
    get_report(store, user_id, report_id)

    share = ShareRecord(
        report_id=report_id,
        shared_at=now,
        share_method=share_method,
        recipient_type=recipient_type,
        access_token=generate_secure_token() if share_method == "secure_link" else None,
    )
    share.id = store.add(shares_collection(user_id, report_id), to_document(share))
    if share.access_token:
        store.set(SHARE_TOKENS, share.access_token, {
            "user_id": user_id,
            "report_id": report_id,
            "share_id": share.id,
        })
    _sync_share_history(store, user_id, report_id)
    logger.info("Share %s (%s) created for report %s", share.id, share_method, report_id)
    return share


def validate_share_token(store: DocumentStore, token: str, now: Optional[datetime] = None) -> ShareAccess:
    now = now or utcnow()
    index = store.get(SHARE_TOKENS, token) if token else None
    if index is None:
        raise NotFoundError("Invalid or expired share link")
    user_id = index["user_id"]
    report_id = index["report_id"]
    share_id = index["share_id"]

    collection = shares_collection(user_id, report_id)
    data = store.get(collection, share_id)
    if data is None:
        raise NotFoundError("Invalid or expired share link")
    share = _load_share(share_id, data)
    if share.revoked_at is not None:
        raise ShareRevokedError("This share link has been revoked")

    access_count = share.access_count + 1
    store.update(collection, share_id, {
        "access_count": access_count,
        "accessed_at": (share.accessed_at or now).isoformat(),
    })
    _sync_share_history(store, user_id, report_id)
    return ShareAccess(user_id=user_id, report_id=report_id, share_id=share_id, access_count=access_count)


def revoke_share(
    store: DocumentStore,
    user_id: str,
    report_id: str,
    share_id: str,
    now: Optional[datetime] = None,
) -> ShareRecord:
    now = now or utcnow()
    collection = shares_collection(user_id, report_id)
    data = store.get(collection, share_id)
    if data is None:
        raise NotFoundError("Share not found")
    share = _load_share(share_id, data)
    if share.revoked_at is None:
        share.revoked_at = now
        store.update(collection, share_id, {"revoked_at": now.isoformat()})
        _sync_share_history(store, user_id, report_id)
        logger.info("Share %s revoked for report %s", share_id, report_id)
    return share


def revoke_all_shares(store: DocumentStore, user_id: str, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    revoked = 0
    for report in get_user_reports(store, user_id):
        for share in get_shares(store, user_id, report.id):
            if share.revoked_at is None:
                revoke_share(store, user_id, report.id, share.id, now=now)
                revoked += 1
    return revoked
