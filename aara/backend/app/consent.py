from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from .models import ConsentLog, to_document, utcnow
from .store import DocumentStore

logger = logging.getLogger(__name__)

CONSENT_LOGS = "consent_logs"


def _log_consent(
    store: DocumentStore,
    user_id: str,
    action: str,
    resource_type: str,
    resource_id: str,
    purpose: str,
    now: Optional[datetime],
) -> ConsentLog:
    entry = ConsentLog(
        user_id=user_id,
        timestamp=now or utcnow(),
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        purpose=purpose,
    )
    entry.id = store.add(CONSENT_LOGS, to_document(entry))
    logger.info("Consent %s for %s %s (user %s)", action, resource_type, resource_id, user_id)
    return entry


def grant_consent(
    store: DocumentStore,
    user_id: str,
    resource_type: str,
    resource_id: str,
    purpose: str,
    now: Optional[datetime] = None,
) -> ConsentLog:
    return _log_consent(store, user_id, "grant", resource_type, resource_id, purpose, now)


def revoke_consent(
    store: DocumentStore,
    user_id: str,
    resource_type: str,
    resource_id: str,
    purpose: str,
    now: Optional[datetime] = None,
) -> ConsentLog:
    return _log_consent(store, user_id, "revoke", resource_type, resource_id, purpose, now)


def get_consent_history(
    store: DocumentStore,
    user_id: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
) -> List[ConsentLog]:
    where = {"user_id": user_id}
    if resource_type:
        where["resource_type"] = resource_type
    if resource_id:
        where["resource_id"] = resource_id
    history = []
    for position, (doc_id, data) in enumerate(store.query(CONSENT_LOGS, where=where)):
        data["id"] = doc_id
        history.append((position, ConsentLog.model_validate(data)))
    # equal timestamps keep write order
    history.sort(key=lambda item: (item[1].timestamp, item[0]), reverse=True)
    return [entry for _, entry in history]


def is_consent_active(store: DocumentStore, user_id: str, resource_type: str, resource_id: str) -> bool:
    history = get_consent_history(store, user_id, resource_type, resource_id)
    if not history:
        return False
    return history[0].action == "grant"


def export_consent_history(store: DocumentStore, user_id: str, now: Optional[datetime] = None) -> dict:
    history = get_consent_history(store, user_id)
    return {
        "user_id": user_id,
        "export_date": (now or utcnow()).isoformat(),
        "total_logs": len(history),
        "consent_logs": [
            {
                "timestamp": log.timestamp.isoformat(),
                "action": log.action,
                "resource_type": log.resource_type,
                "resource_id": log.resource_id,
                "purpose": log.purpose,
            }
            for log in history
        ],
    }


def delete_all_consent_logs(store: DocumentStore, user_id: str) -> int:
    rows = store.query(CONSENT_LOGS, where={"user_id": user_id})
    for doc_id, _ in rows:
        store.delete(CONSENT_LOGS, doc_id)
    logger.info("Deleted %s consent logs for user %s", len(rows), user_id)
    return len(rows)
