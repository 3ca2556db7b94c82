from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError

from .consent import grant_consent, revoke_consent
from .errors import NotFoundError, ValidationError
from .models import ChatSummary, Journal, in_period, to_document, utcnow
from .store import DocumentStore, user_collection

logger = logging.getLogger(__name__)

CHATS = "chats"
REPORT_CONSENT_PURPOSE = "Include in therapy report"


def journals_collection(user_id: str) -> str:
    return user_collection(user_id, "journal")


def _load_journal(user_id: str, doc_id: str, data: dict) -> Journal:
    data.setdefault("user_id", user_id)
    data["id"] = doc_id
    return Journal.model_validate(data)


def create_journal(
    store: DocumentStore,
    user_id: str,
    content: str,
    title: Optional[str] = None,
    category: Optional[str] = None,
    is_one_line: bool = False,
    now: Optional[datetime] = None,
) -> Journal:
    from .eligibility import record_activity

    now = now or utcnow()
    try:
        journal = Journal(
            user_id=user_id,
            created_at=now,
            updated_at=now,
            title=title,
            content=content,
            category=category.strip() if category and category.strip() else None,
            is_one_line=is_one_line,
        )
    except PydanticValidationError as exc:
        raise ValidationError("Journal content cannot be empty") from exc
    journal.id = store.add(journals_collection(user_id), to_document(journal))
    record_activity(store, user_id, now)
    logger.info("Journal %s stored for user %s", journal.id, user_id)
    return journal


def get_journal(store: DocumentStore, user_id: str, journal_id: str) -> Journal:
    data = store.get(journals_collection(user_id), journal_id)
    if data is None:
        raise NotFoundError("Journal entry not found")
    return _load_journal(user_id, journal_id, data)


def get_journals(store: DocumentStore, user_id: str) -> List[Journal]:
    """All journal entries, oldest first."""
    rows = store.query(journals_collection(user_id))
    journals = [_load_journal(user_id, doc_id, data) for doc_id, data in rows]
    journals.sort(key=lambda item: item.created_at)
    return journals


def set_journal_consent(
    store: DocumentStore,
    user_id: str,
    journal_id: str,
    include: bool,
    now: Optional[datetime] = None,
) -> Journal:
    now = now or utcnow()
    journal = get_journal(store, user_id, journal_id)
    if journal.include_in_report == include:
        return journal
    journal.include_in_report = include
    journal.consent_given_at = now if include else None
    journal.updated_at = now
    store.update(journals_collection(user_id), journal_id, {
        "include_in_report": include,
        "consent_given_at": now.isoformat() if include else None,
        "updated_at": now.isoformat(),
    })
    if include:
        grant_consent(store, user_id, "journal", journal_id, REPORT_CONSENT_PURPOSE, now=now)
    else:
        revoke_consent(store, user_id, "journal", journal_id, REPORT_CONSENT_PURPOSE, now=now)
    return journal


def get_consented_journals(
    store: DocumentStore,
    user_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    include_start: bool = True,
) -> List[Journal]:
    """Journals the user opted into reports that no report has consumed yet."""
    return [
        journal
        for journal in get_journals(store, user_id)
        if journal.include_in_report
        and not journal.processed
        and in_period(journal.created_at, start, end, include_start)
    ]


def mark_journals_processed(
    store: DocumentStore,
    user_id: str,
    journal_ids: List[str],
    report_id: str,
    now: Optional[datetime] = None,
) -> int:
    now = now or utcnow()
    collection = journals_collection(user_id)
    for journal_id in journal_ids:
        store.update(collection, journal_id, {
            "processed": True,
            "processed_at": now.isoformat(),
            "processed_in_report_id": report_id,
        })
    return len(journal_ids)


def add_chat_summary(
    store: DocumentStore,
    user_id: str,
    session_id: str,
    summary: str,
    now: Optional[datetime] = None,
) -> ChatSummary:
    if not summary or not summary.strip():
        raise ValidationError("Chat summary cannot be empty")
    now = now or utcnow()
    item = ChatSummary(user_id=user_id, session_id=session_id, created_at=now, summary=summary.strip())
    store.set(CHATS, session_id, to_document(item))
    item.id = session_id
    return item


def get_chat_summaries(
    store: DocumentStore,
    user_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    include_start: bool = True,
) -> List[ChatSummary]:
    summaries = []
    for doc_id, data in store.query(CHATS, where={"user_id": user_id}):
        if not data.get("summary"):
            continue
        data["id"] = doc_id
        item = ChatSummary.model_validate(data)
        if in_period(item.created_at, start, end, include_start):
            summaries.append(item)
    summaries.sort(key=lambda item: item.created_at)
    return summaries
