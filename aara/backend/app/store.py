from __future__ import annotations

import copy
import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from sqlalchemy import Column, DateTime, Integer, String, UniqueConstraint, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from . import config
from .errors import NotFoundError, StoreError
from .models import utcnow

logger = logging.getLogger(__name__)

Base = declarative_base()

QueryResult = List[Tuple[str, dict]]


def new_doc_id() -> str:
    return uuid.uuid4().hex


def matches(data: dict, where: Optional[dict]) -> bool:
    if not where:
        return True
    return all(data.get(key) == value for key, value in where.items())


class DocumentStore(ABC):
    """Key-value document store addressed by slash-separated collection paths.

    Only equality filters are supported; callers order and range-filter on parsed models.
    """

    def add(self, collection: str, data: dict) -> str:
        doc_id = new_doc_id()
        self.set(collection, doc_id, data)
        return doc_id

    @abstractmethod
    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        """Create or replace a document; ``merge`` shallow-merges into an existing one."""

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """Return the document or ``None``."""

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        """Shallow update; raises ``NotFoundError`` when the document is missing."""

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Remove the document; missing documents are ignored."""

    @abstractmethod
    def query(self, collection: str, where: Optional[dict] = None) -> QueryResult:
        """Documents matching every ``where`` equality, in insertion order."""


class MemoryDocumentStore(DocumentStore):
    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, dict]] = {}

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        docs = self._collections.setdefault(collection, {})
        if merge and doc_id in docs:
            docs[doc_id].update(copy.deepcopy(data))
        else:
            docs[doc_id] = copy.deepcopy(data)

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        data = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        docs = self._collections.get(collection, {})
        if doc_id not in docs:
            raise NotFoundError(f"Document {collection}/{doc_id} not found")
        docs[doc_id].update(copy.deepcopy(fields))

    def delete(self, collection: str, doc_id: str) -> None:
        self._collections.get(collection, {}).pop(doc_id, None)

    def query(self, collection: str, where: Optional[dict] = None) -> QueryResult:
        docs = self._collections.get(collection, {})
        return [
            (doc_id, copy.deepcopy(data))
            for doc_id, data in docs.items()
            if matches(data, where)
        ]


class DocumentRow(Base):
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, index=True)
    collection = Column(String, index=True, nullable=False)
    doc_id = Column(String, index=True, nullable=False)
    json_payload = Column(String, nullable=False, default="{}")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("collection", "doc_id", name="uq_documents_collection_doc"),
    )


class SqlDocumentStore(DocumentStore):
    def __init__(self, database_url: str, engine=None) -> None:
        if engine is None:
            connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
            engine = create_engine(database_url, connect_args=connect_args)
        self.engine = engine
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        Base.metadata.create_all(engine)

    def _find(self, db, collection: str, doc_id: str) -> Optional[DocumentRow]:
        return (
            db.query(DocumentRow)
            .filter(DocumentRow.collection == collection, DocumentRow.doc_id == doc_id)
            .first()
        )

    def set(self, collection: str, doc_id: str, data: dict, merge: bool = False) -> None:
        db = self.SessionLocal()
        try:
            row = self._find(db, collection, doc_id)
            now = utcnow()
            if row is None:
                db.add(DocumentRow(
                    collection=collection,
                    doc_id=doc_id,
                    json_payload=json.dumps(data),
                    created_at=now,
                    updated_at=now,
                ))
            else:
                payload = json.loads(row.json_payload) if merge else {}
                payload.update(data)
                row.json_payload = json.dumps(payload)
                row.updated_at = now
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to write %s/%s", collection, doc_id)
            raise StoreError(f"Failed to write {collection}/{doc_id}") from exc
        finally:
            db.close()

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        db = self.SessionLocal()
        try:
            row = self._find(db, collection, doc_id)
            return json.loads(row.json_payload) if row else None
        except SQLAlchemyError as exc:
            logger.exception("Failed to read %s/%s", collection, doc_id)
            raise StoreError(f"Failed to read {collection}/{doc_id}") from exc
        finally:
            db.close()

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        db = self.SessionLocal()
        try:
            row = self._find(db, collection, doc_id)
            if row is None:
                raise NotFoundError(f"Document {collection}/{doc_id} not found")
            payload = json.loads(row.json_payload)
            payload.update(fields)
            row.json_payload = json.dumps(payload)
            row.updated_at = utcnow()
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to update %s/%s", collection, doc_id)
            raise StoreError(f"Failed to update {collection}/{doc_id}") from exc
        finally:
            db.close()

    def delete(self, collection: str, doc_id: str) -> None:
        db = self.SessionLocal()
        try:
            row = self._find(db, collection, doc_id)
            if row is not None:
                db.delete(row)
                db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Failed to delete %s/%s", collection, doc_id)
            raise StoreError(f"Failed to delete {collection}/{doc_id}") from exc
        finally:
            db.close()

    def query(self, collection: str, where: Optional[dict] = None) -> QueryResult:
        db = self.SessionLocal()
        try:
            rows = (
                db.query(DocumentRow)
                .filter(DocumentRow.collection == collection)
                .order_by(DocumentRow.id.asc())
                .all()
            )
            results = []
            for row in rows:
                data = json.loads(row.json_payload)
                if matches(data, where):
                    results.append((row.doc_id, data))
            return results
        except SQLAlchemyError as exc:
            logger.exception("Failed to query %s", collection)
            raise StoreError(f"Failed to query {collection}") from exc
        finally:
            db.close()


def build_store() -> DocumentStore:
    kind = config.resolve_store_kind()
    if kind == "memory":
        return MemoryDocumentStore()
    db_path = config.resolve_db_path()
    logger.info("Using SQL document store at %s", db_path)
    return SqlDocumentStore(f"sqlite:///{db_path}")


def user_collection(user_id: str, name: str) -> str:
    return f"users/{user_id}/{name}"
