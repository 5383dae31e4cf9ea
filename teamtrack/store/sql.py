# teamtrack/store/sql.py
import logging
import uuid
from datetime import datetime, timezone
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from teamtrack.core.exceptions import NotFoundError, StoreError
from teamtrack.models.document import Document
from teamtrack.store.base import (
    DocumentStore,
    Listener,
    StoreTransaction,
    Subscription,
    SnapshotCallback,
    apply_update,
    matches,
    prepare_document,
    sort_documents,
    utc_now_iso,
    with_id,
)

logger = logging.getLogger("TeamTrack.Store")

def _row_to_doc(row: Document) -> Dict[str, Any]:
    return with_id(row.doc_id, row.data or {})

def _get_row(db: Session, collection: str, doc_id: str) -> Optional[Document]:
    return db.query(Document).filter(
        Document.collection == collection,
        Document.doc_id == doc_id,
    ).first()

def _list_rows(db: Session, collection: str) -> List[Document]:
    return db.query(Document).filter(Document.collection == collection).order_by(Document.created_at, Document.doc_id).all()

class _SqlTransaction(StoreTransaction):
    """
    Запоминает ревизии прочитанных документов; при фиксации проверяет, что они не изменились.
    """
    def __init__(self, db: Session):
        super().__init__()
        self.db = db
        self.read_revisions: Dict[tuple, Optional[int]] = {}

    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        doc = await self.find(collection, doc_id)
        if doc is None:
            raise NotFoundError(f"Document {collection}/{doc_id} not found.")
        return doc

    async def find(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        row = _get_row(self.db, collection, doc_id)
        self.read_revisions[(collection, doc_id)] = row.revision if row else None
        return _row_to_doc(row) if row else None

    async def list(self, collection: str, where: Optional[Dict[str, Any]] = None,
                   order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        rows = _list_rows(self.db, collection)
        for row in rows:
            self.read_revisions[(collection, row.doc_id)] = row.revision
        docs = [_row_to_doc(r) for r in rows]
        return sort_documents([d for d in docs if matches(d, where)], order_by)

    def new_id(self) -> str:
        return uuid.uuid4().hex

class SqlDocumentStore(DocumentStore):
    """
    Документное хранилище поверх SQLAlchemy: одна таблица documents с JSON-полем data.
    Уведомления подписчикам рассылаются внутри процесса после commit.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._listeners: Dict[str, List[Listener]] = {}

    def _session(self) -> Session:
        return self._session_factory()

    # --- чтение ---

    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        db = self._session()
        try:
            row = _get_row(db, collection, doc_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read {collection}/{doc_id}: {e}")
            raise StoreError(f"Database error while reading {collection}/{doc_id}.") from e
        finally:
            db.close()
        if row is None:
            raise NotFoundError(f"Document {collection}/{doc_id} not found.")
        return _row_to_doc(row)

    def _snapshot(self, collection: str) -> List[Dict[str, Any]]:
        db = self._session()
        try:
            return [_row_to_doc(r) for r in _list_rows(db, collection)]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list {collection}: {e}")
            raise StoreError(f"Database error while listing {collection}.") from e
        finally:
            db.close()

    async def list(self, collection: str, where: Optional[Dict[str, Any]] = None,
                   order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        docs = self._snapshot(collection)
        return sort_documents([d for d in docs if matches(d, where)], order_by)

    # --- запись ---

    def _apply(self, db: Session, operations: List[tuple]) -> List[str]:
        commit_time = utc_now_iso()
        touched = []
        for op, collection, doc_id, payload in operations:
            row = _get_row(db, collection, doc_id)
            if op == "set":
                data = prepare_document(payload, commit_time)
                if row is None:
                    db.add(Document(
                        collection=collection, doc_id=doc_id, data=data, revision=1,
                        created_at=datetime.now(timezone.utc),
                    ))
                else:
                    row.data = data
                    row.revision = row.revision + 1
            elif op == "update":
                if row is None:
                    raise NotFoundError(f"Document {collection}/{doc_id} not found.")
                row.data = apply_update(row.data or {}, payload, commit_time)
                row.revision = row.revision + 1
            elif op == "delete":
                if row is not None:
                    db.delete(row)
            db.flush()
            if collection not in touched:
                touched.append(collection)
        return touched

    def _commit(self, operations: List[tuple], read_revisions: Optional[Dict[tuple, Optional[int]]] = None,
                db: Optional[Session] = None) -> None:
        own_session = db is None
        db = db or self._session()
        try:
            for (collection, doc_id), revision in (read_revisions or {}).items():
                row = _get_row(db, collection, doc_id)
                current = row.revision if row else None
                if current != revision:
                    raise StoreError(f"Transaction conflict on {collection}/{doc_id}.")
            touched = self._apply(db, operations)
            db.commit()
        except NotFoundError:
            db.rollback()
            raise
        except StoreError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to commit {len(operations)} operation(s): {e}")
            raise StoreError("Database error while writing documents.") from e
        finally:
            if own_session:
                db.close()
        for collection in touched:
            self._notify(collection)

    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self._commit([("set", collection, doc_id, data)])
        logger.debug(f"Created {collection}/{doc_id}")
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._commit([("set", collection, doc_id, data)])

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self._commit([("update", collection, doc_id, fields)])

    async def delete(self, collection: str, doc_id: str) -> None:
        self._commit([("delete", collection, doc_id, None)])

    @asynccontextmanager
    async def transaction(self):
        db = self._session()
        try:
            tx = _SqlTransaction(db)
            try:
                yield tx
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Transaction failed: {e}")
                raise StoreError("Database error inside transaction.") from e
            # чтения внутри транзакции не должны удерживать соединение до фиксации
            db.rollback()
            if tx.operations:
                self._commit(tx.operations, tx.read_revisions, db=db)
        finally:
            db.close()

    # --- подписки ---

    def _notify(self, collection: str) -> None:
        listeners = list(self._listeners.get(collection, []))
        if not listeners:
            return
        docs = self._snapshot(collection)
        for listener in listeners:
            listener.deliver([dict(d) for d in docs])

    def subscribe(self, collection: str, callback: SnapshotCallback,
                  where: Optional[Dict[str, Any]] = None,
                  order_by: Optional[str] = None) -> Subscription:
        # начальный снимок до регистрации: при StoreError подписчик не остаётся висеть
        snapshot = self._snapshot(collection)
        listener = Listener(callback, where, order_by)
        self._listeners.setdefault(collection, []).append(listener)

        def _unsubscribe():
            self._listeners[collection].remove(listener)

        listener.deliver(snapshot)
        return Subscription(collection, _unsubscribe)

    def listener_count(self, collection: str) -> int:
        return len(self._listeners.get(collection, []))
