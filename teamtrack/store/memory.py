# teamtrack/store/memory.py
import asyncio
import copy
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from teamtrack.core.exceptions import NotFoundError
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

class _MemoryTransaction(StoreTransaction):
    def __init__(self, store: "InMemoryDocumentStore"):
        super().__init__()
        self._store = store

    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        return self._store._get(collection, doc_id)

    async def find(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        data = self._store._collections.get(collection, {}).get(doc_id)
        return with_id(doc_id, data) if data is not None else None

    async def list(self, collection: str, where: Optional[Dict[str, Any]] = None,
                   order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._store._list(collection, where, order_by)

    def new_id(self) -> str:
        return uuid.uuid4().hex

class InMemoryDocumentStore(DocumentStore):
    """
    Хранилище в памяти процесса. Записи сериализуются через asyncio.Lock,
    уведомления подписчикам доставляются синхронно после фиксации записи.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: Dict[str, List[Listener]] = {}
        self._lock = asyncio.Lock()

    # --- чтение ---

    def _get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        data = self._collections.get(collection, {}).get(doc_id)
        if data is None:
            raise NotFoundError(f"Document {collection}/{doc_id} not found.")
        return with_id(doc_id, data)

    def _list(self, collection: str, where: Optional[Dict[str, Any]], order_by: Optional[str]) -> List[Dict[str, Any]]:
        docs = [with_id(doc_id, data) for doc_id, data in self._collections.get(collection, {}).items()]
        return sort_documents([d for d in docs if matches(d, where)], order_by)

    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        return self._get(collection, doc_id)

    async def list(self, collection: str, where: Optional[Dict[str, Any]] = None,
                   order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._list(collection, where, order_by)

    # --- запись ---

    def _apply(self, operations: List[tuple]) -> None:
        """
        Применяет операции к копии коллекций; при ошибке исходное состояние не меняется.
        """
        commit_time = utc_now_iso()
        staged = {name: dict(docs) for name, docs in self._collections.items()}
        touched = []
        for op, collection, doc_id, payload in operations:
            docs = staged.setdefault(collection, {})
            if op == "set":
                docs[doc_id] = prepare_document(payload, commit_time)
            elif op == "update":
                if doc_id not in docs:
                    raise NotFoundError(f"Document {collection}/{doc_id} not found.")
                docs[doc_id] = apply_update(docs[doc_id], payload, commit_time)
            elif op == "delete":
                docs.pop(doc_id, None)
            if collection not in touched:
                touched.append(collection)
        self._collections = staged
        for collection in touched:
            self._notify(collection)

    async def _write(self, operations: List[tuple]) -> None:
        async with self._lock:
            self._apply(operations)

    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        await self._write([("set", collection, doc_id, data)])
        logger.debug(f"Created {collection}/{doc_id}")
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        await self._write([("set", collection, doc_id, data)])

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        await self._write([("update", collection, doc_id, fields)])

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._write([("delete", collection, doc_id, None)])

    @asynccontextmanager
    async def transaction(self):
        async with self._lock:
            tx = _MemoryTransaction(self)
            yield tx
            if tx.operations:
                self._apply(tx.operations)

    # --- подписки ---

    def _notify(self, collection: str) -> None:
        docs = self._list(collection, None, None)
        for listener in list(self._listeners.get(collection, [])):
            listener.deliver(copy.deepcopy(docs))

    def subscribe(self, collection: str, callback: SnapshotCallback,
                  where: Optional[Dict[str, Any]] = None,
                  order_by: Optional[str] = None) -> Subscription:
        snapshot = self._list(collection, None, None)
        listener = Listener(callback, where, order_by)
        self._listeners.setdefault(collection, []).append(listener)

        def _unsubscribe():
            self._listeners[collection].remove(listener)

        listener.deliver(snapshot)
        return Subscription(collection, _unsubscribe)

    def listener_count(self, collection: str) -> int:
        return len(self._listeners.get(collection, []))
