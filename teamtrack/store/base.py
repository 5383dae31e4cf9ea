# teamtrack/store/base.py
"""
Абстрактное документное хранилище, которым пользуется координатор.

Коллекции адресуются по имени, документы по непрозрачному строковому ID.
Документ возвращается как dict с ключом "id". Подписчик коллекции получает
полный (отфильтрованный) снимок сразу после подписки и после каждой
зафиксированной записи в эту коллекцию.
"""
import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger("TeamTrack.Store")

# Имена коллекций workspace
MEMBERS = "members"
TASKS = "tasks"
COMMENTS = "comments"
TEAMS = "teams"

class _Sentinel:
    def __init__(self, name: str):
        self._name = name

    def __repr__(self):
        return self._name

    # синглтон: копии документа должны сохранять идентичность
    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self

# Значение поля в update(): удалить поле из документа
DELETE_FIELD = _Sentinel("DELETE_FIELD")
# Значение поля в create/set/update: подставить время фиксации записи
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")

SnapshotCallback = Callable[[List[Dict[str, Any]]], None]

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def resolve_fields(fields: Dict[str, Any], commit_time: str) -> Dict[str, Any]:
    """
    Подставляет SERVER_TIMESTAMP. DELETE_FIELD оставляет как есть (его обрабатывает apply_update).
    """
    resolved = {}
    for key, value in fields.items():
        if value is SERVER_TIMESTAMP:
            resolved[key] = commit_time
        elif value is DELETE_FIELD:
            resolved[key] = DELETE_FIELD
        else:
            resolved[key] = copy.deepcopy(value)
    return resolved

def prepare_document(data: Dict[str, Any], commit_time: str) -> Dict[str, Any]:
    """Данные для create/set: без "id" и без DELETE_FIELD."""
    doc = resolve_fields({k: v for k, v in data.items() if k != "id"}, commit_time)
    return {k: v for k, v in doc.items() if v is not DELETE_FIELD}

def apply_update(current: Dict[str, Any], fields: Dict[str, Any], commit_time: str) -> Dict[str, Any]:
    """
    Частичное обновление: поля из fields перезаписывают текущие, DELETE_FIELD удаляет поле.
    """
    updated = copy.deepcopy(current)
    for key, value in resolve_fields(fields, commit_time).items():
        if key == "id":
            continue
        if value is DELETE_FIELD:
            updated.pop(key, None)
        else:
            updated[key] = value
    return updated

def with_id(doc_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    doc = copy.deepcopy(data)
    doc["id"] = doc_id
    return doc

def matches(doc: Dict[str, Any], where: Optional[Dict[str, Any]]) -> bool:
    if not where:
        return True
    return all(doc.get(field) == value for field, value in where.items())

def sort_documents(docs: List[Dict[str, Any]], order_by: Optional[str]) -> List[Dict[str, Any]]:
    """
    order_by: имя поля, "-поле" для обратного порядка. Документы без поля идут последними.
    """
    if not order_by:
        return docs
    reverse = order_by.startswith("-")
    field = order_by.lstrip("-")
    present = [d for d in docs if d.get(field) is not None]
    missing = [d for d in docs if d.get(field) is None]
    present.sort(key=lambda d: d[field], reverse=reverse)
    return present + missing

class Subscription:
    """
    Дескриптор подписки. cancel() идемпотентен: отписка выполняется ровно один раз.
    """
    def __init__(self, collection: str, unsubscribe: Callable[[], None]):
        self.collection = collection
        self._unsubscribe = unsubscribe
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._unsubscribe()

    def __repr__(self):
        return f"<Subscription(collection='{self.collection}', active={self.active})>"

class Listener:
    """Подписчик коллекции с фильтром и сортировкой."""
    def __init__(self, callback: SnapshotCallback, where: Optional[Dict[str, Any]], order_by: Optional[str]):
        self.callback = callback
        self.where = dict(where or {})
        self.order_by = order_by

    def deliver(self, docs: List[Dict[str, Any]]) -> None:
        snapshot = sort_documents([d for d in docs if matches(d, self.where)], self.order_by)
        try:
            self.callback(snapshot)
        except Exception as e:
            logger.error(f"Snapshot listener failed: {e}", exc_info=True)

class StoreTransaction(ABC):
    """
    Транзакция: чтения выполняются сразу, записи буферизуются и фиксируются атомарно
    при выходе из контекста без исключения.
    """

    def __init__(self):
        self.operations: List[tuple] = []

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def find(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def list(self, collection: str, where: Optional[Dict[str, Any]] = None,
                   order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def new_id(self) -> str:
        ...

    def create(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = self.new_id()
        self.operations.append(("set", collection, doc_id, data))
        return doc_id

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.operations.append(("set", collection, doc_id, data))

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        self.operations.append(("update", collection, doc_id, fields))

    def delete(self, collection: str, doc_id: str) -> None:
        self.operations.append(("delete", collection, doc_id, None))

class DocumentStore(ABC):
    """
    Контракт документного хранилища. Сбои бэкенда поднимаются как StoreError,
    отсутствие документа как NotFoundError. Повторов хранилище не делает.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def list(self, collection: str, where: Optional[Dict[str, Any]] = None,
                   order_by: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def create(self, collection: str, data: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        ...

    @abstractmethod
    def subscribe(self, collection: str, callback: SnapshotCallback,
                  where: Optional[Dict[str, Any]] = None,
                  order_by: Optional[str] = None) -> Subscription:
        ...

    @abstractmethod
    def transaction(self):
        """Асинхронный контекстный менеджер, отдающий StoreTransaction."""
        ...
