"""Document-style persistence over the SQLAlchemy tables.

Each collection maps to one ORM model; documents travel as plain dicts keyed
by column name. Writes notify in-process change listeners registered through
``subscribe``.
"""

import logging
import operator
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Callable, Iterable, Optional, Sequence

from sqlalchemy import inspect as sa_inspect, select, update as sa_update
from sqlalchemy.exc import SQLAlchemyError

from . import models

logger = logging.getLogger(__name__)

COLLECTIONS = {
    "appointments": models.Appointment,
    "users": models.User,
    "doctorAvailability": models.DoctorAvailability,
    "notifications": models.Notification,
    "activityLogs": models.ActivityLog,
}

Filter = tuple[str, str, Any]
Document = dict[str, Any]
Listener = Callable[[list[Document]], None]

_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "in": lambda column, value: column.in_(list(value)),
}


class StoreError(Exception):
    """Persistence failure; always surfaced to the caller."""


class DocumentNotFound(StoreError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


@lru_cache(maxsize=None)
def _field_map(model) -> dict[str, str]:
    """Column name -> mapped attribute key (they differ for ``metadata``)."""
    return {prop.columns[0].name: prop.key for prop in sa_inspect(model).column_attrs}


def _to_document(obj) -> Document:
    return {name: getattr(obj, key) for name, key in _field_map(type(obj)).items()}


@dataclass(eq=False)
class Subscription:
    collection: str
    filters: tuple
    order_by: Optional[str]
    callback: Listener
    active: bool = field(default=True)


class DocumentStore:
    """Create/get/update/query/subscribe over the appointment collections.

    Every operation opens its own session. Listeners run synchronously after
    the write that triggered them; writes made from inside a listener are
    published once the current round of listeners has finished.
    """

    def __init__(self, session_factory, clock: Optional[Callable[[], datetime]] = None):
        self._session_factory = session_factory
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._listeners: dict[str, list[Subscription]] = {}
        self._pending: deque = deque()
        self._publishing = False

    # --- helpers ---------------------------------------------------------

    def _model(self, collection: str):
        try:
            return COLLECTIONS[collection]
        except KeyError:
            raise StoreError(f"Unknown collection '{collection}'") from None

    def _attributes(self, model, fields: dict) -> dict:
        mapping = _field_map(model)
        unknown = set(fields) - set(mapping)
        if unknown:
            raise StoreError(f"Unknown fields for {model.__tablename__}: {', '.join(sorted(unknown))}")
        return {mapping[name]: value for name, value in fields.items()}

    def _column(self, model, name: str):
        key = _field_map(model).get(name)
        if key is None:
            raise StoreError(f"Unknown field '{name}' for {model.__tablename__}")
        return getattr(model, key)

    def _conditions(self, model, filters: Iterable[Filter]) -> list:
        conditions = []
        for name, op, value in filters:
            try:
                compare = _OPERATORS[op]
            except KeyError:
                raise StoreError(f"Unsupported filter operator '{op}'") from None
            conditions.append(compare(self._column(model, name), value))
        return conditions

    # --- operations ------------------------------------------------------

    def get(self, collection: str, doc_id: str) -> Document:
        model = self._model(collection)
        db = self._session_factory()
        try:
            obj = db.get(model, doc_id)
            if obj is None:
                raise DocumentNotFound(collection, doc_id)
            return _to_document(obj)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to read {collection}/{doc_id}: {e}") from e
        finally:
            db.close()

    def create(self, collection: str, fields: dict, doc_id: Optional[str] = None) -> str:
        model = self._model(collection)
        now = self._clock()
        new_id = doc_id or uuid.uuid4().hex
        payload = {"created_at": now, "updated_at": now, **fields, "id": new_id}
        attributes = self._attributes(model, payload)

        db = self._session_factory()
        try:
            db.add(model(**attributes))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to create {collection} document: {e}") from e
        finally:
            db.close()

        self._publish(collection)
        return new_id

    def update(self, collection: str, doc_id: str, fields: dict) -> None:
        model = self._model(collection)
        payload = {"updated_at": self._clock(), **fields}
        attributes = self._attributes(model, payload)

        db = self._session_factory()
        try:
            obj = db.get(model, doc_id)
            if obj is None:
                raise DocumentNotFound(collection, doc_id)
            for key, value in attributes.items():
                setattr(obj, key, value)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to update {collection}/{doc_id}: {e}") from e
        finally:
            db.close()

        self._publish(collection)

    def increment(self, collection: str, doc_id: str, field_name: str, amount: int = 1) -> None:
        """Atomically add ``amount`` to a numeric field."""
        model = self._model(collection)
        column = self._column(model, field_name)

        db = self._session_factory()
        try:
            result = db.execute(
                sa_update(model)
                .where(model.id == doc_id)
                .values({column: column + amount, model.updated_at: self._clock()})
            )
            if result.rowcount == 0:
                raise DocumentNotFound(collection, doc_id)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StoreError(f"Failed to increment {collection}/{doc_id}.{field_name}: {e}") from e
        finally:
            db.close()

        self._publish(collection)

    def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """Run a filtered query. ``order_by`` takes a field name, ``-field`` for descending."""
        model = self._model(collection)
        stmt = select(model).where(*self._conditions(model, filters))
        if order_by:
            descending = order_by.startswith("-")
            column = self._column(model, order_by.lstrip("-"))
            stmt = stmt.order_by(column.desc() if descending else column.asc(),
                                 model.created_at.desc() if descending else model.created_at.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        db = self._session_factory()
        try:
            return [_to_document(obj) for obj in db.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to query {collection}: {e}") from e
        finally:
            db.close()

    def subscribe(
        self,
        collection: str,
        filters: Sequence[Filter],
        order_by: Optional[str],
        on_change: Listener,
    ) -> Callable[[], None]:
        """Emit the current result set now and again after every write to ``collection``.

        Returns a callable that cancels the subscription.
        """
        self._model(collection)
        subscription = Subscription(collection, tuple(filters), order_by, on_change)
        self._listeners.setdefault(collection, []).append(subscription)
        self._schedule(subscription)

        def unsubscribe() -> None:
            subscription.active = False
            listeners = self._listeners.get(collection, [])
            if subscription in listeners:
                listeners.remove(subscription)

        return unsubscribe

    # --- change propagation ----------------------------------------------

    def _publish(self, collection: str) -> None:
        if self._listeners.get(collection):
            self._schedule(collection)

    def _schedule(self, target) -> None:
        """Queue a collection (all its listeners) or a single Subscription for emission."""
        self._pending.append(target)
        if self._publishing:
            return
        self._publishing = True
        try:
            while self._pending:
                item = self._pending.popleft()
                if isinstance(item, Subscription):
                    targets = [item]
                else:
                    targets = list(self._listeners.get(item, ()))
                for subscription in targets:
                    if subscription.active:
                        self._emit(subscription)
        finally:
            self._publishing = False

    def _emit(self, subscription: Subscription) -> None:
        try:
            documents = self.query(subscription.collection, subscription.filters, subscription.order_by)
        except StoreError as e:
            logger.error(f"Listener query on {subscription.collection} failed: {e}")
            documents = []
        try:
            subscription.callback(documents)
        except Exception:
            logger.exception(f"Change listener on {subscription.collection} raised")
