"""
Record store abstraction over the per-date document, with Firestore and
in-memory implementations.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol, Set

from firebase_admin import firestore
from google.api_core import exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP

from shared.constants import CHAT_SUBCOLLECTION, DAILY_COLLECTION, USERS_BY_ID
from shared.errors import RecordAlreadyExists
from shared.types import ChatMessage, DailyRecord

logger = logging.getLogger(__name__)

RecordCallback = Callable[[Optional[DailyRecord]], None]
ChatCallback = Callable[[List[ChatMessage]], None]
ErrorCallback = Callable[[Exception], None]


class StoreError(Exception):
    """The backing store could not complete a read or write."""


class RecordMissing(StoreError):
    """A write targeted a date that has no record."""


class Subscription(Protocol):
    """Handle for a live listener; unsubscribe() is safe to call twice."""

    @property
    def is_active(self) -> bool:
        ...

    def unsubscribe(self) -> None:
        ...


class RecordStore(Protocol):
    """Interface for the per-date daily records and their chat."""

    def read(self, date: str) -> Optional[DailyRecord]:
        ...

    def create(self, date: str, record: DailyRecord) -> None:
        ...

    def upsert_answer(self, date: str, user_id: str, text: str) -> None:
        ...

    def append_chat_message(self, date: str, message: ChatMessage) -> ChatMessage:
        ...

    def read_chat(self, date: str) -> List[ChatMessage]:
        ...

    def subscribe(
        self, date: str, on_data: RecordCallback, on_error: ErrorCallback
    ) -> Subscription:
        ...

    def subscribe_chat(
        self, date: str, on_messages: ChatCallback, on_error: ErrorCallback
    ) -> Subscription:
        ...

    def list_available_dates(self) -> Set[str]:
        ...


def _check_participant(user_id: str) -> None:
    if user_id not in USERS_BY_ID:
        raise ValueError(f"Unknown participant {user_id!r}")


def _upserted_answers(existing: List[dict], user_id: str, text: str) -> List[dict]:
    """Replaces the user's answer in place, or appends it when absent."""
    entry = {"userId": user_id, "answer": text}
    replaced = False
    answers = []
    for answer in existing:
        if answer.get("userId") == user_id:
            if not replaced:
                answers.append(entry)
                replaced = True
            continue
        answers.append(answer)
    if not replaced:
        answers.append(entry)
    return answers


@dataclass
class _Listener:
    on_data: Callable
    on_error: ErrorCallback


@dataclass
class InMemorySubscription:
    store: "InMemoryRecordStore"
    key: tuple
    active: bool = True

    @property
    def is_active(self) -> bool:
        return self.active

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.store._remove_listener(self.key)


class InMemoryRecordStore:
    """Thread-safe in-memory store for development and tests.

    Listeners are called synchronously on the writing thread, outside the
    store lock, and receive the current state as soon as they subscribe.
    """

    def __init__(self):
        self.records: Dict[str, dict] = {}
        self.chats: Dict[str, List[ChatMessage]] = {}
        self._listeners: Dict[tuple, _Listener] = {}
        self._subscriptions: Dict[tuple, InMemorySubscription] = {}
        self._ids = itertools.count()
        self._last_timestamp: Optional[datetime] = None
        self._failures: Set[str] = set()
        self._lock = threading.RLock()

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.records.clear()
            self.chats.clear()
            self._listeners.clear()
            self._subscriptions.clear()
            self._failures.clear()

    def fail_next(self, operation: str) -> None:
        """Makes the next call to `operation` raise StoreError."""
        with self._lock:
            self._failures.add(operation)

    def drop_connections(self, error: Optional[Exception] = None) -> None:
        """Terminates every live listener as a lost connection would."""
        error = error or StoreError("connection lost")
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            listeners = [self._listeners[s.key] for s in subscriptions]
            self._listeners.clear()
            self._subscriptions.clear()
        for subscription, listener in zip(subscriptions, listeners):
            subscription.active = False
            listener.on_error(error)

    def _maybe_fail(self, operation: str) -> None:
        with self._lock:
            if operation in self._failures:
                self._failures.discard(operation)
                raise StoreError(f"Injected failure for {operation}")

    def _next_timestamp(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_timestamp and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _record(self, date: str) -> Optional[DailyRecord]:
        doc = self.records.get(date)
        return DailyRecord.from_document(copy.deepcopy(doc)) if doc else None

    def _chat(self, date: str) -> List[ChatMessage]:
        return copy.deepcopy(self.chats.get(date, []))

    def _notify_record(self, date: str) -> None:
        with self._lock:
            record = self._record(date)
            listeners = [
                listener
                for key, listener in self._listeners.items()
                if key[0] == "record" and key[1] == date
            ]
        for listener in listeners:
            listener.on_data(copy.deepcopy(record))

    def _notify_chat(self, date: str) -> None:
        with self._lock:
            messages = self._chat(date)
            listeners = [
                listener
                for key, listener in self._listeners.items()
                if key[0] == "chat" and key[1] == date
            ]
        for listener in listeners:
            listener.on_data(copy.deepcopy(messages))

    def read(self, date: str) -> Optional[DailyRecord]:
        self._maybe_fail("read")
        with self._lock:
            return self._record(date)

    def create(self, date: str, record: DailyRecord) -> None:
        self._maybe_fail("create")
        with self._lock:
            if date in self.records:
                raise RecordAlreadyExists()
            self.records[date] = record.to_document()
        self._notify_record(date)

    def upsert_answer(self, date: str, user_id: str, text: str) -> None:
        _check_participant(user_id)
        self._maybe_fail("upsert_answer")
        with self._lock:
            doc = self.records.get(date)
            if doc is None:
                raise RecordMissing(f"No record for {date}")
            doc["answers"] = _upserted_answers(doc.get("answers") or [], user_id, text)
        self._notify_record(date)

    def append_chat_message(self, date: str, message: ChatMessage) -> ChatMessage:
        self._maybe_fail("append_chat_message")
        with self._lock:
            stored = ChatMessage(
                user_id=message.user_id,
                username=message.username,
                message=message.message,
                id=uuid.uuid4().hex,
                timestamp=self._next_timestamp(),
            )
            self.chats.setdefault(date, []).append(stored)
        self._notify_chat(date)
        return copy.deepcopy(stored)

    def read_chat(self, date: str) -> List[ChatMessage]:
        self._maybe_fail("read_chat")
        with self._lock:
            return self._chat(date)

    def _add_listener(self, kind: str, date: str, on_data, on_error) -> InMemorySubscription:
        key = (kind, date, next(self._ids))
        subscription = InMemorySubscription(store=self, key=key)
        with self._lock:
            self._listeners[key] = _Listener(on_data=on_data, on_error=on_error)
            self._subscriptions[key] = subscription
        return subscription

    def _remove_listener(self, key: tuple) -> None:
        with self._lock:
            self._listeners.pop(key, None)
            self._subscriptions.pop(key, None)

    def subscribe(
        self, date: str, on_data: RecordCallback, on_error: ErrorCallback
    ) -> InMemorySubscription:
        self._maybe_fail("subscribe")
        subscription = self._add_listener("record", date, on_data, on_error)
        with self._lock:
            record = self._record(date)
        on_data(record)
        return subscription

    def subscribe_chat(
        self, date: str, on_messages: ChatCallback, on_error: ErrorCallback
    ) -> InMemorySubscription:
        self._maybe_fail("subscribe_chat")
        subscription = self._add_listener("chat", date, on_messages, on_error)
        with self._lock:
            messages = self._chat(date)
        on_messages(messages)
        return subscription

    def list_available_dates(self) -> Set[str]:
        self._maybe_fail("list_available_dates")
        with self._lock:
            return set(self.records)


@dataclass
class FirestoreSubscription:
    """Wraps a Firestore Watch; the watch goes inactive when its stream dies."""

    watch: object
    closed: bool = field(default=False)

    @property
    def is_active(self) -> bool:
        return not self.closed and bool(getattr(self.watch, "is_active", True))

    def unsubscribe(self) -> None:
        if not self.closed:
            self.closed = True
            self.watch.unsubscribe()


class FirestoreRecordStore:
    """
    Cloud Firestore implementation: `dailyMoments/{date}` documents with a
    `chat` sub-collection ordered by server timestamp.
    """

    def __init__(self, client=None):
        self._db = client or firestore.client()

    def _daily(self):
        return self._db.collection(DAILY_COLLECTION)

    def _doc(self, date: str):
        return self._daily().document(date)

    def _chat(self, date: str):
        return self._doc(date).collection(CHAT_SUBCOLLECTION)

    def read(self, date: str) -> Optional[DailyRecord]:
        try:
            snapshot = self._doc(date).get()
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Reading {date} failed: {e}") from e
        if not snapshot.exists:
            return None
        return DailyRecord.from_document(snapshot.to_dict())

    def create(self, date: str, record: DailyRecord) -> None:
        try:
            # create() refuses to overwrite, unlike set().
            self._doc(date).create(record.to_document())
        except exceptions.AlreadyExists as e:
            raise RecordAlreadyExists() from e
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Creating {date} failed: {e}") from e

    def upsert_answer(self, date: str, user_id: str, text: str) -> None:
        _check_participant(user_id)
        transaction = self._db.transaction()

        @firestore.transactional
        def _upsert_transaction(transaction, doc_ref):
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                raise RecordMissing(f"No record for {date}")
            existing = (snapshot.to_dict() or {}).get("answers") or []
            transaction.update(
                doc_ref, {"answers": _upserted_answers(existing, user_id, text)}
            )

        try:
            _upsert_transaction(transaction, self._doc(date))
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Saving answer for {date} failed: {e}") from e

    def append_chat_message(self, date: str, message: ChatMessage) -> ChatMessage:
        doc = message.to_document()
        doc["timestamp"] = SERVER_TIMESTAMP
        try:
            _, doc_ref = self._chat(date).add(doc)
            snapshot = doc_ref.get()
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Sending chat for {date} failed: {e}") from e
        return ChatMessage.from_document(snapshot.to_dict(), doc_id=snapshot.id)

    def read_chat(self, date: str) -> List[ChatMessage]:
        try:
            docs = list(self._chat(date).order_by("timestamp").stream())
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Reading chat for {date} failed: {e}") from e
        return [ChatMessage.from_document(doc.to_dict(), doc_id=doc.id) for doc in docs]

    def subscribe(
        self, date: str, on_data: RecordCallback, on_error: ErrorCallback
    ) -> FirestoreSubscription:
        def _on_snapshot(doc_snapshots, changes, read_time):
            try:
                snapshot = doc_snapshots[0] if doc_snapshots else None
                if snapshot is None or not snapshot.exists:
                    on_data(None)
                else:
                    on_data(DailyRecord.from_document(snapshot.to_dict()))
            except Exception as e:
                logger.exception("Daily record listener for %s failed", date)
                on_error(e)

        try:
            watch = self._doc(date).on_snapshot(_on_snapshot)
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Listening to {date} failed: {e}") from e
        return FirestoreSubscription(watch=watch)

    def subscribe_chat(
        self, date: str, on_messages: ChatCallback, on_error: ErrorCallback
    ) -> FirestoreSubscription:
        def _on_snapshot(query_snapshot, changes, read_time):
            try:
                on_messages(
                    [
                        ChatMessage.from_document(doc.to_dict(), doc_id=doc.id)
                        for doc in query_snapshot
                    ]
                )
            except Exception as e:
                logger.exception("Chat listener for %s failed", date)
                on_error(e)

        query = self._chat(date).order_by("timestamp")
        try:
            watch = query.on_snapshot(_on_snapshot)
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Listening to chat for {date} failed: {e}") from e
        return FirestoreSubscription(watch=watch)

    def list_available_dates(self) -> Set[str]:
        try:
            # Project onto `date` only; records may embed whole images.
            return {doc.id for doc in self._daily().select(["date"]).stream()}
        except exceptions.GoogleAPIError as e:
            raise StoreError(f"Listing dates failed: {e}") from e
