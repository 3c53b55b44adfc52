"""
Daily turn orchestration for one signed-in participant.

A DailyViewSession decides whose turn it is to pick today's question,
creates today's record when nobody has to choose, and keeps its view of
today and of the date being browsed in step with the store's live updates.
"""

from __future__ import annotations

import concurrent.futures
import copy
import logging
import random
import threading
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from functools import partial
from typing import Callable, Dict, List, Optional, Protocol

from moments.store import RecordStore, StoreError, Subscription
from shared.constants import (
    CHOICE_WEEKDAYS,
    DAILY_QUESTIONS,
    ERROR_MESSAGES,
    MAX_ANSWER_LENGTH,
    MAX_MESSAGE_LENGTH,
    MAX_QUESTION_LENGTH,
    SUCCESS_MESSAGES,
    SYSTEM_QUESTION_BY,
    USERS_BY_ID,
)
from shared.errors import (
    AnswerSaveFailed,
    ChatSendFailed,
    ImageSupplyExhausted,
    InvalidInput,
    RealtimeConnectionLost,
    RecordAlreadyExists,
    RecordCreateFailed,
    RecordCreateTimeout,
    RecordFetchFailed,
)
from shared.types import (
    Answer,
    ChatMessage,
    DailyRecord,
    Notice,
    SessionPhase,
    Turn,
    User,
    serialize,
)

logger = logging.getLogger(__name__)

DEFAULT_CREATION_TIMEOUT = 30.0  # seconds

DUTCH_WEEKDAYS = (
    "maandag", "dinsdag", "woensdag", "donderdag", "vrijdag", "zaterdag", "zondag",
)
DUTCH_MONTHS = (
    "januari", "februari", "maart", "april", "mei", "juni",
    "juli", "augustus", "september", "oktober", "november", "december",
)


class ImageResolver(Protocol):
    def resolve(self, name: str):
        ...


def turn_for(day: date, user_id: str) -> Turn:
    """Whose job it is to choose the question on `day`, seen from `user_id`."""
    chooser = CHOICE_WEEKDAYS.get(day.isoweekday())
    if chooser is None:
        return Turn.AUTO
    return Turn.MINE if chooser == user_id else Turn.PARTNER


def pick_question(rng: random.Random | None = None) -> str:
    return (rng or random).choice(DAILY_QUESTIONS)


def format_date_label(value: str, today: str, yesterday: str) -> str:
    if value == yesterday:
        return "Gisteren"
    if value == today:
        return "Vandaag"
    day = date.fromisoformat(value)
    return f"{DUTCH_WEEKDAYS[day.weekday()]} {day.day} {DUTCH_MONTHS[day.month - 1]}"


def visible_to(
    record: DailyRecord, record_date: str, user_id: str, today: str
) -> DailyRecord:
    """
    The record for `record_date` as `user_id` may see it: a partner's
    answer stays hidden until the day after.
    """
    if record_date < today:
        return record
    own = [answer for answer in record.answers if answer.user_id == user_id]
    if len(own) == len(record.answers):
        return record
    return replace(record, answers=own)


def _clean_text(text: Optional[str], max_length: int) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise InvalidInput("Tekst mag niet leeg zijn")
    if len(cleaned) > max_length:
        raise InvalidInput(f"Tekst is te lang (maximaal {max_length} tekens)")
    return cleaned


@dataclass
class ViewState:
    today_date: str
    yesterday_date: str
    viewing_date: str
    daily_data: Dict[str, DailyRecord] = field(default_factory=dict)
    chat_messages: List[ChatMessage] = field(default_factory=list)
    available_dates: List[str] = field(default_factory=list)
    answer_draft: str = ""
    chat_draft: str = ""
    loading: bool = True
    error: Optional[str] = None
    waiting_for_partner: bool = False
    show_question_choice: bool = False
    show_calendar: bool = False
    show_emoji_picker: bool = False
    is_saving_answer: bool = False
    is_sending_chat: bool = False


class DailyViewSession:
    """
    Per-user daily state, reconciled with the record store.

    All state lives behind one re-entrant lock; store callbacks may arrive
    on other threads. The lock is never held while waiting on the store or
    on a record creation, so callbacks fired by those calls cannot block.
    """

    def __init__(
        self,
        user: User,
        store: RecordStore,
        images: ImageResolver,
        clock: Callable[[], date],
        creation_timeout: float = DEFAULT_CREATION_TIMEOUT,
        rng: random.Random | None = None,
    ):
        self.user = user
        self.store = store
        self.images = images
        self.clock = clock
        self.creation_timeout = creation_timeout
        self.rng = rng or random.Random()

        today = clock()
        self.state = self._fresh_state(today)
        self.phase = SessionPhase.INITIALIZING
        self.notices: List[Notice] = []

        self._lock = threading.RLock()
        self._subscriptions: List[Subscription] = []
        # Bumped on every resubscribe; callbacks from older listeners are dropped.
        self._epoch = 0
        # Bumped on every creation attempt, timeout and close; results from
        # older attempts are never applied.
        self._generation = 0
        self._connection_lost = False
        self._closed = False

    @staticmethod
    def _fresh_state(today: date) -> ViewState:
        yesterday = (today - timedelta(days=1)).isoformat()
        return ViewState(
            today_date=today.isoformat(),
            yesterday_date=yesterday,
            viewing_date=yesterday,
        )

    # --- lifecycle -------------------------------------------------------

    def initialize(self) -> SessionPhase:
        """(Re)derives the day's state: on sign-in, rollover and reload."""
        with self._lock:
            if self._closed:
                return self.phase
            previous = self.state
            self.state = self._fresh_state(self.clock())
            self.state.answer_draft = previous.answer_draft
            self.state.chat_draft = previous.chat_draft
            self.phase = SessionPhase.INITIALIZING
            self._generation += 1
            self._connection_lost = False
            today = self.state.today_date

        logger.info("[%s] Initializing daily view for %s", self.user.id, today)
        self._load_available_dates()
        self._resubscribe()

        try:
            record = self.store.read(today)
        except StoreError as e:
            logger.exception("[%s] Reading record for %s failed", self.user.id, today)
            with self._lock:
                self.state.error = RecordFetchFailed(cause=e).message
                self.state.loading = False
                self.phase = SessionPhase.ERROR
            return self.phase

        if record is not None:
            with self._lock:
                self.phase = SessionPhase.RECORD_EXISTS
                self._merge_record(today, record)
            return self.phase

        turn = turn_for(date.fromisoformat(today), self.user.id)
        with self._lock:
            if self.phase == SessionPhase.READY:
                # A live update delivered the record in the meantime.
                return self.phase
            self.phase = SessionPhase.NO_RECORD
            if turn == Turn.MINE:
                logger.info("[%s] My day to choose the question", self.user.id)
                self.state.show_question_choice = True
                self.state.loading = False
                self.phase = SessionPhase.AWAITING_MY_CHOICE
                return self.phase
            if turn == Turn.PARTNER:
                logger.info("[%s] Waiting for partner to choose", self.user.id)
                self.state.waiting_for_partner = True
                self.state.loading = False
                self.phase = SessionPhase.AWAITING_PARTNER_CHOICE
                return self.phase
            self.phase = SessionPhase.AUTO_CREATING

        try:
            self.create_daily_record(pick_question(self.rng), chosen_by_user=False)
        except RecordCreateFailed:
            # Already surfaced through state.error and a notice.
            logger.warning("[%s] Automatic creation for %s failed", self.user.id, today)
        return self.phase

    def reload(self) -> SessionPhase:
        return self.initialize()

    def refresh(self) -> None:
        """Handles day rollover and reports listeners that died silently."""
        with self._lock:
            if self._closed:
                return
            rolled_over = self.clock().isoformat() != self.state.today_date
        if rolled_over:
            logger.info("[%s] Day rolled over, reinitializing", self.user.id)
            self.initialize()
            return

        with self._lock:
            if any(not s.is_active for s in self._subscriptions):
                self._mark_connection_lost()

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._epoch += 1
            self._generation += 1
            subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.unsubscribe()
        logger.info("[%s] Session closed", self.user.id)

    # --- subscriptions ---------------------------------------------------

    def _load_available_dates(self) -> None:
        try:
            dates = self.store.list_available_dates()
        except StoreError:
            logger.exception("[%s] Listing available dates failed", self.user.id)
            return
        with self._lock:
            self.state.available_dates = sorted(set(dates) | set(self.state.available_dates))

    def _resubscribe(self) -> None:
        with self._lock:
            old, self._subscriptions = self._subscriptions, []
            self._epoch += 1
            epoch = self._epoch
            viewing = self.state.viewing_date
            today = self.state.today_date
            self.state.chat_messages = []
        for subscription in old:
            subscription.unsubscribe()

        on_error = partial(self._on_listener_error, epoch)
        subscriptions: List[Subscription] = []
        try:
            subscriptions.append(
                self.store.subscribe(viewing, partial(self._on_record, epoch, viewing), on_error)
            )
            if viewing != today:
                subscriptions.append(
                    self.store.subscribe(today, partial(self._on_record, epoch, today), on_error)
                )
            subscriptions.append(
                self.store.subscribe_chat(viewing, partial(self._on_chat, epoch), on_error)
            )
        except StoreError as e:
            on_error(e)

        with self._lock:
            if epoch == self._epoch and not self._closed:
                self._subscriptions = subscriptions
                return
        for subscription in subscriptions:
            subscription.unsubscribe()

    def _on_record(self, epoch: int, record_date: str, record: Optional[DailyRecord]) -> None:
        with self._lock:
            if epoch != self._epoch or self._closed or record is None:
                return
            self._merge_record(record_date, record)

    def _on_chat(self, epoch: int, messages: List[ChatMessage]) -> None:
        with self._lock:
            if epoch != self._epoch or self._closed:
                return
            self.state.chat_messages = list(messages)

    def _on_listener_error(self, epoch: int, error: Exception) -> None:
        logger.error("[%s] Real-time listener error: %s", self.user.id, error)
        with self._lock:
            if epoch != self._epoch or self._closed:
                return
            self._mark_connection_lost()

    def _mark_connection_lost(self) -> None:
        self._connection_lost = True
        self.state.error = RealtimeConnectionLost().message
        self.state.loading = False

    def _merge_record(self, record_date: str, record: DailyRecord) -> None:
        """Caller holds the lock."""
        self.state.daily_data[record_date] = record
        if record_date not in self.state.available_dates:
            self.state.available_dates = sorted(
                self.state.available_dates + [record_date]
            )
        if record_date == self.state.today_date:
            self.state.loading = False
            self.state.waiting_for_partner = False
            self.state.show_question_choice = False
            self.phase = SessionPhase.READY

    # --- creation --------------------------------------------------------

    def _build_and_write(self, today: str, question: str, question_by: str) -> DailyRecord:
        image = self.images.resolve(today)
        record = DailyRecord(
            date=today,
            image_url=image.url,
            question=question,
            question_by=question_by,
            answers=[],
        )
        self.store.create(today, record)
        return record

    def _on_creation_done(self, generation: int, future: concurrent.futures.Future) -> None:
        with self._lock:
            stale = generation != self._generation
        if not stale or future.cancelled():
            return
        error = future.exception()
        if error is None:
            logger.info(
                "[%s] Creation attempt %d finished after it was abandoned; ignoring",
                self.user.id,
                generation,
            )
        else:
            logger.warning(
                "[%s] Creation attempt %d failed after it was abandoned: %r",
                self.user.id,
                generation,
                error,
            )

    def create_daily_record(self, question: str, chosen_by_user: bool) -> DailyRecord:
        """
        Resolves an image and writes today's record.

        Runs the attempt on a worker thread bounded by creation_timeout. On
        timeout or failure the loading flag clears, the choice prompt stays
        open and the caller gets RecordCreateFailed; the abandoned attempt
        may still land in the store, but its outcome is never applied here.
        """
        with self._lock:
            self._generation += 1
            generation = self._generation
            self.state.loading = True
            self.state.error = None
            today = self.state.today_date
            question_by = self.user.id if chosen_by_user else SYSTEM_QUESTION_BY

        logger.info("[%s] Creating record for %s", self.user.id, today)
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self._build_and_write, today, question, question_by)
        future.add_done_callback(partial(self._on_creation_done, generation))
        try:
            record = future.result(timeout=self.creation_timeout)
        except concurrent.futures.TimeoutError:
            logger.error(
                "[%s] Creating record for %s timed out after %.0fs",
                self.user.id,
                today,
                self.creation_timeout,
            )
            future.cancel()
            error = RecordCreateTimeout()
            self._creation_failed(generation, error)
            raise error
        except RecordAlreadyExists:
            logger.info("[%s] Record for %s already exists, adopting it", self.user.id, today)
            return self._adopt_existing(generation, today)
        except (ImageSupplyExhausted, StoreError) as e:
            logger.exception("[%s] Creating record for %s failed", self.user.id, today)
            error = RecordCreateFailed(cause=e)
            self._creation_failed(generation, error)
            raise error from e
        except Exception as e:
            logger.exception(
                "[%s] Unexpected error creating record for %s", self.user.id, today
            )
            error = RecordCreateFailed(cause=e)
            self._creation_failed(generation, error)
            raise error from e
        finally:
            executor.shutdown(wait=False)

        with self._lock:
            if generation == self._generation and not self._closed:
                self._merge_record(today, record)
                if chosen_by_user:
                    self.notices.append(Notice(SUCCESS_MESSAGES["QUESTION_SET"]))
        return record

    def _creation_failed(self, generation: int, error: RecordCreateFailed) -> None:
        with self._lock:
            if generation != self._generation:
                return
            # Invalidate the attempt so a late completion is not applied.
            self._generation += 1
            self.state.loading = False
            self.state.error = error.message
            if self.phase == SessionPhase.AUTO_CREATING:
                self.phase = SessionPhase.ERROR
            self.notices.append(Notice(error.message, type="error"))

    def _adopt_existing(self, generation: int, today: str) -> DailyRecord:
        try:
            record = self.store.read(today)
        except StoreError as e:
            error = RecordCreateFailed(cause=e)
            self._creation_failed(generation, error)
            raise error from e
        if record is None:
            error = RecordCreateFailed()
            self._creation_failed(generation, error)
            raise error
        with self._lock:
            if generation == self._generation and not self._closed:
                self._merge_record(today, record)
        return record

    def generate_question(self) -> Optional[DailyRecord]:
        """Choice prompt: let the bank pick today's question."""
        with self._lock:
            if not self.state.show_question_choice:
                return None
        return self.create_daily_record(pick_question(self.rng), chosen_by_user=True)

    def submit_custom_question(self, question: str) -> Optional[DailyRecord]:
        """Choice prompt: use the participant's own question."""
        question = _clean_text(question, MAX_QUESTION_LENGTH)
        with self._lock:
            if not self.state.show_question_choice:
                return None
        return self.create_daily_record(question, chosen_by_user=True)

    # --- intents ---------------------------------------------------------

    def save_answer(self, text: Optional[str] = None) -> bool:
        """Upserts the user's answer for today; False if there is no record yet."""
        self.refresh()
        with self._lock:
            answer = _clean_text(
                self.state.answer_draft if text is None else text, MAX_ANSWER_LENGTH
            )
            today = self.state.today_date
            if today not in self.state.daily_data:
                return False
            self.state.is_saving_answer = True

        try:
            self.store.upsert_answer(today, self.user.id, answer)
        except StoreError as e:
            logger.exception("[%s] Saving answer for %s failed", self.user.id, today)
            with self._lock:
                self.state.is_saving_answer = False
                self.notices.append(Notice(ERROR_MESSAGES["SAVE_FAILED"], type="error"))
            raise AnswerSaveFailed(cause=e) from e

        with self._lock:
            self.state.is_saving_answer = False
            self.state.answer_draft = answer
            record = self.state.daily_data.get(today)
            if record is not None:
                self._apply_answer(record, answer)
            self.notices.append(Notice(SUCCESS_MESSAGES["ANSWER_SAVED"]))
        return True

    def _apply_answer(self, record: DailyRecord, text: str) -> None:
        existing = record.answer_for(self.user.id)
        if existing is not None:
            existing.answer = text
        else:
            record.answers.append(Answer(user_id=self.user.id, answer=text))

    def send_chat_message(self, text: Optional[str] = None) -> bool:
        """Posts to yesterday's chat; False unless yesterday is being viewed."""
        self.refresh()
        with self._lock:
            yesterday = (self.clock() - timedelta(days=1)).isoformat()
            if self.state.viewing_date != yesterday:
                return False
            message = _clean_text(
                self.state.chat_draft if text is None else text, MAX_MESSAGE_LENGTH
            )
            self.state.is_sending_chat = True

        try:
            stored = self.store.append_chat_message(
                yesterday,
                ChatMessage(
                    user_id=self.user.id,
                    username=self.user.username,
                    message=message,
                ),
            )
        except StoreError as e:
            logger.exception("[%s] Sending chat for %s failed", self.user.id, yesterday)
            with self._lock:
                self.state.is_sending_chat = False
                self.notices.append(Notice(ERROR_MESSAGES["SEND_FAILED"], type="error"))
            raise ChatSendFailed(cause=e) from e

        with self._lock:
            self.state.is_sending_chat = False
            self.state.chat_draft = ""
            self.state.show_emoji_picker = False
            known = {m.id for m in self.state.chat_messages}
            if self.state.viewing_date == yesterday and stored.id not in known:
                self.state.chat_messages.append(stored)
        return True

    def navigate(self, direction: str) -> bool:
        """Moves the view one day back ("prev") or forward ("next")."""
        if direction not in ("prev", "next"):
            raise InvalidInput(f"Onbekende richting {direction!r}")
        self.refresh()
        with self._lock:
            current = date.fromisoformat(self.state.viewing_date)
            step = timedelta(days=1 if direction == "next" else -1)
            target = (current + step).isoformat()
        return self._go_to(target)

    def select_date(self, value: str) -> bool:
        """Calendar pick; same rules as navigate."""
        try:
            target = date.fromisoformat(value).isoformat()
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Ongeldige datum {value!r}") from e
        self.refresh()
        moved = self._go_to(target)
        with self._lock:
            self.state.show_calendar = False
        return moved

    def _go_to(self, target: str) -> bool:
        with self._lock:
            today = self.state.today_date
            if target > today:
                return False
            if target != today and target not in self.state.available_dates:
                return False
            if target == self.state.viewing_date:
                return True
            self.state.viewing_date = target
        self._resubscribe()
        return True

    # --- drafts and UI flags ---------------------------------------------

    def set_answer_draft(self, text: str) -> None:
        with self._lock:
            self.state.answer_draft = text or ""

    def set_chat_draft(self, text: str) -> None:
        with self._lock:
            self.state.chat_draft = text or ""

    def append_emoji(self, emoji: str) -> None:
        with self._lock:
            self.state.chat_draft += emoji

    def toggle_emoji_picker(self) -> bool:
        with self._lock:
            self.state.show_emoji_picker = not self.state.show_emoji_picker
            return self.state.show_emoji_picker

    def toggle_calendar(self) -> bool:
        with self._lock:
            self.state.show_calendar = not self.state.show_calendar
            return self.state.show_calendar

    # --- read side -------------------------------------------------------

    def drain_notices(self) -> List[Notice]:
        with self._lock:
            notices, self.notices = self.notices, []
        return notices

    def visible(self, record_date: str, record: DailyRecord) -> DailyRecord:
        with self._lock:
            today = self.state.today_date
        return visible_to(record, record_date, self.user.id, today)

    def view(self) -> dict:
        """Snapshot of the state plus the values the screen derives from it."""
        with self._lock:
            state = copy.deepcopy(self.state)
            phase = self.phase
        state.daily_data = {
            record_date: visible_to(record, record_date, self.user.id, state.today_date)
            for record_date, record in state.daily_data.items()
        }
        viewing = state.daily_data.get(state.viewing_date)
        today_record = state.daily_data.get(state.today_date)
        partner = USERS_BY_ID.get(self.user.partner_id)
        my_answer = viewing.answer_for(self.user.id) if viewing else None
        partner_answer = viewing.answer_for(self.user.partner_id) if viewing else None
        return {
            "phase": phase.value,
            "user": serialize(self.user),
            "partner": serialize(partner) if partner else None,
            "state": serialize(state),
            "todayData": serialize(today_record) if today_record else None,
            "currentViewingData": serialize(viewing) if viewing else None,
            "myAnswer": serialize(my_answer) if my_answer else None,
            "partnerAnswer": serialize(partner_answer) if partner_answer else None,
            "partnerAnswerHidden": state.viewing_date >= state.today_date,
            "hasSubmittedToday": bool(today_record and today_record.answer_for(self.user.id)),
            "isViewingYesterday": state.viewing_date == state.yesterday_date,
            "viewingDateLabel": format_date_label(
                state.viewing_date, state.today_date, state.yesterday_date
            ),
            "notices": serialize(self.drain_notices()),
        }
