"""
HTTP routes for the Daily Moments API.
"""

from __future__ import annotations

import logging
from datetime import date as date_type
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from moments.auth import IdentityGate
from moments.dependencies import (
    get_identity_gate,
    get_record_store,
    get_session_registry,
)
from moments.orchestrator import DailyViewSession
from moments.schemas import (
    AnswerRequest,
    ChatRequest,
    DatesResponse,
    DraftRequest,
    EmojiRequest,
    IntentResponse,
    LoginRequest,
    LoginResponse,
    NavigateRequest,
    QuestionRequest,
    ViewDateRequest,
)
from moments.sessions import SessionRegistry
from moments.store import RecordStore, StoreError
from shared.constants import ERROR_MESSAGES
from shared.errors import (
    AppError,
    AuthenticationFailed,
    InvalidInput,
    RecordCreateTimeout,
    UnauthorizedIdentity,
)
from shared.types import serialize

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(status_code: int, code: str, message: Optional[str] = None) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"code": code, "message": message or ERROR_MESSAGES.get(code, code)},
    )


def _status_for(error: AppError) -> int:
    if isinstance(error, (UnauthorizedIdentity, AuthenticationFailed)):
        return 401
    if isinstance(error, InvalidInput):
        return 400
    if isinstance(error, RecordCreateTimeout):
        return 504
    return 502


def _http_error(error: AppError) -> HTTPException:
    return _error(_status_for(error), error.code, error.message)


def _rejected(code: str) -> HTTPException:
    return _error(409, code)


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise _error(401, "SESSION_EXPIRED")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise _error(401, "SESSION_EXPIRED")
    return token.strip()


def get_session(
    authorization: Optional[str] = Header(default=None),
    registry: SessionRegistry = Depends(get_session_registry),
) -> DailyViewSession:
    session = registry.get(_bearer_token(authorization))
    if session is None:
        raise _error(401, "SESSION_EXPIRED")
    session.refresh()
    return session


def _parse_date(value: str) -> str:
    try:
        return date_type.fromisoformat(value).isoformat()
    except ValueError as e:
        raise _error(400, "INVALID_INPUT", f"Ongeldige datum {value!r}") from e


@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    gate: IdentityGate = Depends(get_identity_gate),
    registry: SessionRegistry = Depends(get_session_registry),
):
    try:
        user = gate.sign_in(payload.email, payload.password)
    except AppError as e:
        raise _http_error(e) from e
    token, session = registry.open(user)
    return LoginResponse(token=token, view=session.view())


@router.post("/logout")
def logout(
    authorization: Optional[str] = Header(default=None),
    registry: SessionRegistry = Depends(get_session_registry),
):
    registry.close(_bearer_token(authorization))
    return {"status": "ok"}


@router.get("/view")
def view(session: DailyViewSession = Depends(get_session)):
    return session.view()


@router.post("/reload")
def reload(session: DailyViewSession = Depends(get_session)):
    session.reload()
    return session.view()


@router.post("/question/generate", response_model=IntentResponse)
def generate_question(session: DailyViewSession = Depends(get_session)):
    try:
        record = session.generate_question()
    except AppError as e:
        raise _http_error(e) from e
    if record is None:
        raise _rejected("QUESTION_CHOICE_CLOSED")
    return IntentResponse(ok=True, view=session.view())


@router.post("/question", response_model=IntentResponse)
def submit_question(
    payload: QuestionRequest, session: DailyViewSession = Depends(get_session)
):
    try:
        record = session.submit_custom_question(payload.question)
    except AppError as e:
        raise _http_error(e) from e
    if record is None:
        raise _rejected("QUESTION_CHOICE_CLOSED")
    return IntentResponse(ok=True, view=session.view())


@router.put("/answer-draft")
def answer_draft(payload: DraftRequest, session: DailyViewSession = Depends(get_session)):
    session.set_answer_draft(payload.text)
    return {"status": "ok"}


@router.post("/answer", response_model=IntentResponse)
def save_answer(payload: AnswerRequest, session: DailyViewSession = Depends(get_session)):
    try:
        saved = session.save_answer(payload.text)
    except AppError as e:
        raise _http_error(e) from e
    if not saved:
        raise _rejected("NO_RECORD_YET")
    return IntentResponse(ok=True, view=session.view())


@router.put("/chat-draft")
def chat_draft(payload: DraftRequest, session: DailyViewSession = Depends(get_session)):
    session.set_chat_draft(payload.text)
    return {"status": "ok"}


@router.post("/chat", response_model=IntentResponse)
def send_chat(payload: ChatRequest, session: DailyViewSession = Depends(get_session)):
    try:
        sent = session.send_chat_message(payload.text)
    except AppError as e:
        raise _http_error(e) from e
    if not sent:
        raise _rejected("CHAT_NOT_ALLOWED")
    return IntentResponse(ok=True, view=session.view())


@router.post("/emoji")
def emoji(payload: EmojiRequest, session: DailyViewSession = Depends(get_session)):
    session.append_emoji(payload.emoji)
    return session.view()


@router.post("/navigate", response_model=IntentResponse)
def navigate(payload: NavigateRequest, session: DailyViewSession = Depends(get_session)):
    moved = session.navigate(payload.direction)
    return IntentResponse(ok=moved, view=session.view())


@router.post("/view-date", response_model=IntentResponse)
def view_date(payload: ViewDateRequest, session: DailyViewSession = Depends(get_session)):
    try:
        moved = session.select_date(payload.date)
    except AppError as e:
        raise _http_error(e) from e
    if not moved:
        raise _rejected("DATE_NOT_AVAILABLE")
    return IntentResponse(ok=True, view=session.view())


@router.post("/calendar/toggle")
def toggle_calendar(session: DailyViewSession = Depends(get_session)):
    return {"showCalendar": session.toggle_calendar()}


@router.post("/emoji-picker/toggle")
def toggle_emoji_picker(session: DailyViewSession = Depends(get_session)):
    return {"showEmojiPicker": session.toggle_emoji_picker()}


@router.get("/dates", response_model=DatesResponse)
def available_dates(
    session: DailyViewSession = Depends(get_session),
    store: RecordStore = Depends(get_record_store),
):
    try:
        dates = store.list_available_dates()
    except StoreError as e:
        logger.exception("Listing dates failed")
        raise _error(502, "DAILY_CONTENT_FETCH_FAILED") from e
    return DatesResponse(dates=sorted(dates))


@router.get("/records/{record_date}")
def get_record(
    record_date: str,
    session: DailyViewSession = Depends(get_session),
    store: RecordStore = Depends(get_record_store),
):
    record_date = _parse_date(record_date)
    try:
        record = store.read(record_date)
    except StoreError as e:
        logger.exception("Reading record %s failed", record_date)
        raise _error(502, "DAILY_CONTENT_FETCH_FAILED") from e
    if record is None:
        raise _error(404, "NOT_FOUND")
    return serialize(session.visible(record_date, record))


@router.get("/records/{record_date}/chat")
def get_chat(
    record_date: str,
    session: DailyViewSession = Depends(get_session),
    store: RecordStore = Depends(get_record_store),
):
    record_date = _parse_date(record_date)
    try:
        messages = store.read_chat(record_date)
    except StoreError as e:
        logger.exception("Reading chat %s failed", record_date)
        raise _error(502, "DAILY_CONTENT_FETCH_FAILED") from e
    return {"messages": serialize(messages)}
