"""
Pydantic schemas for the Daily Moments API.
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from shared.constants import MAX_ANSWER_LENGTH, MAX_MESSAGE_LENGTH, MAX_QUESTION_LENGTH


class LoginRequest(BaseModel):
    email: str = Field(..., max_length=320)
    password: str = Field(..., max_length=4096)


class LoginResponse(BaseModel):
    token: str
    view: dict


class QuestionRequest(BaseModel):
    question: str = Field(..., max_length=MAX_QUESTION_LENGTH)


class DraftRequest(BaseModel):
    text: str = ""


class AnswerRequest(BaseModel):
    text: Optional[str] = Field(default=None, max_length=MAX_ANSWER_LENGTH)


class ChatRequest(BaseModel):
    text: Optional[str] = Field(default=None, max_length=MAX_MESSAGE_LENGTH)


class EmojiRequest(BaseModel):
    emoji: str = Field(..., min_length=1, max_length=16)


class NavigateRequest(BaseModel):
    direction: Literal["prev", "next"]


class ViewDateRequest(BaseModel):
    date: str = Field(..., max_length=10)


class IntentResponse(BaseModel):
    ok: bool
    view: dict


class DatesResponse(BaseModel):
    dates: List[str]
