# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any, List, Optional

from dacite import Config, from_dict

from shared.constants import SYSTEM_QUESTION_BY
from shared.json_utils import convert_keys


@dataclass(frozen=True)
class User:
    """A signed-in participant, resolved from the fixed roster."""

    uid: str
    id: str
    username: str
    partner_id: str
    email: str


@dataclass
class Answer:
    user_id: str
    answer: str


@dataclass
class DailyRecord:
    """The single per-date document: image, question and both answers."""

    date: str
    image_url: str
    question: str
    question_by: str = SYSTEM_QUESTION_BY
    answers: List[Answer] = field(default_factory=list)

    def answer_for(self, user_id: str) -> Optional[Answer]:
        for answer in self.answers:
            if answer.user_id == user_id:
                return answer
        return None

    def to_document(self) -> dict:
        return convert_keys(asdict(self), "snake_to_camel")

    @classmethod
    def from_document(cls, data: dict) -> "DailyRecord":
        return from_dict(
            data_class=cls,
            data=convert_keys(data, "camel_to_snake"),
            config=Config(check_types=False),
        )


@dataclass
class ChatMessage:
    user_id: str
    username: str
    message: str
    id: Optional[str] = None
    # Server-assigned; None until the store has written the message.
    timestamp: Optional[datetime] = None

    def to_document(self) -> dict:
        doc = convert_keys(asdict(self), "snake_to_camel")
        doc.pop("id", None)
        return doc

    @classmethod
    def from_document(cls, data: dict, doc_id: Optional[str] = None) -> "ChatMessage":
        message = from_dict(
            data_class=cls,
            data=convert_keys(data, "camel_to_snake"),
            config=Config(check_types=False),
        )
        if doc_id is not None:
            message.id = doc_id
        return message


class Turn(StrEnum):
    MINE = "MINE"
    PARTNER = "PARTNER"
    AUTO = "AUTO"


class SessionPhase(StrEnum):
    INITIALIZING = "INITIALIZING"
    NO_RECORD = "NO_RECORD"
    AWAITING_MY_CHOICE = "AWAITING_MY_CHOICE"
    AWAITING_PARTNER_CHOICE = "AWAITING_PARTNER_CHOICE"
    AUTO_CREATING = "AUTO_CREATING"
    RECORD_EXISTS = "RECORD_EXISTS"
    READY = "READY"
    ERROR = "ERROR"


@dataclass
class Notice:
    """A transient, toast-style message for the presentation layer."""

    message: str
    type: str = "success"


def serialize(value: Any) -> Any:
    """JSON-friendly camelCase representation of a dataclass tree."""
    if hasattr(value, "__dataclass_fields__"):
        value = asdict(value)
    if isinstance(value, dict):
        return {
            key: serialize(item)
            for key, item in convert_keys(value, "snake_to_camel").items()
        }
    if isinstance(value, list):
        return [serialize(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    return value
