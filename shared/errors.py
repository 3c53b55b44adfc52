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

from typing import Optional

from shared.constants import ERROR_MESSAGES


class AppError(Exception):
    """Base error carrying a stable code and a short user-facing message."""

    code = "GENERIC_ERROR"

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None):
        self.message = message or ERROR_MESSAGES.get(self.code, self.code)
        self.cause = cause
        super().__init__(self.message)


class UnauthorizedIdentity(AppError):
    code = "UNAUTHORIZED_EMAIL"


class AuthenticationFailed(AppError):
    code = "INVALID_CREDENTIALS"


class RecordFetchFailed(AppError):
    code = "DAILY_CONTENT_FETCH_FAILED"


class RecordCreateFailed(AppError):
    code = "DAILY_CONTENT_CREATE_FAILED"


class RecordCreateTimeout(RecordCreateFailed):
    code = "DAILY_CONTENT_CREATE_TIMEOUT"


class RecordAlreadyExists(AppError):
    code = "RECORD_ALREADY_EXISTS"


class ImageProviderUnavailable(AppError):
    code = "IMAGE_PROVIDER_UNAVAILABLE"


class ImageSupplyExhausted(AppError):
    code = "IMAGE_GENERATION_FAILED"


class AnswerSaveFailed(AppError):
    code = "SAVE_FAILED"


class ChatSendFailed(AppError):
    code = "SEND_FAILED"


class RealtimeConnectionLost(AppError):
    code = "REALTIME_CONNECTION_LOST"


class InvalidInput(AppError):
    code = "INVALID_INPUT"
