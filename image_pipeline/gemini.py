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

import logging
import time

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

IMAGE_MODEL = "gemini-2.5-flash-image-preview"
IMAGE_INSTRUCTION = (
    "Generate a beautiful fantasy image based on this description. "
    "Return the image with minimal text description."
)


class GeminiInvalidResponseException(Exception):
    pass


def call_generate_image(
    prompt: str,
    api_key: str,
    model: str = IMAGE_MODEL,
) -> tuple[bytes, str]:
    """
    Asks Gemini for an image and returns its bytes and mime type.

    Raises GeminiInvalidResponseException when the response carries no
    inline image part.
    """
    client = genai.Client(api_key=api_key)
    start_time = time.time()
    response = client.models.generate_content(
        model=model,
        contents=[prompt, IMAGE_INSTRUCTION],
        config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
    )
    logger.info("Gemini image call took %.2fs", time.time() - start_time)

    if not response.candidates or not response.candidates[0].content:
        raise GeminiInvalidResponseException("No candidates in response")
    for part in response.candidates[0].content.parts or []:
        if part.inline_data and part.inline_data.data:
            return part.inline_data.data, part.inline_data.mime_type or "image/png"
    raise GeminiInvalidResponseException("No image in response")
