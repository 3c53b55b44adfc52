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

"""
Image sources for the daily picture, tried in order by the supply chain.

Every provider answers the same two questions: is it configured, and which
candidate images does it offer for a search query. Any failure to answer
the second one is reported as ImageProviderUnavailable.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence

from google.genai import errors as genai_errors
import httpx
import requests

from image_pipeline import fetch_utils, gemini
from shared.constants import (
    CURATED_IMAGES,
    IMAGE_GENERATION_PROMPT,
    LAST_RESORT_IMAGE_URL,
)
from shared.errors import ImageProviderUnavailable

logger = logging.getLogger(__name__)

PEXELS_SEARCH_URL = "https://api.pexels.com/v1/search"
PIXABAY_SEARCH_URL = "https://pixabay.com/api/"
SEARCH_PAGE_SIZE = 30


@dataclass
class ImageCandidate:
    url: str
    description: str = ""
    credit: str = ""
    # Set by providers that generate the image instead of linking to it.
    data: Optional[bytes] = None


class ImageProvider(Protocol):
    name: str

    def is_configured(self) -> bool:
        ...

    def candidates(self, query: str) -> List[ImageCandidate]:
        ...


@dataclass
class PexelsProvider:
    api_key: Optional[str]
    timeout: float = fetch_utils.REQUEST_TIMEOUT
    name: str = "pexels"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def candidates(self, query: str) -> List[ImageCandidate]:
        try:
            data = fetch_utils.fetch_json(
                PEXELS_SEARCH_URL,
                params={
                    "query": query,
                    "per_page": SEARCH_PAGE_SIZE,
                    "orientation": "square",
                },
                headers={"Authorization": self.api_key},
                timeout=self.timeout,
            )
            return [
                ImageCandidate(
                    url=photo["src"]["large"],
                    description=photo.get("alt") or "",
                    credit=photo.get("photographer") or "",
                )
                for photo in data.get("photos") or []
            ]
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            raise ImageProviderUnavailable(cause=e) from e


@dataclass
class PixabayProvider:
    api_key: Optional[str]
    timeout: float = fetch_utils.REQUEST_TIMEOUT
    name: str = "pixabay"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def candidates(self, query: str) -> List[ImageCandidate]:
        try:
            data = fetch_utils.fetch_json(
                PIXABAY_SEARCH_URL,
                params={
                    "key": self.api_key,
                    "q": query,
                    "per_page": SEARCH_PAGE_SIZE,
                    "orientation": "horizontal",
                    "min_width": 800,
                    "min_height": 800,
                },
                timeout=self.timeout,
            )
            return [
                ImageCandidate(
                    url=hit["largeImageURL"],
                    description=hit.get("tags") or "",
                    credit=hit.get("user") or "",
                )
                for hit in data.get("hits") or []
            ]
        except (requests.RequestException, ValueError, KeyError, TypeError) as e:
            raise ImageProviderUnavailable(cause=e) from e


@dataclass
class GeminiImageProvider:
    """Generates an image instead of searching for one."""

    api_key: Optional[str]
    model: str = gemini.IMAGE_MODEL
    prompt: str = IMAGE_GENERATION_PROMPT
    name: str = "gemini"

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def candidates(self, query: str) -> List[ImageCandidate]:
        try:
            data, mime_type = gemini.call_generate_image(
                self.prompt, api_key=self.api_key, model=self.model
            )
        except (
            gemini.GeminiInvalidResponseException,
            genai_errors.APIError,
            httpx.HTTPError,
        ) as e:
            raise ImageProviderUnavailable(cause=e) from e
        logger.info("Gemini returned a %s image of %d bytes", mime_type, len(data))
        return [ImageCandidate(url=f"gemini:{self.model}", description=query, data=data)]


@dataclass
class CuratedListProvider:
    """Hand-maintained list of direct image URLs; needs no credential."""

    urls: Sequence[str] = CURATED_IMAGES
    name: str = "curated"

    def is_configured(self) -> bool:
        return bool(self.urls)

    def candidates(self, query: str) -> List[ImageCandidate]:
        # One random pick per attempt, so a broken URL does not pin the day.
        return [ImageCandidate(url=random.choice(list(self.urls)))]


@dataclass
class StaticUrlProvider:
    url: str = LAST_RESORT_IMAGE_URL
    name: str = "static"

    def is_configured(self) -> bool:
        return bool(self.url)

    def candidates(self, query: str) -> List[ImageCandidate]:
        return [ImageCandidate(url=self.url)]


def build_default_providers(
    pexels_api_key: Optional[str],
    pixabay_api_key: Optional[str],
    timeout: float = fetch_utils.REQUEST_TIMEOUT,
    gemini_api_key: Optional[str] = None,
) -> List[ImageProvider]:
    return [
        PexelsProvider(api_key=pexels_api_key, timeout=timeout),
        PixabayProvider(api_key=pixabay_api_key, timeout=timeout),
        GeminiImageProvider(api_key=gemini_api_key),
        CuratedListProvider(),
        StaticUrlProvider(),
    ]
