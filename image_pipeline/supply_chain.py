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

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

from PIL import UnidentifiedImageError
import requests

from image_pipeline import fetch_utils
from image_pipeline.image_utils import NormalizedImage, normalize_image
from image_pipeline.providers import ImageCandidate, ImageProvider
from image_pipeline.storage import ImageStorage, ImageStorageError, InlineImageStorage
from shared.constants import (
    IMAGE_MAX_DIMENSION,
    IMAGE_QUALITY,
    RELEVANCE_KEYWORDS,
    SEARCH_TERMS,
)
from shared.errors import ImageProviderUnavailable, ImageSupplyExhausted

logger = logging.getLogger(__name__)


@dataclass
class ResolvedImage:
    url: str
    source_url: str
    provider: str
    width: int
    height: int
    format: str


def filter_relevant(
    candidates: Sequence[ImageCandidate],
    keywords: Sequence[str] = RELEVANCE_KEYWORDS,
) -> List[ImageCandidate]:
    """
    Keeps candidates whose description mentions one of the keywords.

    Falls back to the unfiltered candidates when nothing matches, so the
    filter can only narrow a choice and never empty it.
    """
    matches = [
        candidate
        for candidate in candidates
        if any(keyword in candidate.description.lower() for keyword in keywords)
    ]
    return matches or list(candidates)


@dataclass
class ImageSupplyChain:
    """
    Resolves today's image by walking the providers in order.

    A provider is skipped when it has no credential, and abandoned for the
    next one when it errors, returns nothing, or its image cannot be
    downloaded and decoded. A failure to store the chosen image ends the
    walk with ImageSupplyExhausted.
    """

    providers: Sequence[ImageProvider]
    storage: ImageStorage = field(default_factory=InlineImageStorage)
    max_dimension: int = IMAGE_MAX_DIMENSION
    quality: int = IMAGE_QUALITY
    search_terms: Sequence[str] = SEARCH_TERMS
    download: Callable[[str], bytes] = fetch_utils.fetch_image_bytes

    def resolve(self, name: str) -> ResolvedImage:
        query = random.choice(list(self.search_terms))
        logger.info("Resolving daily image %s with query %r", name, query)

        for provider in self.providers:
            if not provider.is_configured():
                logger.info("Image provider %s not configured, skipping", provider.name)
                continue
            try:
                candidate, image = self._try_provider(provider, query)
            except ImageProviderUnavailable as e:
                logger.warning(
                    "Image provider %s unavailable: %s", provider.name, e.cause or e
                )
                continue

            try:
                url = self.storage.store(image, name)
            except ImageStorageError as e:
                # Every provider shares the storage, so trying the next one is pointless.
                logger.error("Storing daily image %s failed: %s", name, e)
                raise ImageSupplyExhausted(cause=e) from e
            logger.info(
                "Daily image %s resolved via %s (%s)", name, provider.name, candidate.url
            )
            return ResolvedImage(
                url=url,
                source_url=candidate.url,
                provider=provider.name,
                width=image.width,
                height=image.height,
                format=image.format,
            )

        raise ImageSupplyExhausted()

    def _try_provider(
        self, provider: ImageProvider, query: str
    ) -> tuple[ImageCandidate, NormalizedImage]:
        candidates = provider.candidates(query)
        if not candidates:
            raise ImageProviderUnavailable(f"{provider.name} returned no results")

        candidate = random.choice(filter_relevant(candidates))
        try:
            raw = candidate.data if candidate.data is not None else self.download(candidate.url)
            image = normalize_image(
                raw, max_dimension=self.max_dimension, quality=self.quality
            )
        except (requests.RequestException, UnidentifiedImageError, OSError, ValueError) as e:
            raise ImageProviderUnavailable(cause=e) from e
        return candidate, image
