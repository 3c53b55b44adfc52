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

import base64
import io
import logging
from dataclasses import dataclass
from typing import Tuple

from PIL import Image, features

from shared.constants import (
    IMAGE_FALLBACK_FORMAT,
    IMAGE_MAX_DIMENSION,
    IMAGE_OUTPUT_FORMAT,
    IMAGE_QUALITY,
)

logger = logging.getLogger(__name__)

MIME_TYPES = {"WEBP": "image/webp", "JPEG": "image/jpeg", "PNG": "image/png"}
FILE_EXTENSIONS = {"WEBP": "webp", "JPEG": "jpg", "PNG": "png"}


@dataclass
class NormalizedImage:
    data: bytes
    width: int
    height: int
    format: str

    @property
    def mime_type(self) -> str:
        return MIME_TYPES[self.format]

    @property
    def extension(self) -> str:
        return FILE_EXTENSIONS[self.format]

    def to_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


def calculate_dimensions(
    width: int, height: int, max_dimension: int = IMAGE_MAX_DIMENSION
) -> Tuple[int, int]:
    """
    Scales (width, height) down so neither side exceeds max_dimension.

    The aspect ratio is preserved and images that already fit are returned
    unchanged, so nothing is ever upscaled.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image dimensions {width}x{height}")
    ratio = min(max_dimension / width, max_dimension / height)
    if ratio >= 1:
        return width, height
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def choose_output_format() -> str:
    """Returns WEBP when this Pillow build can encode it, JPEG otherwise."""
    if features.check("webp"):
        return IMAGE_OUTPUT_FORMAT
    logger.info("WEBP encoding unavailable, falling back to %s", IMAGE_FALLBACK_FORMAT)
    return IMAGE_FALLBACK_FORMAT


def normalize_image(
    image_bytes: bytes,
    max_dimension: int = IMAGE_MAX_DIMENSION,
    quality: int = IMAGE_QUALITY,
    output_format: str | None = None,
) -> NormalizedImage:
    """
    Decodes, downsizes and re-encodes an image for storage.

    Args:
        image_bytes (bytes): Encoded source image in any format Pillow reads.
        max_dimension (int): Upper bound for both width and height.
        quality (int): Encoder quality factor (1-100).
        output_format (str | None): Force a Pillow format name; by default
            WEBP, or JPEG when WEBP is unsupported.

    Returns:
        NormalizedImage: The re-encoded bytes with their final dimensions.

    Raises:
        PIL.UnidentifiedImageError: If the bytes are not a decodable image.
    """
    target_format = output_format or choose_output_format()

    with Image.open(io.BytesIO(image_bytes)) as img:
        img.load()
        width, height = calculate_dimensions(img.width, img.height, max_dimension)
        if (width, height) != (img.width, img.height):
            img = img.resize((width, height), Image.Resampling.LANCZOS)

        # JPEG has no alpha channel and neither format takes palette images well.
        if target_format == "JPEG" and img.mode != "RGB":
            img = img.convert("RGB")
        elif img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA" if "A" in img.getbands() else "RGB")

        buffer = io.BytesIO()
        img.save(buffer, format=target_format, quality=quality)

    logger.info(
        "Normalized image to %dx%d %s (%d bytes)",
        width,
        height,
        target_format,
        buffer.tell(),
    )
    return NormalizedImage(
        data=buffer.getvalue(), width=width, height=height, format=target_format
    )
