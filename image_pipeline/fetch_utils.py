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

import requests

REQUEST_TIMEOUT = 30  # seconds


def fetch_json(
    url: str,
    params: dict | None = None,
    headers: dict | None = None,
    timeout: float = REQUEST_TIMEOUT,
) -> dict:
    """
    Fetches a JSON document from a REST endpoint.

    Args:
        url (str): The endpoint to call.
        params (dict | None): Query string parameters.
        headers (dict | None): Extra request headers (credentials go here).

    Returns:
        dict: The decoded JSON body; raises on HTTP or decoding errors.
    """
    response = requests.get(url, params=params, headers=headers, timeout=timeout)
    response.raise_for_status()
    return response.json()


def fetch_image_bytes(url: str, timeout: float = REQUEST_TIMEOUT) -> bytes:
    """
    Downloads the raw bytes of an image.

    Args:
        url (str): Direct image URL.

    Returns:
        bytes: The response body if the request is successful,
               raises an error otherwise.
    """
    response = requests.get(url, timeout=timeout)
    response.raise_for_status()

    content_type = response.headers.get("Content-Type", "")
    if content_type.startswith("text/"):
        raise ValueError(f"Expected an image from {url}, got {content_type}")
    return response.content
