"""
Feed download.

The only contract the rest of the package relies on:
given a URL, return the response body as text or raise FetchError.
"""

from __future__ import annotations

import logging

import requests

from coursefeed.errors import FetchError


logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30
REQUEST_HEADERS = {
    "Accept": "text/calendar, */*",
    "User-Agent": "coursefeed/0.1",
}


def fetch_text(url: str) -> str:
    """
    Download `url` and return the body decoded as UTF-8.
    """
    logger.info("Downloading feed from %s", url)
    try:
        resp = requests.get(url, headers=REQUEST_HEADERS, timeout=REQUEST_TIMEOUT)
        resp.raise_for_status()
    except requests.HTTPError as exc:
        status = exc.response.status_code if exc.response is not None else "?"
        reason = exc.response.reason if exc.response is not None else ""
        raise FetchError(f"HTTP error {status} {reason}".strip()) from exc
    except requests.RequestException as exc:
        raise FetchError(f"Network error: {exc}") from exc

    # Calendar servers often omit the charset; the feed is UTF-8
    resp.encoding = "utf-8"
    text = resp.text
    logger.debug("Received %d characters (status %s)", len(text), resp.status_code)
    return text
