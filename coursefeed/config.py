"""
Configuration.

Values come from the environment (a local .env file is loaded first):

    COURSEFEED_URL       feed URL used when the user stored no override
    COURSEFEED_DATA_DIR  directory for the snapshot and the change ledger

A URL saved with set_feed_url() takes precedence over both.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from coursefeed.errors import StorageError
from coursefeed.storage import default_data_dir


logger = logging.getLogger(__name__)

DEFAULT_FEED_URL = (
    "https://www.emploisdutemps.uha.fr/jsp/custom/modules/plannings/anonymous_cal.jsp"
    "?data=60dc6b2fb1eac2554ee1103516dc50b4e04e91d0526fa823618ff6fa9e7d7198dd65eb4f5911f810ef6a36d3b58d61bf"
    "314d669fae9ca422200cb711a9b76537,1"
)

FEED_URL_KEY = "feed_url"


@dataclass
class Config:
    feed_url: str = DEFAULT_FEED_URL
    data_dir: Path = default_data_dir()


def load_config(env_file: Optional[str | Path] = None) -> Config:
    load_dotenv(dotenv_path=env_file)

    feed_url = (os.getenv("COURSEFEED_URL") or "").strip() or DEFAULT_FEED_URL
    data_dir_raw = (os.getenv("COURSEFEED_DATA_DIR") or "").strip()
    data_dir = Path(data_dir_raw).expanduser() if data_dir_raw else default_data_dir()
    return Config(feed_url=feed_url, data_dir=data_dir)


def get_feed_url(storage: Any, config: Optional[Config] = None) -> str:
    """
    Return the feed URL: stored override, then configuration, then the default.
    """
    try:
        stored = storage.get(FEED_URL_KEY)
    except StorageError as exc:
        logger.warning("Could not read stored feed URL: %s", exc)
        stored = None

    if stored and stored.strip():
        return stored.strip()
    if config is not None and config.feed_url.strip():
        return config.feed_url.strip()
    return DEFAULT_FEED_URL


def set_feed_url(storage: Any, url: str) -> None:
    """
    Store a feed URL override. A blank URL removes the override.
    """
    cleaned = (url or "").strip()
    if cleaned:
        storage.set(FEED_URL_KEY, cleaned)
    else:
        storage.remove(FEED_URL_KEY)
