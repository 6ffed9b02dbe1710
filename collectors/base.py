"""
Base collector interface. All collectors must implement this.
"""

import asyncio
from abc import ABC, abstractmethod

import requests

from config.settings import Config
from storage.db import Storage


class CollectorError(Exception):
    """Raised when an upstream source answers with something unusable."""
    pass


class Collector(ABC):
    """
    A collector pulls data from one source and writes it to Storage.

    Contract:
    - collect() is safe to call again after a failure. Storage dedupes.
    - collect() raises on upstream failure so the retry loop can try again.
    - collect() returns the number of records processed, 0 if there was nothing.
    - HTTP runs in a worker thread. Storage is only touched from the event loop.
    """

    def __init__(self, storage: Storage, config: Config):
        self.storage = storage
        self.config = config
        self._session = requests.Session()
        self._session.headers["User-Agent"] = config.user_agent_header

    @abstractmethod
    async def collect(self) -> int:
        """Fetch, parse and store one batch. Returns records processed."""
        ...

    @abstractmethod
    def name(self) -> str:
        """Collector name, used as the source key in a CollectionResult."""
        ...

    async def _get(self, url: str, label: str, **kwargs) -> requests.Response:
        """GET in a worker thread. Non-200 responses raise CollectorError."""
        kwargs.setdefault("timeout", self.config.http_timeout)
        resp = await asyncio.to_thread(self._session.get, url, **kwargs)
        if resp.status_code != 200:
            raise CollectorError(f"{label} returned {resp.status_code}")
        return resp
