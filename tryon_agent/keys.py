"""Round-robin API key rotation across every outbound Gemini call."""
from __future__ import annotations

import logging
import threading
from typing import Iterable, List

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class KeyRotator:
    """
    Hands out pool[counter % len(pool)] and bumps the counter.
    There is no affinity: two calls from the same user action may use
    different keys, each call binds its own key.
    """

    def __init__(self, keys: Iterable[str]):
        self._keys: List[str] = [k for k in keys if k]
        self._counter = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    @property
    def calls(self) -> int:
        return self._counter

    def next(self) -> str:
        if not self._keys:
            raise ConfigurationError("No API keys configured (set API_KEYS or API_KEY)")
        with self._lock:
            index = self._counter % len(self._keys)
            self._counter += 1
        logger.debug("Using API key index %d of %d", index, len(self._keys))
        return self._keys[index]
