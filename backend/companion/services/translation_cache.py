"""
Session-scoped LRU cache of translations.

Avoids repeat lookups for the same word while reading. Lives only as long as
the owning process; never persisted and safe to clear at any time.
"""
from __future__ import annotations

import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


@dataclass(frozen=True)
class TranslationCacheEntry:
    key: str
    translation: str
    alternative_translations: list[str] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)


def normalize(text: str) -> str:
    return text.strip().lower()


class TranslationCache:
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: OrderedDict[str, TranslationCacheEntry] = OrderedDict()

    def get(self, text: str) -> TranslationCacheEntry | None:
        """Return the cached entry and mark it most recently used."""
        key = normalize(text)
        entry = self._entries.get(key)
        if entry is None:
            return None
        self._entries.move_to_end(key)
        return entry

    def set(
        self,
        text: str,
        translation: str,
        alternatives: list[str] | None = None,
    ) -> TranslationCacheEntry:
        key = normalize(text)
        entry = TranslationCacheEntry(
            key=key,
            translation=translation,
            alternative_translations=list(alternatives or []),
        )
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted translation cache entry %r", evicted)
        self._entries[key] = entry
        return entry

    def has(self, text: str) -> bool:
        # Membership check only; does not affect recency
        return normalize(text) in self._entries

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        """Keys from least to most recently used."""
        return list(self._entries)

    async def get_or_fetch(
        self,
        text: str,
        fetch: Callable[[str], Awaitable[tuple[str, list[str]]]],
    ) -> TranslationCacheEntry:
        """
        Return a cached translation, calling ``fetch`` on a miss.

        ``fetch`` returns ``(translation, alternatives)``. Fetch errors
        propagate; a failure to store the result does not.
        """
        cached = self.get(text)
        if cached is not None:
            return cached

        translation, alternatives = await fetch(text)
        try:
            return self.set(text, translation, alternatives)
        except Exception as e:
            logger.warning("Translation cache store failed for %r: %s", text, e)
            return TranslationCacheEntry(
                key=normalize(text),
                translation=translation,
                alternative_translations=list(alternatives),
            )
