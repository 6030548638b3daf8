# kavach/clients/translation.py
# ------------------------------------------------------------
# UI text translation (Google Cloud Translation v2 REST API)
# with a (text, language) keyed cache.
#
# Cache entries expire after ttl_sec; None keeps them for the
# process lifetime. The Redis variant lets several workers share
# one cache.
# ------------------------------------------------------------

from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, TypeVar

import httpx
import redis

from ..errors import KavachError, MalformedResponseError
from ._http import json_body, send

logger = logging.getLogger(__name__)

SERVICE = "translation"
SOURCE_LANGUAGE = "en"

SUPPORTED_LANGUAGES: List[Dict[str, str]] = [
    {"code": "en", "name": "English"},
    {"code": "es", "name": "Español"},
    {"code": "fr", "name": "Français"},
    {"code": "de", "name": "Deutsch"},
    {"code": "hi", "name": "हिन्दी"},
    {"code": "ja", "name": "日本語"},
]
LANGUAGE_CODES = tuple(lang["code"] for lang in SUPPORTED_LANGUAGES)

T = TypeVar("T", bound=Dict[str, Any])


class TranslationStore(Protocol):
    def get(self, text: str, target: str) -> Optional[str]: ...

    def set(self, text: str, target: str, translated: str) -> None: ...

    def clear(self) -> None: ...


class TranslationCache:
    """
    In-process cache with optional TTL eviction.
    """

    def __init__(
        self,
        ttl_sec: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_sec = ttl_sec
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[str, float]] = {}

    def get(self, text: str, target: str) -> Optional[str]:
        entry = self._entries.get((text, target))
        if entry is None:
            return None
        value, stored_at = entry
        if self.ttl_sec is not None and self._clock() - stored_at > self.ttl_sec:
            del self._entries[(text, target)]
            return None
        return value

    def set(self, text: str, target: str, translated: str) -> None:
        self._entries[(text, target)] = (translated, self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisTranslationCache:
    def __init__(self, r: redis.Redis, ttl_sec: Optional[float] = None, prefix: str = "i18n") -> None:
        self._r = r
        self.ttl_sec = ttl_sec
        self.prefix = prefix

    def _key(self, text: str, target: str) -> str:
        digest = hashlib.sha1(text.encode("utf-8")).hexdigest()
        return f"{self.prefix}:{target}:{digest}"

    def get(self, text: str, target: str) -> Optional[str]:
        return self._r.get(self._key(text, target))

    def set(self, text: str, target: str, translated: str) -> None:
        if self.ttl_sec:
            # Redis rejects a zero expiry
            self._r.setex(self._key(text, target), max(1, int(self.ttl_sec)), translated)
        else:
            self._r.set(self._key(text, target), translated)

    def clear(self) -> None:
        keys = list(self._r.scan_iter(match=f"{self.prefix}:*"))
        if keys:
            self._r.delete(*keys)


class Translator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str,
        api_key: str,
        cache: TranslationStore,
    ) -> None:
        self.client = client
        self.api_url = api_url
        self.api_key = api_key
        self.cache = cache

    async def translate_text(self, text: str, target: str) -> str:
        """
        Translate English UI text into `target`.

        Falls back to the original text when the upstream call fails,
        so the UI keeps rendering.
        """
        if target not in LANGUAGE_CODES:
            raise ValueError(f"unsupported language: {target}")
        if target == SOURCE_LANGUAGE or not text:
            return text

        cached = self.cache.get(text, target)
        if cached is not None:
            return cached

        try:
            translated = await self._fetch(text, target)
        except KavachError as e:
            logger.warning("translation to %s failed: %s", target, e)
            return text

        self.cache.set(text, target, translated)
        return translated

    async def translate_object(self, obj: T, target: str) -> T:
        if target == SOURCE_LANGUAGE:
            return obj

        keys = [k for k, v in obj.items() if isinstance(v, str)]
        results = await asyncio.gather(*(self.translate_text(obj[k], target) for k in keys))
        out = dict(obj)
        out.update(zip(keys, results))
        return out  # type: ignore[return-value]

    async def _fetch(self, text: str, target: str) -> str:
        resp = await send(
            self.client,
            SERVICE,
            "POST",
            self.api_url,
            params={"key": self.api_key},
            json={"q": text, "target": target, "source": SOURCE_LANGUAGE, "format": "text"},
        )
        body = json_body(resp, SERVICE)
        try:
            return body["data"]["translations"][0]["translatedText"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponseError("translation reply has no translatedText") from e
