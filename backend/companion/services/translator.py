"""
Translation provider service.

Providers:  DeepL (with alternatives) or LibreTranslate, chosen by
            settings.translation_provider.
Memo:       the server-side translation_cache table stores the main
            translation; the provider is still called to obtain alternatives,
            and the memo is served alone when the provider fails.

Usage:
    result = await translate(db, text)
"""
from __future__ import annotations

import logging

import aiosqlite
import httpx

from companion.config import settings
from companion.db.sqlite import get_cached_translation, save_translation
from companion.models.translation import TranslationResult

logger = logging.getLogger(__name__)

DEEPL_URL = "https://api-free.deepl.com/v2/translate"
MAX_ALTERNATIVES = 6


class TranslationUnavailableError(Exception):
    """Raised when no provider is configured or the provider call failed."""


async def _translate_deepl(
    client: httpx.AsyncClient, text: str, target: str
) -> tuple[str, list[str]]:
    if not settings.deepl_api_key:
        raise TranslationUnavailableError("COMPANION_DEEPL_API_KEY is not set")

    res = await client.post(
        DEEPL_URL,
        headers={"Authorization": f"DeepL-Auth-Key {settings.deepl_api_key}"},
        json={
            "text": [text],
            "target_lang": target.upper(),
            "alternatives": MAX_ALTERNATIVES,
        },
    )
    res.raise_for_status()
    first = res.json()["translations"][0]
    main = first["text"]
    alternatives = [
        alt["text"] for alt in first.get("alternatives") or [] if alt.get("text") != main
    ]
    return main, alternatives[:MAX_ALTERNATIVES]


async def _translate_libre(
    client: httpx.AsyncClient, text: str, target: str
) -> tuple[str, list[str]]:
    body = {"q": text, "source": "en", "target": target, "format": "text"}
    if settings.libretranslate_api_key:
        body["api_key"] = settings.libretranslate_api_key
    res = await client.post(settings.libretranslate_url, json=body)
    res.raise_for_status()
    return res.json()["translatedText"], []


_PROVIDERS = {
    "deepl": _translate_deepl,
    "libretranslate": _translate_libre,
}


async def translate(
    db: aiosqlite.Connection,
    text: str,
    transport: httpx.AsyncBaseTransport | None = None,
) -> TranslationResult:
    """
    Translate ``text`` into settings.target_language.

    Raises TranslationUnavailableError if the provider is unknown,
    misconfigured or fails.
    """
    provider = _PROVIDERS.get(settings.translation_provider.lower())
    if provider is None:
        raise TranslationUnavailableError(
            f"Unknown translation provider: {settings.translation_provider}"
        )

    target = settings.target_language
    cached = await get_cached_translation(db, text, target)

    try:
        async with httpx.AsyncClient(timeout=settings.request_timeout, transport=transport) as client:
            main, alternatives = await provider(client, text, target)
    except TranslationUnavailableError:
        raise
    except (httpx.HTTPError, KeyError, IndexError, ValueError) as e:
        logger.warning("Translation provider %s failed: %s", settings.translation_provider, e)
        if cached is not None:
            # Serve the memoised main translation without alternatives
            return TranslationResult(translated_text=cached, cached=True)
        raise TranslationUnavailableError(str(e)) from e

    if cached is None:
        await save_translation(db, text, target, main)

    return TranslationResult(
        translated_text=main,
        alternative_translations=alternatives,
        cached=cached is not None,
    )
