import httpx
import pytest

from companion.config import settings
from companion.db.sqlite import get_cached_translation
from companion.services.translator import TranslationUnavailableError, translate


@pytest.fixture
def deepl(monkeypatch):
    monkeypatch.setattr(settings, "translation_provider", "deepl")
    monkeypatch.setattr(settings, "deepl_api_key", "test-key")
    monkeypatch.setattr(settings, "target_language", "el")


def deepl_transport(calls):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(
            200,
            json={
                "translations": [
                    {
                        "text": "σπίτι",
                        "alternatives": [{"text": "οικία"}, {"text": "σπίτι"}, {"text": "κατοικία"}],
                    }
                ]
            },
        )

    return httpx.MockTransport(handler)


def failing_transport():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"message": "unavailable"})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_deepl_translation_and_memo(db, deepl):
    calls = []
    result = await translate(db, "house", transport=deepl_transport(calls))

    assert result.translated_text == "σπίτι"
    assert result.alternative_translations == ["οικία", "κατοικία"]
    assert result.cached is False
    assert calls[0].headers["Authorization"] == "DeepL-Auth-Key test-key"
    assert await get_cached_translation(db, "house", "el") == "σπίτι"

    again = await translate(db, "house", transport=deepl_transport(calls))
    assert again.cached is True


@pytest.mark.asyncio
async def test_provider_failure_serves_memo(db, deepl):
    await translate(db, "house", transport=deepl_transport([]))

    result = await translate(db, "house", transport=failing_transport())
    assert result.translated_text == "σπίτι"
    assert result.alternative_translations == []
    assert result.cached is True


@pytest.mark.asyncio
async def test_provider_failure_without_memo_raises(db, deepl):
    with pytest.raises(TranslationUnavailableError):
        await translate(db, "window", transport=failing_transport())


@pytest.mark.asyncio
async def test_missing_api_key(db, deepl, monkeypatch):
    monkeypatch.setattr(settings, "deepl_api_key", "")
    with pytest.raises(TranslationUnavailableError):
        await translate(db, "house", transport=deepl_transport([]))


@pytest.mark.asyncio
async def test_libretranslate(db, monkeypatch):
    monkeypatch.setattr(settings, "translation_provider", "libretranslate")
    monkeypatch.setattr(settings, "libretranslate_url", "http://libre.test/translate")

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == "libre.test"
        return httpx.Response(200, json={"translatedText": "βιβλίο"})

    result = await translate(db, "book", transport=httpx.MockTransport(handler))
    assert result.translated_text == "βιβλίο"
    assert result.alternative_translations == []


@pytest.mark.asyncio
async def test_unknown_provider(db, monkeypatch):
    monkeypatch.setattr(settings, "translation_provider", "babelfish")
    with pytest.raises(TranslationUnavailableError):
        await translate(db, "house")


def test_translate_endpoint_validation(client):
    assert client.post("/translate", json={"text": "   "}).status_code == 400


def test_translate_endpoint_reports_provider_failure(client, monkeypatch):
    monkeypatch.setattr(settings, "translation_provider", "babelfish")
    res = client.post("/translate", json={"text": "house"})
    assert res.status_code == 502
