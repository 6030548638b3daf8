"""Outbound client tests against an httpx.MockTransport."""

import asyncio
import json
from typing import Callable, List
from urllib.parse import parse_qs

import httpx
import pytest

from kavach.clients.inference import InferenceClient
from kavach.clients.sms import SmsNotifier
from kavach.clients.stopping_distance import StoppingDistanceClient, parse_distance_km
from kavach.clients.translation import RedisTranslationCache, TranslationCache, Translator
from kavach.errors import (
    MalformedResponseError,
    MissingParameterError,
    TransportError,
    UpstreamStatusError,
)


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _distance_client(handler: Callable[[httpx.Request], httpx.Response]) -> StoppingDistanceClient:
    return StoppingDistanceClient(
        _client(handler),
        api_url="https://llm.test/v1/generate",
        api_key="k",
        model="m",
    )


# -------------------------------
# Stopping distance
# -------------------------------
def test_parse_distance_takes_first_number() -> None:
    assert parse_distance_km("1.25") == 1.25
    assert parse_distance_km("About 0.8 km, maybe 1") == 0.8


def test_parse_distance_rejects_non_numeric() -> None:
    with pytest.raises(MalformedResponseError):
        parse_distance_km("I cannot answer that")


def test_estimate_posts_prompt_and_parses_reply() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"generations": [{"text": " 1.4\n"}]})

    est = asyncio.run(_distance_client(handler).estimate(speed=22.2, lat=12.9, long=77.5))

    assert est.distance_km == 1.4
    assert est.raw_text == " 1.4\n"
    body = json.loads(seen[0].content)
    assert "22.2 m/s" in body["prompt"]
    assert "(12.9, 77.5)" in body["prompt"]
    assert seen[0].headers["authorization"] == "Bearer k"


def test_estimate_missing_parameter() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(MissingParameterError):
        asyncio.run(_distance_client(handler).estimate(speed=None, lat=1.0, long=2.0))


def test_estimate_upstream_status_keeps_details() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"message": "rate limited"})

    with pytest.raises(UpstreamStatusError) as info:
        asyncio.run(_distance_client(handler).estimate(speed=10, lat=1.0, long=2.0))

    assert info.value.status_code == 429
    assert info.value.details == {"message": "rate limited"}


def test_estimate_unreachable_is_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        asyncio.run(_distance_client(handler).estimate(speed=10, lat=1.0, long=2.0))


def test_estimate_without_generations_is_malformed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"generations": []})

    with pytest.raises(MalformedResponseError):
        asyncio.run(_distance_client(handler).estimate(speed=10, lat=1.0, long=2.0))


# -------------------------------
# SMS
# -------------------------------
def test_sms_sends_form_payload() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"status": "queued"})

    notifier = SmsNotifier(
        _client(handler),
        api_url="https://sms.test/send",
        api_key="secret",
        template_id="tpl",
        sender_id="Hi",
        default_recipient="9999999999",
    )
    out = asyncio.run(notifier.send("Deer on track"))

    assert out == {"status": "queued"}
    form = parse_qs(seen[0].content.decode())
    assert form["mobile_no"] == ["9999999999"]
    assert form["message"] == ["Deer on track"]
    assert form["dlt_template_id"] == ["tpl"]
    assert form["unicode"] == ["0"]
    assert seen[0].headers["authorization"] == "secret"


def test_sms_without_recipient_is_missing_parameter() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    notifier = SmsNotifier(_client(handler), "https://sms.test/send", "k", "tpl", "Hi")

    with pytest.raises(MissingParameterError):
        asyncio.run(notifier.send("hello"))


# -------------------------------
# Inference
# -------------------------------
def test_inference_parses_objects() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/detect"
        assert json.loads(request.content)["frame"].startswith("data:image/jpeg")
        return httpx.Response(
            200,
            json={
                "objects": [{"class_id": 19, "class_name": "cow", "confidence": 0.87}],
                "alerts": [{"object": "cow", "consecutive_count": 9}],
            },
        )

    client = InferenceClient(_client(handler), "https://ml.test/")
    out = asyncio.run(client.detect("data:image/jpeg;base64,AAAA"))

    assert [(d.class_name, d.confidence) for d in out] == [("cow", 0.87)]


def test_inference_empty_reply_means_nothing_seen() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    client = InferenceClient(_client(handler), "https://ml.test")
    assert asyncio.run(client.detect("data:image/jpeg;base64,AAAA")) == []


def test_inference_bad_confidence_is_malformed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"objects": [{"class_name": "cow", "confidence": 7}]})

    client = InferenceClient(_client(handler), "https://ml.test")
    with pytest.raises(MalformedResponseError):
        asyncio.run(client.detect("data:image/jpeg;base64,AAAA"))


def test_inference_non_json_is_malformed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>sleeping</html>")

    client = InferenceClient(_client(handler), "https://ml.test")
    with pytest.raises(MalformedResponseError):
        asyncio.run(client.detect("data:image/jpeg;base64,AAAA"))


# -------------------------------
# Translation
# -------------------------------
def _translator(handler: Callable[[httpx.Request], httpx.Response], cache: TranslationCache) -> Translator:
    return Translator(_client(handler), "https://tr.test/v2", "key", cache)


def test_translate_english_passes_through() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    tr = _translator(handler, TranslationCache())
    assert asyncio.run(tr.translate_text("Dashboard", "en")) == "Dashboard"


def test_translate_uses_cache() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content))
        return httpx.Response(200, json={"data": {"translations": [{"translatedText": "Tablero"}]}})

    tr = _translator(handler, TranslationCache())

    async def twice() -> List[str]:
        return [await tr.translate_text("Dashboard", "es"), await tr.translate_text("Dashboard", "es")]

    assert asyncio.run(twice()) == ["Tablero", "Tablero"]
    assert len(calls) == 1
    assert calls[0]["target"] == "es"
    assert calls[0]["source"] == "en"


def test_translate_failure_falls_back_to_original() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    cache = TranslationCache()
    tr = _translator(handler, cache)

    assert asyncio.run(tr.translate_text("Alerts", "fr")) == "Alerts"
    assert len(cache) == 0


def test_translate_object_translates_string_values_only() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        q = json.loads(request.content)["q"]
        return httpx.Response(200, json={"data": {"translations": [{"translatedText": q.upper()}]}})

    tr = _translator(handler, TranslationCache())
    out = asyncio.run(tr.translate_object({"title": "trains", "count": 3}, "de"))

    assert out == {"title": "TRAINS", "count": 3}


def test_translation_cache_entries_expire() -> None:
    now = {"t": 0.0}
    cache = TranslationCache(ttl_sec=60, clock=lambda: now["t"])
    cache.set("Alerts", "hi", "अलर्ट")

    now["t"] = 30.0
    assert cache.get("Alerts", "hi") == "अलर्ट"

    now["t"] = 61.0
    assert cache.get("Alerts", "hi") is None
    assert len(cache) == 0


class RecordingRedis:
    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def setex(self, key: str, ttl: int, value: str) -> None:
        self.calls.append(("setex", ttl, value))

    def set(self, key: str, value: str) -> None:
        self.calls.append(("set", None, value))


def test_redis_cache_never_sets_zero_expiry() -> None:
    r = RecordingRedis()

    RedisTranslationCache(r, ttl_sec=0.5).set("Alerts", "es", "Alertas")
    RedisTranslationCache(r, ttl_sec=90).set("Alerts", "es", "Alertas")
    RedisTranslationCache(r, ttl_sec=None).set("Alerts", "es", "Alertas")

    assert r.calls == [("setex", 1, "Alertas"), ("setex", 90, "Alertas"), ("set", None, "Alertas")]
