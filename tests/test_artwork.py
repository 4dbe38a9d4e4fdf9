"""Tests for the artwork providers using httpx.MockTransport."""

import json
from collections.abc import Callable

import httpx
import pytest
from conftest import FakeClock

from concert_agent.ingestion.throttle import TokenBucket
from concert_agent.services.artwork import (
    ITunesProvider,
    MusicBrainzProvider,
    WikipediaProvider,
)

UA = "TestAgent/1.0"


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _mb_search(score: int = 100, mbid: str = "mb-1") -> dict:
    return {"artists": [{"id": mbid, "name": "Robyn", "score": score}]}


class TestMusicBrainzProvider:
    """Tests for MusicBrainzProvider."""

    @pytest.mark.asyncio
    async def test_commons_image_relation(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/ws/2/artist/":
                assert request.url.params["query"] == 'artist:"Robyn"'
                assert request.headers["user-agent"] == UA
                return httpx.Response(200, json=_mb_search())
            if request.url.path == "/ws/2/artist/mb-1":
                return httpx.Response(
                    200,
                    json={
                        "relations": [
                            {"type": "wikidata", "url": {"resource": "https://www.wikidata.org/wiki/Q1"}},
                            {"type": "image", "url": {"resource": "https://commons.wikimedia.org/wiki/File:Robyn_2019.jpg"}},
                        ]
                    },
                )
            raise AssertionError(f"unexpected request {request.url}")

        async with _client(handler) as client:
            url = await MusicBrainzProvider(client, UA).lookup("Robyn")

        assert url == "https://commons.wikimedia.org/wiki/Special:FilePath/Robyn_2019.jpg?width=600"

    @pytest.mark.asyncio
    async def test_wikidata_p18(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "musicbrainz.org" and request.url.path.endswith("/artist/"):
                return httpx.Response(200, json=_mb_search())
            if request.url.host == "musicbrainz.org":
                return httpx.Response(
                    200,
                    json={"relations": [{"type": "wikidata", "url": {"resource": "https://www.wikidata.org/wiki/Q42"}}]},
                )
            if request.url.host == "www.wikidata.org":
                assert request.url.path == "/wiki/Special:EntityData/Q42.json"
                claim = {"mainsnak": {"datavalue": {"value": "Robyn live 2019.jpg"}}}
                return httpx.Response(200, json={"entities": {"Q42": {"claims": {"P18": [claim]}}}})
            raise AssertionError(f"unexpected request {request.url}")

        async with _client(handler) as client:
            url = await MusicBrainzProvider(client, UA).lookup("Robyn")

        assert url == "https://commons.wikimedia.org/wiki/Special:FilePath/Robyn_live_2019.jpg?width=600"

    @pytest.mark.asyncio
    async def test_low_score_is_a_miss(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=_mb_search(score=60))

        async with _client(handler) as client:
            assert await MusicBrainzProvider(client, UA).lookup("Robin") is None
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_server_error_is_swallowed(self) -> None:
        async with _client(lambda request: httpx.Response(503)) as client:
            assert await MusicBrainzProvider(client, UA).lookup("Robyn") is None

    @pytest.mark.asyncio
    async def test_malformed_payload_is_swallowed(self) -> None:
        async with _client(lambda request: httpx.Response(200, content=b"<html>")) as client:
            assert await MusicBrainzProvider(client, UA).lookup("Robyn") is None

    @pytest.mark.asyncio
    async def test_throttle_applied(self, clock: FakeClock) -> None:
        throttle = TokenBucket.min_interval(1.0, clock=clock, sleep=clock.sleep)
        async with _client(lambda request: httpx.Response(200, json={"artists": []})) as client:
            provider = MusicBrainzProvider(client, UA, throttle=throttle)
            await provider.lookup("A")
            await provider.lookup("B")
        assert clock.sleeps == [pytest.approx(1.0)]


class TestWikipediaProvider:
    """Tests for WikipediaProvider."""

    @pytest.mark.asyncio
    async def test_original_image(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "en.wikipedia.org"
            assert request.url.path == "/api/rest_v1/page/summary/First_Aid_Kit"
            return httpx.Response(
                200,
                json={
                    "type": "standard",
                    "originalimage": {"source": "https://upload.wikimedia.org/fak.jpg"},
                    "thumbnail": {"source": "https://upload.wikimedia.org/fak_thumb.jpg"},
                },
            )

        async with _client(handler) as client:
            url = await WikipediaProvider(client, UA).lookup("First Aid Kit")
        assert url == "https://upload.wikimedia.org/fak.jpg"

    @pytest.mark.asyncio
    async def test_disambiguation_is_a_miss(self) -> None:
        payload = {"type": "disambiguation", "thumbnail": {"source": "https://upload.wikimedia.org/x.jpg"}}
        async with _client(lambda request: httpx.Response(200, json=payload)) as client:
            assert await WikipediaProvider(client, UA).lookup("Kent") is None

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        async with _client(lambda request: httpx.Response(404, json={"title": "Not found."})) as client:
            assert await WikipediaProvider(client, UA, lang="sv").lookup("Nobody") is None


class TestITunesProvider:
    """Tests for ITunesProvider."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("entity", ["album", "musicTrack"])
    async def test_artwork_upscaled(self, entity: str) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["entity"] == entity
            assert request.url.params["term"] == "Robyn"
            body = {"resultCount": 1, "results": [{"artworkUrl100": "https://is1.mzstatic.com/a/100x100bb.jpg"}]}
            return httpx.Response(200, content=json.dumps(body).encode(), headers={"content-type": "text/javascript"})

        async with _client(handler) as client:
            provider = ITunesProvider(client, UA, entity=entity)
            url = await provider.lookup("Robyn")

        assert provider.name == f"itunes-{entity}"
        assert url == "https://is1.mzstatic.com/a/600x600bb.jpg"

    @pytest.mark.asyncio
    async def test_no_results(self) -> None:
        async with _client(lambda request: httpx.Response(200, json={"resultCount": 0, "results": []})) as client:
            assert await ITunesProvider(client, UA).lookup("Nobody") is None
