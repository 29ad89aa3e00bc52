from __future__ import annotations

import json
from typing import Any

import aiohttp
import pytest

from photowall._transport import RestSnapshotReader, parse_snapshot_rows
from photowall.config import WallConfig
from photowall.exceptions import WallTransportError


class _FakeResponse:
    def __init__(self, status: int, text: str) -> None:
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _FakeSession:
    def __init__(self, response: _FakeResponse | None = None, error: Exception | None = None) -> None:
        self._response = response
        self._error = error
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, *, params: dict[str, str], headers: dict[str, str]) -> _FakeResponse:
        self.calls.append({"url": url, "params": params, "headers": headers})
        if self._error is not None:
            raise self._error
        assert self._response is not None
        return self._response


def _config(**kwargs: Any) -> WallConfig:
    return WallConfig(base_url="https://db.example/", api_key="anon", **kwargs)


_ROWS = [
    {"id": "p2", "url": "https://cdn.example/p2.jpg", "collage_id": "c1", "created_at": "2024-05-01T12:01:00Z"},
    {"id": "p1", "url": "https://cdn.example/p1.jpg", "collage_id": "c1", "created_at": "2024-05-01T12:00:00Z"},
]


@pytest.mark.asyncio
async def test_read_snapshot_builds_request_and_parses_rows() -> None:
    session = _FakeSession(_FakeResponse(200, json.dumps(_ROWS)))
    reader = RestSnapshotReader(_config(), session)  # type: ignore[arg-type]

    items = await reader.read_snapshot("c1")

    assert [item.id for item in items] == ["p2", "p1"]
    [call] = session.calls
    assert call["url"] == "https://db.example/rest/v1/photos"
    assert call["params"] == {"select": "*", "collage_id": "eq.c1", "order": "created_at.desc"}
    assert call["headers"]["apikey"] == "anon"
    assert call["headers"]["authorization"] == "Bearer anon"


@pytest.mark.asyncio
async def test_read_snapshot_uses_configured_table_and_column() -> None:
    session = _FakeSession(_FakeResponse(200, "[]"))
    reader = RestSnapshotReader(_config(collection_table="images", collection_column="wall"), session)  # type: ignore[arg-type]
    assert await reader.read_snapshot("c9") == []
    assert session.calls[0]["url"].endswith("/rest/v1/images")
    assert session.calls[0]["params"]["wall"] == "eq.c9"


@pytest.mark.asyncio
async def test_non_200_raises_with_context() -> None:
    session = _FakeSession(_FakeResponse(503, "unavailable"))
    reader = RestSnapshotReader(_config(), session)  # type: ignore[arg-type]
    with pytest.raises(WallTransportError) as excinfo:
        await reader.read_snapshot("c1")
    assert excinfo.value.status_code == 503
    assert excinfo.value.endpoint == "/rest/v1/photos"


@pytest.mark.asyncio
async def test_client_error_and_bad_json_raise_transport_error() -> None:
    failing = RestSnapshotReader(_config(), _FakeSession(error=aiohttp.ClientConnectionError("refused")))  # type: ignore[arg-type]
    with pytest.raises(WallTransportError):
        await failing.read_snapshot("c1")

    garbled = RestSnapshotReader(_config(), _FakeSession(_FakeResponse(200, "<html>")))  # type: ignore[arg-type]
    with pytest.raises(WallTransportError):
        await garbled.read_snapshot("c1")


def test_parse_snapshot_rows_skips_invalid_rows() -> None:
    rows = [_ROWS[0], {"id": "broken"}, "not-a-row", _ROWS[1]]
    assert [item.id for item in parse_snapshot_rows(rows)] == ["p2", "p1"]


def test_parse_snapshot_rows_requires_a_list() -> None:
    with pytest.raises(WallTransportError):
        parse_snapshot_rows({"rows": _ROWS}, endpoint="/rest/v1/photos")


def test_parse_snapshot_rows_skips_out_of_range_timestamps() -> None:
    rows = [
        _ROWS[0],
        {"id": "huge", "url": "https://cdn.example/huge.jpg", "created_at": 1e30},
        {"id": "inf", "url": "https://cdn.example/inf.jpg", "created_at": float("inf")},
        _ROWS[1],
    ]
    assert [item.id for item in parse_snapshot_rows(rows)] == ["p2", "p1"]


@pytest.mark.asyncio
async def test_read_snapshot_survives_overflowing_json_timestamp() -> None:
    body = json.dumps(_ROWS[:1])[:-1] + ', {"id": "bad", "url": "u", "created_at": 1e400}]'
    reader = RestSnapshotReader(_config(), _FakeSession(_FakeResponse(200, body)))  # type: ignore[arg-type]
    assert [item.id for item in await reader.read_snapshot("c1")] == ["p2"]
