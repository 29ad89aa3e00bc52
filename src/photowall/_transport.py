"""HTTP snapshot reads used by the polling fallback."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp
from pydantic import ValidationError

from photowall._redact import redact_for_log
from photowall.config import WallConfig
from photowall.exceptions import WallTransportError
from photowall.models.item import Item

_logger = logging.getLogger(__name__)


class SnapshotSource(Protocol):
    """Structural snapshot-read interface used by the supervisor.

    Implementations must be idempotent and side-effect free. Having a
    protocol here makes it easy to pass test doubles.
    """

    async def read_snapshot(self, collection_id: str) -> list[Item]: ...


def parse_snapshot_rows(rows: Any, *, endpoint: str = "") -> list[Item]:
    """Validate backend rows into items, skipping rows that cannot be parsed.

    The result is treated as the full membership, so a skipped row counts as
    absent: an item already on the wall is removed once its row stops
    validating (for example an out-of-range ``created_at``), and returns when
    the row is fixed.
    """
    if not isinstance(rows, list):
        raise WallTransportError(f"Snapshot from {endpoint} is not a list", endpoint=endpoint)
    items: list[Item] = []
    for row in rows:
        if not isinstance(row, dict):
            _logger.warning("Skipping non-object snapshot row from %s", endpoint)
            continue
        try:
            items.append(Item.model_validate(row))
        except ValidationError:
            _logger.warning("Skipping invalid snapshot row id=%s", row.get("id"), exc_info=True)
    return items


class RestSnapshotReader:
    """Reads a collection's full membership from a PostgREST-style endpoint."""

    def __init__(self, config: WallConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self._config.api_key:
            headers["apikey"] = self._config.api_key
            headers["authorization"] = f"Bearer {self._config.api_key}"
        return headers

    async def read_snapshot(self, collection_id: str) -> list[Item]:
        """Fetch every item of *collection_id*, newest first."""
        endpoint = f"/rest/v1/{self._config.collection_table}"
        url = f"{self._config.base_url.rstrip('/')}{endpoint}"
        params = {
            "select": "*",
            self._config.collection_column: f"eq.{collection_id}",
            "order": "created_at.desc",
        }
        headers = self._headers()
        _logger.debug("GET %s params=%s headers=%s", url, params, redact_for_log(headers))

        try:
            async with self._http.get(url, params=params, headers=headers) as resp:
                text = await resp.text()
                if resp.status != 200:
                    raise WallTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except WallTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise WallTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        try:
            rows = json.loads(text)
        except json.JSONDecodeError as exc:
            raise WallTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc

        items = parse_snapshot_rows(rows, endpoint=endpoint)
        _logger.debug("Snapshot read collection=%s items=%d", collection_id, len(items))
        return items
