"""Custom exception hierarchy for photowall."""

from __future__ import annotations


class WallError(Exception):
    """Base exception for all photowall errors."""


class WallConfigError(WallError):
    """Invalid or missing configuration."""


class WallTransportError(WallError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class WallFeedError(WallError):
    """Change-feed connect or subscribe failure."""


class WallPayloadError(WallError):
    """A feed or snapshot payload could not be normalized into items."""


class LayoutContractError(WallError):
    """A layout component was driven outside its contract.

    Raised for out-of-range slot indices, negative animation time, or an
    allocator resize interleaved with a reconcile. These indicate a broken
    single-writer invariant and are never recovered internally.
    """
