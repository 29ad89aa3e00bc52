"""Wall item model."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, Field, field_validator

from photowall.models._base import WallBaseModel, WallTimestamp


class Item(WallBaseModel):
    """One contributed photograph.

    Accepts backend rows directly: ``url`` is read into ``location_ref`` and
    ``collage_id`` into ``collection_id``.
    """

    id: str
    location_ref: str = Field(validation_alias=AliasChoices("location_ref", "locationRef", "url"))
    created_at: WallTimestamp = Field(validation_alias=AliasChoices("created_at", "createdAt"))
    collection_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("collection_id", "collectionId", "collage_id"),
    )
    storage_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("storage_path", "storagePath"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: object) -> str:
        item_id = str(value).strip()
        if not item_id:
            raise ValueError("id must be non-empty")
        return item_id

    @property
    def order_key(self) -> tuple[datetime, str]:
        """Oldest-first ordering key, ties broken by id."""
        return (self.created_at, self.id)

    def same_content(self, other: Item) -> bool:
        """Compare the item fields, ignoring the raw payload."""
        return self.model_dump() == other.model_dump()
