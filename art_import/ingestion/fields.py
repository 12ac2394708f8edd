"""Field mapping for flat JSON records (feed items, open-data exports)."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from art_import.core.schema import CandidateRecord, Coordinates


def dig(item: dict[str, Any], path: str) -> Any:
    """Look up a dotted path (``location.lat``) in nested dictionaries."""
    value: Any = item
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def slugify(value: str) -> str:
    """Lowercase, hyphen-separated identifier."""
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def split_artists(value: Any) -> list[str]:
    """Artist names from a comma-separated string or a list."""
    if isinstance(value, str):
        return [a.strip() for a in value.split(",") if a.strip()]
    if isinstance(value, list):
        return [str(a).strip() for a in value if str(a).strip()]
    return []


@dataclass
class FieldMap:
    """Where each candidate field lives in a record (dotted paths allowed)."""

    id: str = "id"
    title: str = "title"
    lat: str = "lat"
    lon: str = "lon"
    description: str = "description"
    artist: str = "artist"
    tags: str = "tags"
    url: str = "url"
    photos: str = "photos"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> FieldMap:
        """Create from dictionary, ignoring unknown keys."""
        if not data:
            return cls()
        known = set(cls.__dataclass_fields__)
        return cls(**{k: str(v) for k, v in data.items() if k in known})

    def top_level_keys(self) -> set[str]:
        return {getattr(self, name).split(".")[0] for name in self.__dataclass_fields__}

    def external_id(self, item: dict[str, Any]) -> str | None:
        """The record's id as a string, or None when blank."""
        raw = dig(item, self.id)
        if raw is None or str(raw).strip() == "":
            return None
        return str(raw)

    def to_candidate(
        self,
        item: dict[str, Any],
        external_id: str,
        source: str,
        description: str | None = None,
    ) -> CandidateRecord:
        """
        Map one record to a candidate.

        Args:
            item: Raw record
            external_id: ID to give the candidate
            source: Source name
            description: Pre-processed description, overriding the raw one

        Raises:
            ValueError: If the record has no usable coordinates
        """
        lat = dig(item, self.lat)
        lon = dig(item, self.lon)
        if lat is None or lon is None:
            raise ValueError("missing coordinates")

        tags = dig(item, self.tags)
        if not isinstance(tags, (dict, list)):
            tags = {}

        if description is None:
            raw_description = dig(item, self.description)
            description = raw_description if isinstance(raw_description, str) else None

        title = dig(item, self.title)
        photos = dig(item, self.photos)
        mapped = self.top_level_keys()

        return CandidateRecord(
            external_id=external_id,
            coordinates=Coordinates(lat=float(lat), lon=float(lon)),
            title=str(title).strip() if title is not None else None,
            tags=tags,
            raw_properties={
                k: v for k, v in item.items()
                if k not in mapped and isinstance(v, (str, int, float, bool))
            },
            source=source,
            source_url=str(dig(item, self.url) or ""),
            description=description or None,
            artists=split_artists(dig(item, self.artist)),
            photos=[str(p) for p in photos] if isinstance(photos, list) else [],
        )
