"""Pydantic v2 models for candidate artworks, artists and catalog entries."""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Property keys lifted out of a GeoJSON feature into dedicated fields.
_FEATURE_KEYS = {
    "title",
    "description",
    "artists",
    "artist",
    "tags",
    "photos",
    "source",
    "source_url",
}


class Coordinates(BaseModel):
    """A WGS84 point."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float

    @property
    def in_range(self) -> bool:
        """True when latitude and longitude are within their valid ranges."""
        return -90.0 <= self.lat <= 90.0 and -180.0 <= self.lon <= 180.0

    @property
    def is_null_island(self) -> bool:
        """True for the (0, 0) placeholder scrapers emit when a page has no map."""
        return self.lat == 0.0 and self.lon == 0.0


Tags = dict[str, Any] | list[str]


def flatten_tags(tags: Tags | str | None) -> list[str]:
    """
    Flatten any supported tag representation into a list of strings.

    Accepts a list of strings, a key->value mapping, a ``{"tags": {...}}``
    wrapper, or a JSON string holding any of those. Mapping forms contribute
    their string values; non-string values are ignored.

    Args:
        tags: Tags in any supported form

    Returns:
        List of tag strings (order preserved, may contain duplicates)
    """
    if tags is None:
        return []

    if isinstance(tags, str):
        if not tags.strip():
            return []
        try:
            tags = json.loads(tags)
        except json.JSONDecodeError:
            return []

    if isinstance(tags, list):
        return [tag for tag in tags if isinstance(tag, str)]

    if isinstance(tags, dict):
        values: list[str] = []
        for key, value in tags.items():
            if isinstance(value, str):
                values.append(value)
            elif key == "tags" and isinstance(value, dict):
                values.extend(v for v in value.values() if isinstance(v, str))
        return values

    return []


class CandidateRecord(BaseModel):
    """
    A not-yet-committed artwork extracted from an external source.

    Immutable once created. Transformations produce copies via
    ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True)

    external_id: str
    coordinates: Coordinates
    title: str | None = None
    tags: Tags = Field(default_factory=dict)
    raw_properties: dict[str, Any] = Field(default_factory=dict)

    source: str = ""
    source_url: str = ""
    description: str | None = None
    artists: list[str] = Field(default_factory=list)
    photos: list[str] = Field(default_factory=list)

    @field_validator("external_id")
    @classmethod
    def external_id_not_blank(cls, v: str) -> str:
        """Reject blank external IDs."""
        if not v or not v.strip():
            raise ValueError("external_id must not be blank")
        return v

    def tag_values(self) -> list[str]:
        """Get the tags flattened to a list of strings."""
        return flatten_tags(self.tags)

    def to_feature(self) -> dict[str, Any]:
        """Convert to a GeoJSON Feature dictionary."""
        properties: dict[str, Any] = dict(self.raw_properties)
        properties["title"] = self.title or ""
        if self.description:
            properties["description"] = self.description
        if self.artists:
            properties["artists"] = list(self.artists)
        properties["tags"] = dict(self.tags) if isinstance(self.tags, dict) else list(self.tags)
        if self.photos:
            properties["photos"] = list(self.photos)
        properties["source"] = self.source
        properties["source_url"] = self.source_url

        return {
            "type": "Feature",
            "id": self.external_id,
            "geometry": {
                "type": "Point",
                "coordinates": [self.coordinates.lon, self.coordinates.lat],
            },
            "properties": properties,
        }

    @classmethod
    def from_feature(cls, feature: dict[str, Any], source: str = "") -> CandidateRecord:
        """
        Create from a GeoJSON Feature dictionary.

        Args:
            feature: Feature with Point geometry ([lon, lat])
            source: Fallback source name when the feature has none

        Returns:
            CandidateRecord

        Raises:
            ValueError: If the feature has no id or no point coordinates
        """
        properties = dict(feature.get("properties") or {})
        external_id = feature.get("id") or properties.get("id")
        if external_id is None:
            raise ValueError("Feature has no id")

        geometry = feature.get("geometry") or {}
        coords = geometry.get("coordinates")
        if not isinstance(coords, (list, tuple)) or len(coords) < 2:
            raise ValueError(f"Feature {external_id} has no point coordinates")

        artists = properties.get("artists")
        if not artists and properties.get("artist"):
            artists = [a.strip() for a in str(properties["artist"]).split(",") if a.strip()]

        return cls(
            external_id=str(external_id),
            coordinates=Coordinates(lat=float(coords[1]), lon=float(coords[0])),
            title=properties.get("title"),
            tags=properties.get("tags") or {},
            raw_properties={k: v for k, v in properties.items() if k not in _FEATURE_KEYS},
            source=properties.get("source") or source,
            source_url=properties.get("source_url") or "",
            description=properties.get("description"),
            artists=list(artists or []),
            photos=list(properties.get("photos") or []),
        )


class ArtistRecord(BaseModel):
    """An artist discovered while scraping or importing."""

    id: str
    name: str
    biography: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the on-disk artist schema."""
        data: dict[str, Any] = {"type": "Artist", "id": self.id, "name": self.name}
        if self.biography:
            data["biography"] = self.biography
        data["properties"] = dict(self.properties)
        return data


class CatalogEntry(BaseModel):
    """An existing catalog artwork that incoming candidates are compared against."""

    model_config = ConfigDict(frozen=True)

    id: str
    coordinates: Coordinates
    title: str | None = None
    tags: Tags | str | None = None

    @classmethod
    def from_candidate(cls, record: CandidateRecord) -> CatalogEntry:
        """Create a catalog entry mirroring a freshly created candidate."""
        return cls(
            id=record.external_id,
            coordinates=record.coordinates,
            title=record.title,
            tags=record.tags,
        )
