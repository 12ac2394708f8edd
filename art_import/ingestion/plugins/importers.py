"""
Built-in Importers
==================

- ``geojson``: FeatureCollections in the candidate on-disk schema, such as
  scraper output
- ``json-records``: flat arrays of JSON objects (open-data exports)
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any

from art_import.core.enums import Severity
from art_import.core.errors import ValidationIssue
from art_import.core.schema import CandidateRecord
from art_import.ingestion.fields import FieldMap, dig
from art_import.ingestion.plugins.base import ImporterPlugin, PluginMetadata, ValidationResult

logger = logging.getLogger(__name__)


def _hash_id(prefix: str, *parts: Any) -> str:
    digest = hashlib.sha1("|".join(str(p) for p in parts).encode("utf-8")).hexdigest()
    return f"{prefix}-{digest[:12]}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class GeoJsonImporter(ImporterPlugin):
    """Imports GeoJSON Point features (``[lon, lat]`` coordinates)."""

    name = "geojson"
    description = "Import artworks from a GeoJSON FeatureCollection of Point features"

    def __init__(self) -> None:
        self.supported_formats = ["geojson", "json"]
        self.required_fields = ["geometry.coordinates", "properties.title"]
        self.optional_fields = [
            "id", "properties.description", "properties.artists", "properties.artist",
            "properties.tags", "properties.photos", "properties.source_url",
        ]
        self.metadata = PluginMetadata(
            name=self.name,
            description=self.description,
            supported_formats=self.supported_formats,
            required_fields=self.required_fields,
            optional_fields=self.optional_fields,
        )

    @staticmethod
    def features(source_data: Any) -> list[Any]:
        """The feature list of a FeatureCollection, or a bare list as-is."""
        if isinstance(source_data, dict):
            features = source_data.get("features")
            return features if isinstance(features, list) else []
        if isinstance(source_data, list):
            return source_data
        return []

    def validate_data(self, source_data: Any) -> ValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        if isinstance(source_data, dict):
            if source_data.get("type") != "FeatureCollection":
                errors.append(ValidationIssue("type", "Expected a GeoJSON FeatureCollection"))
            if not isinstance(source_data.get("features"), list):
                errors.append(ValidationIssue("features", "features must be a list"))
                return ValidationResult.from_issues(errors)
        elif not isinstance(source_data, list):
            errors.append(ValidationIssue("data", "Expected a FeatureCollection or a list of features"))
            return ValidationResult.from_issues(errors)

        for i, feature in enumerate(self.features(source_data)):
            prefix = f"features[{i}]"
            if not isinstance(feature, dict):
                errors.append(ValidationIssue(prefix, "Feature must be an object"))
                continue

            geometry = feature.get("geometry") or {}
            coords = geometry.get("coordinates") if isinstance(geometry, dict) else None
            if not isinstance(coords, list) or len(coords) < 2 or not all(_is_number(c) for c in coords[:2]):
                errors.append(
                    ValidationIssue(f"{prefix}.geometry.coordinates", "Point coordinates [lon, lat] are required")
                )
            elif not (-180 <= coords[0] <= 180 and -90 <= coords[1] <= 90):
                errors.append(
                    ValidationIssue(
                        f"{prefix}.geometry.coordinates",
                        f"Coordinates out of range: {coords[:2]}",
                    )
                )

            title = (feature.get("properties") or {}).get("title")
            if not isinstance(title, str) or not title.strip():
                warnings.append(
                    ValidationIssue(f"{prefix}.properties.title", "Feature has no title", Severity.WARNING)
                )

        return ValidationResult.from_issues(errors, warnings)

    def map_data(self, source_data: Any, config: dict[str, Any] | None = None) -> list[CandidateRecord]:
        """
        Map features to candidates.

        Args:
            source_data: FeatureCollection or list of features
            config: ``source`` overrides the source name of features without one

        Returns:
            Candidates in feature order
        """
        return [self.map_record(feature, config) for feature in self.features(source_data)]

    def raw_records(self, source_data: Any) -> list[Any]:
        return self.features(source_data)

    def map_record(self, record: Any, config: dict[str, Any] | None = None) -> CandidateRecord:
        config = config or {}
        source = str(config.get("source", self.name))
        return CandidateRecord.from_feature({**record, "id": self.generate_import_id(record)}, source=source)

    def generate_import_id(self, record: Any) -> str:
        """The feature id, or a hash of title and coordinates when it has none."""
        external_id = record.get("id") or (record.get("properties") or {}).get("id")
        if external_id is not None and str(external_id).strip():
            return str(external_id)
        coords = (record.get("geometry") or {}).get("coordinates")
        title = (record.get("properties") or {}).get("title")
        return _hash_id(self.name, title, coords)


class JsonRecordsImporter(ImporterPlugin):
    """
    Imports flat JSON objects through a field map.

    Config keys: ``fields`` (field map overrides, dotted paths allowed),
    ``source`` (source name) and ``id_prefix``.
    """

    name = "json-records"
    description = "Import artworks from a flat JSON array using a configurable field map"

    def __init__(self, fields: FieldMap | None = None, id_prefix: str = "") -> None:
        self.fields = fields or FieldMap()
        self.id_prefix = id_prefix
        self.supported_formats = ["json"]
        self.required_fields = [self.fields.title, self.fields.lat, self.fields.lon]
        self.optional_fields = [
            self.fields.id, self.fields.description, self.fields.artist,
            self.fields.tags, self.fields.url, self.fields.photos,
        ]
        self.metadata = PluginMetadata(
            name=self.name,
            description=self.description,
            supported_formats=self.supported_formats,
            required_fields=self.required_fields,
            optional_fields=self.optional_fields,
        )

    def validate_data(self, source_data: Any) -> ValidationResult:
        if not isinstance(source_data, list):
            return ValidationResult.from_issues([ValidationIssue("data", "Expected a JSON array of records")])

        errors: list[ValidationIssue] = []
        for i, item in enumerate(source_data):
            if not isinstance(item, dict):
                errors.append(ValidationIssue(f"[{i}]", "Record must be an object"))
                continue
            for path in (self.fields.lat, self.fields.lon):
                value = dig(item, path)
                if value is None:
                    errors.append(ValidationIssue(f"[{i}].{path}", f"{path} is required"))
                    continue
                try:
                    float(value)
                except (TypeError, ValueError):
                    errors.append(ValidationIssue(f"[{i}].{path}", f"{path} must be numeric, got {value!r}"))
        return ValidationResult.from_issues(errors)

    def map_data(self, source_data: Any, config: dict[str, Any] | None = None) -> list[CandidateRecord]:
        records = [self.map_record(item, config) for item in source_data]
        logger.debug(f"Mapped {len(records)} records")
        return records

    def raw_records(self, source_data: Any) -> list[Any]:
        return list(source_data) if isinstance(source_data, list) else []

    def map_record(self, record: Any, config: dict[str, Any] | None = None) -> CandidateRecord:
        config = config or {}
        fields = FieldMap.from_dict({**vars(self.fields), **(config.get("fields") or {})})
        source = str(config.get("source", self.name))
        prefix = str(config.get("id_prefix", self.id_prefix))
        return fields.to_candidate(record, self._record_id(fields, record, prefix), source=source)

    def generate_import_id(self, record: Any) -> str:
        return self._record_id(self.fields, record, self.id_prefix)

    def _record_id(self, fields: FieldMap, item: dict[str, Any], prefix: str) -> str:
        external_id = fields.external_id(item)
        if external_id is None:
            external_id = _hash_id(
                self.name, dig(item, fields.title), dig(item, fields.lat), dig(item, fields.lon)
            )
        return f"{prefix}{external_id}"
