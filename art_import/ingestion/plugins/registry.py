"""
Plugin Registry Module
======================

Registers importer and exporter plugins by name. Every plugin is validated
structurally at registration time; invalid plugins are kept (so their
problems can be inspected) but are never handed out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from art_import.core.enums import OutputType, PluginKind, Severity, ValidationCode
from art_import.core.errors import ValidationIssue
from art_import.ingestion.plugins.base import (
    ExporterPlugin,
    ImporterPlugin,
    ValidationResult,
)
from art_import.ingestion.plugins.exporters import ConsoleExporter, JsonExporter
from art_import.ingestion.plugins.importers import GeoJsonImporter, JsonRecordsImporter

logger = logging.getLogger(__name__)

PluginValidationResult = ValidationResult

P = TypeVar("P")

_IMPORTER_METHODS = ("map_data", "validate_data", "generate_import_id")
_EXPORTER_METHODS = ("export", "configure", "validate")


@dataclass
class PluginRegistryEntry(Generic[P]):
    """A registered plugin with its validation outcome."""

    name: str
    plugin: P
    is_valid: bool
    validation_errors: list[ValidationIssue] = field(default_factory=list)
    validation_warnings: list[ValidationIssue] = field(default_factory=list)
    config_path: str | None = None


@dataclass
class NameValidation:
    """Outcome of checking a user-supplied plugin name."""

    valid: bool
    message: str | None = None
    suggestions: list[str] = field(default_factory=list)


def _error(field_name: str, message: str, code: ValidationCode) -> ValidationIssue:
    return ValidationIssue(field=field_name, message=message, severity=Severity.ERROR, code=code)


def _check_identity(plugin: Any, errors: list[ValidationIssue]) -> None:
    name = getattr(plugin, "name", None)
    if not isinstance(name, str) or not name:
        errors.append(
            _error("name", "Plugin name is required and must be a string", ValidationCode.MISSING_NAME)
        )

    description = getattr(plugin, "description", None)
    if not isinstance(description, str) or not description:
        errors.append(
            _error(
                "description",
                "Plugin description is required and must be a string",
                ValidationCode.MISSING_DESCRIPTION,
            )
        )


def _check_methods(plugin: Any, methods: tuple[str, ...], errors: list[ValidationIssue]) -> None:
    for method in methods:
        if not callable(getattr(plugin, method, None)):
            errors.append(
                _error(method, f"{method} method is required", ValidationCode.MISSING_METHOD)
            )


def _check_list(plugin: Any, attr: str, errors: list[ValidationIssue]) -> None:
    if not isinstance(getattr(plugin, attr, None), list):
        errors.append(_error(attr, f"{attr} must be a list", ValidationCode.INVALID_TYPE))


def _plugin_name(plugin: Any) -> str:
    name = getattr(plugin, "name", None)
    return name if isinstance(name, str) and name else f"<unnamed {plugin.__class__.__name__}>"


class PluginRegistry:
    """
    Name-indexed registry of importer and exporter plugins.

    Plugins are validated by shape, so any object exposing the right
    attributes and methods can be registered; subclassing ``ImporterPlugin``
    or ``ExporterPlugin`` is a convenience, not a requirement.
    """

    def __init__(self) -> None:
        self._importers: dict[str, PluginRegistryEntry[ImporterPlugin]] = {}
        self._exporters: dict[str, PluginRegistryEntry[ExporterPlugin]] = {}

    # Importer management

    def register_importer(self, plugin: ImporterPlugin, config_path: str | None = None) -> None:
        """
        Validate and register an importer. Re-registering a name replaces it.

        Args:
            plugin: Importer to register
            config_path: Optional path to the importer's configuration file
        """
        validation = self.validate_importer(plugin)
        name = _plugin_name(plugin)
        self._importers[name] = PluginRegistryEntry(
            name=name,
            plugin=plugin,
            is_valid=validation.is_valid,
            validation_errors=validation.errors,
            validation_warnings=validation.warnings,
            config_path=config_path,
        )
        self._log_registration(PluginKind.IMPORTER, name, validation)

    def get_importer(self, name: str) -> ImporterPlugin | None:
        entry = self._importers.get(name)
        return entry.plugin if entry is not None and entry.is_valid else None

    def has_importer(self, name: str) -> bool:
        entry = self._importers.get(name)
        return entry is not None and entry.is_valid

    def list_importers(self) -> list[str]:
        """Names of valid importers, in registration order."""
        return [name for name, entry in self._importers.items() if entry.is_valid]

    def get_importer_entry(self, name: str) -> PluginRegistryEntry[ImporterPlugin] | None:
        """Registry entry for an importer, valid or not."""
        return self._importers.get(name)

    def get_all_importers(self) -> list[ImporterPlugin]:
        return [entry.plugin for entry in self._importers.values() if entry.is_valid]

    def importer_entries(self) -> list[PluginRegistryEntry[ImporterPlugin]]:
        """Every importer entry, including invalid ones."""
        return list(self._importers.values())

    # Exporter management

    def register_exporter(self, plugin: ExporterPlugin) -> None:
        """Validate and register an exporter. Re-registering a name replaces it."""
        validation = self.validate_exporter(plugin)
        name = _plugin_name(plugin)
        self._exporters[name] = PluginRegistryEntry(
            name=name,
            plugin=plugin,
            is_valid=validation.is_valid,
            validation_errors=validation.errors,
            validation_warnings=validation.warnings,
        )
        self._log_registration(PluginKind.EXPORTER, name, validation)

    def get_exporter(self, name: str) -> ExporterPlugin | None:
        entry = self._exporters.get(name)
        return entry.plugin if entry is not None and entry.is_valid else None

    def has_exporter(self, name: str) -> bool:
        entry = self._exporters.get(name)
        return entry is not None and entry.is_valid

    def list_exporters(self) -> list[str]:
        """Names of valid exporters, in registration order."""
        return [name for name, entry in self._exporters.items() if entry.is_valid]

    def get_exporter_entry(self, name: str) -> PluginRegistryEntry[ExporterPlugin] | None:
        """Registry entry for an exporter, valid or not."""
        return self._exporters.get(name)

    def get_all_exporters(self) -> list[ExporterPlugin]:
        return [entry.plugin for entry in self._exporters.values() if entry.is_valid]

    def exporter_entries(self) -> list[PluginRegistryEntry[ExporterPlugin]]:
        """Every exporter entry, including invalid ones."""
        return list(self._exporters.values())

    # Validation

    def validate_importer(self, plugin: Any) -> PluginValidationResult:
        """
        Structurally validate an importer.

        Checks, in order: name and description, the three capability
        methods, and that supported_formats and required_fields are lists.
        A missing ``metadata`` is a warning.
        """
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        _check_identity(plugin, errors)
        _check_methods(plugin, _IMPORTER_METHODS, errors)
        _check_list(plugin, "supported_formats", errors)
        _check_list(plugin, "required_fields", errors)

        if getattr(plugin, "metadata", None) is None:
            warnings.append(
                ValidationIssue(
                    field="metadata",
                    message="Plugin metadata is recommended for better documentation",
                    severity=Severity.WARNING,
                    code=ValidationCode.MISSING_METADATA,
                )
            )

        return ValidationResult.from_issues(errors, warnings)

    def validate_exporter(self, plugin: Any) -> PluginValidationResult:
        """
        Structurally validate an exporter.

        Checks, in order: name and description, the three capability
        methods, the output type, that requires_network is a bool and that
        supported_formats is a list.
        """
        errors: list[ValidationIssue] = []

        _check_identity(plugin, errors)
        _check_methods(plugin, _EXPORTER_METHODS, errors)

        try:
            OutputType(getattr(plugin, "output_type", None))
        except ValueError:
            allowed = ", ".join(t.value for t in OutputType)
            errors.append(
                _error(
                    "output_type",
                    f"output_type must be one of: {allowed}",
                    ValidationCode.INVALID_OUTPUT_TYPE,
                )
            )

        if not isinstance(getattr(plugin, "requires_network", None), bool):
            errors.append(
                _error("requires_network", "requires_network must be a boolean", ValidationCode.INVALID_TYPE)
            )

        _check_list(plugin, "supported_formats", errors)

        return ValidationResult.from_issues(errors)

    def _log_registration(self, kind: PluginKind, name: str, validation: ValidationResult) -> None:
        if validation.is_valid:
            logger.debug(f"Registered {kind.value}: {name}")
        else:
            logger.warning(
                f"Registered invalid {kind.value} {name}: {'; '.join(validation.messages())}"
            )

    # Helpers

    def get_importer_help_message(self) -> str:
        available = self.list_importers()
        if not available:
            return "No importers are currently available."
        return f"Available importers: {', '.join(available)}. Use 'all' to run all importers sequentially."

    def get_exporter_help_message(self) -> str:
        available = self.list_exporters()
        if not available:
            return "No exporters are currently available."
        return f"Available exporters: {', '.join(available)}."

    def validate_plugin_name(self, name: str, kind: PluginKind | str) -> NameValidation:
        """
        Check a user-supplied plugin name and suggest alternatives.

        ``"all"`` is a valid importer name. Suggestions are registered names
        that contain, or are contained in, the given name; with none of
        those, every available name is suggested.
        """
        kind = PluginKind(kind)
        if kind == PluginKind.IMPORTER:
            if name == "all" or self.has_importer(name):
                return NameValidation(valid=True)
            available = self.list_importers()
            help_message = self.get_importer_help_message()
        else:
            if self.has_exporter(name):
                return NameValidation(valid=True)
            available = self.list_exporters()
            help_message = self.get_exporter_help_message()

        suggestions = [p for p in available if name in p or p in name]
        return NameValidation(
            valid=False,
            message=f'Unknown {kind.value}: "{name}". {help_message}',
            suggestions=suggestions or available,
        )

    def get_stats(self) -> dict[str, dict[str, int]]:
        """Total, valid and invalid counts per plugin kind."""
        stats = {}
        for kind, entries in (("importers", self._importers), ("exporters", self._exporters)):
            valid = sum(1 for entry in entries.values() if entry.is_valid)
            stats[kind] = {"total": len(entries), "valid": valid, "invalid": len(entries) - valid}
        return stats


def create_default_registry() -> PluginRegistry:
    """
    Create a registry holding the built-in plugins.

    Importers: ``geojson``, ``json-records``. Exporters: ``json``, ``console``.
    """
    registry = PluginRegistry()
    registry.register_importer(GeoJsonImporter())
    registry.register_importer(JsonRecordsImporter())
    registry.register_exporter(JsonExporter())
    registry.register_exporter(ConsoleExporter())
    return registry
