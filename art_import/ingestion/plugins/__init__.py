"""
Importer and exporter plugins.

Plugins are registered with a ``PluginRegistry`` built at startup; use
``create_default_registry()`` for one holding the built-in plugins.
"""

from art_import.ingestion.plugins.base import (
    ExporterPlugin,
    ExportRecordResult,
    ExportResult,
    ImporterPlugin,
    PluginMetadata,
    ValidationResult,
)
from art_import.ingestion.plugins.exporters import ConsoleExporter, JsonExporter
from art_import.ingestion.plugins.importers import GeoJsonImporter, JsonRecordsImporter
from art_import.ingestion.plugins.registry import (
    NameValidation,
    PluginRegistry,
    PluginRegistryEntry,
    PluginValidationResult,
    create_default_registry,
)

__all__ = [
    "ConsoleExporter",
    "ExportRecordResult",
    "ExportResult",
    "ExporterPlugin",
    "GeoJsonImporter",
    "ImporterPlugin",
    "JsonExporter",
    "JsonRecordsImporter",
    "NameValidation",
    "PluginMetadata",
    "PluginRegistry",
    "PluginRegistryEntry",
    "PluginValidationResult",
    "ValidationResult",
    "create_default_registry",
]
