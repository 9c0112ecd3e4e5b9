"""Domain models for the applicant batch formatter.

This package contains the dataclasses shared by ingest, services and db:
the fixed output schema, configured datasets, saved processes, validation
results, matcher results and run statistics.
"""

from .columns import MAPPABLE_COLUMNS, OUTPUT_COLUMNS, OUTPUT_KEYS, REQUIRED_FIELDS, OutputColumn
from .dataset import ConfiguredDataset, RawTable
from .process import (
    AdditionalDetailsConfig,
    DataConfig,
    ImportAction,
    ImportDecision,
    ImportResult,
    OutputOptions,
    Process,
)
from .validation import MappingResult, RowValidation, ValidationError

__all__ = [
    # Output schema
    "OutputColumn",
    "OUTPUT_COLUMNS",
    "OUTPUT_KEYS",
    "MAPPABLE_COLUMNS",
    "REQUIRED_FIELDS",
    # Tabular data
    "RawTable",
    "ConfiguredDataset",
    # Processes
    "Process",
    "AdditionalDetailsConfig",
    "OutputOptions",
    "DataConfig",
    "ImportAction",
    "ImportDecision",
    "ImportResult",
    # Mapping
    "MappingResult",
    "RowValidation",
    "ValidationError",
]
