from __future__ import annotations

from dataclasses import dataclass

"""Fixed output schema for applicant batch files.

Every formatted row carries exactly these 13 columns, in this order. The
``Additional Details`` column is derived (see services.mapping) and is never
mapped directly from a source column.
"""

__all__ = [
    "OutputColumn",
    "OUTPUT_COLUMNS",
    "OUTPUT_KEYS",
    "MAPPABLE_COLUMNS",
    "REQUIRED_FIELDS",
    "ADDITIONAL_DETAILS",
    "LOC_AMOUNT",
    "EMAIL",
    "OutputRow",
]

# Output row: column key -> normalized string value (always all 13 keys)
OutputRow = dict[str, str]

ADDITIONAL_DETAILS = "Additional Details"
LOC_AMOUNT = "LOC Amount"
EMAIL = "Email"


@dataclass(frozen=True)
class OutputColumn:
    key: str
    required: bool = False
    default: str | None = None  # used only when the column is not mapped


OUTPUT_COLUMNS: tuple[OutputColumn, ...] = (
    OutputColumn("Firstname", required=True),
    OutputColumn("Surname", required=True),
    OutputColumn("Street1"),
    OutputColumn("Street2"),
    OutputColumn("City"),
    OutputColumn("County"),
    OutputColumn("Postcode"),
    OutputColumn("Country", default="UK"),
    OutputColumn(LOC_AMOUNT, required=True),
    OutputColumn(EMAIL, required=True),
    OutputColumn("Pay Frequency", default="Monthly"),
    OutputColumn(ADDITIONAL_DETAILS),
    OutputColumn("Date of Approval", default=""),
)

OUTPUT_KEYS: tuple[str, ...] = tuple(c.key for c in OUTPUT_COLUMNS)

MAPPABLE_COLUMNS: tuple[str, ...] = tuple(k for k in OUTPUT_KEYS if k != ADDITIONAL_DETAILS)

REQUIRED_FIELDS: tuple[str, ...] = tuple(c.key for c in OUTPUT_COLUMNS if c.required)
