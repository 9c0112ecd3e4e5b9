from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

"""Process (saved mapping) domain models.

A Process is the reusable, company-scoped recipe that turns configured source
rows into output rows: the column mapping, the Additional Details composition,
output options and the remembered row settings.

Serialization uses camelCase keys so exported JSON stays compatible with
existing process backups (``companyName``, ``outputOptions`` ...).
Optional settings are explicit ``None`` fields rather than missing keys.
"""

__all__ = [
    "AdditionalDetailsConfig",
    "OutputOptions",
    "DataConfig",
    "Process",
    "ImportAction",
    "ImportDecision",
    "ImportCollision",
    "ImportResult",
]


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _opt_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip().replace(",", "")
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _opt_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class AdditionalDetailsConfig:
    """Composition recipe for the derived Additional Details column.

    Parts are joined in a fixed order: fixed_prefix, entity, company name,
    entity_column value, reference_column value, fixed_suffix.
    """
    include_company: bool = False
    include_entity: bool = False
    reference_column: str | None = None
    entity_column: str | None = None
    fixed_prefix: str = ""
    fixed_suffix: str = ""
    separator: str = "/"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> AdditionalDetailsConfig:
        data = data or {}
        return cls(
            include_company=bool(data.get("includeCompany", False)),
            include_entity=bool(data.get("includeEntity", False)),
            reference_column=_opt_str(data.get("referenceColumn")),
            entity_column=_opt_str(data.get("entityColumn")),
            fixed_prefix=str(data.get("fixedPrefix") or ""),
            fixed_suffix=str(data.get("fixedSuffix") or ""),
            separator=str(data.get("separator") or "/"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "includeCompany": self.include_company,
            "includeEntity": self.include_entity,
            "referenceColumn": self.reference_column or "",
            "entityColumn": self.entity_column or "",
            "fixedPrefix": self.fixed_prefix,
            "fixedSuffix": self.fixed_suffix,
            "separator": self.separator,
        }


@dataclass(frozen=True)
class OutputOptions:
    round_loc_amount: bool = False
    fallback_email: str = ""
    secondary_email_column: str | None = None
    email_keywords_to_replace: tuple[str, ...] = ()
    loc_minimum: float | None = None
    loc_maximum: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> OutputOptions:
        data = data or {}
        keywords = data.get("emailKeywordsToReplace") or []
        if isinstance(keywords, str):
            keywords = [keywords]
        return cls(
            round_loc_amount=bool(data.get("roundLOCAmount", False)),
            fallback_email=str(data.get("fallbackEmail") or "").strip(),
            secondary_email_column=_opt_str(data.get("secondaryEmailColumn")),
            email_keywords_to_replace=tuple(str(k).strip() for k in keywords if str(k).strip()),
            loc_minimum=_opt_float(data.get("locMinimum")),
            loc_maximum=_opt_float(data.get("locMaximum")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "roundLOCAmount": self.round_loc_amount,
            "fallbackEmail": self.fallback_email,
            "secondaryEmailColumn": self.secondary_email_column or "",
            "emailKeywordsToReplace": list(self.email_keywords_to_replace),
            "locMinimum": "" if self.loc_minimum is None else self.loc_minimum,
            "locMaximum": "" if self.loc_maximum is None else self.loc_maximum,
        }


@dataclass(frozen=True)
class DataConfig:
    """Row settings remembered per process and offered again on the next file.

    header_row is always start_row - 1; it is stored for reference only.
    """
    start_row: int = 2
    end_row: int | None = None
    header_row: int | None = None
    company_source: str = "filename"  # filename | cell
    company_row: int = 1
    company_col: int = 1
    date_column: str | None = None
    date_from: str | None = None
    date_to: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DataConfig | None:
        if not data:
            return None
        start_row = _opt_int(data.get("startRow")) or 2
        return cls(
            start_row=start_row,
            end_row=_opt_int(data.get("endRow")),
            header_row=start_row - 1,
            company_source=str(data.get("companySource") or "filename"),
            company_row=_opt_int(data.get("companyRow")) or 1,
            company_col=_opt_int(data.get("companyCol")) or 1,
            date_column=_opt_str(data.get("dateColumn")),
            date_from=_opt_str(data.get("dateFrom")),
            date_to=_opt_str(data.get("dateTo")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "headerRow": self.start_row - 1,
            "startRow": self.start_row,
            "endRow": self.end_row,
            "companySource": self.company_source,
            "companyRow": self.company_row,
            "companyCol": self.company_col,
            "dateColumn": self.date_column or "",
            "dateFrom": self.date_from or "",
            "dateTo": self.date_to or "",
        }


@dataclass(frozen=True)
class Process:
    """Saved mapping record (identity = store-assigned id)."""
    company_name: str
    fields: dict[str, str] = field(default_factory=dict)  # output column -> source column
    id: str | None = None
    display_name: str = ""
    entity: str = ""
    additional_details: AdditionalDetailsConfig = field(default_factory=AdditionalDetailsConfig)
    output_options: OutputOptions = field(default_factory=OutputOptions)
    benefit_provider: str | None = None
    linked_companies: tuple[str, ...] = ()
    data_config: DataConfig | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def label(self) -> str:
        return self.display_name or self.company_name

    def source_column(self, output_key: str) -> str | None:
        return self.fields.get(output_key) or None

    def with_id(self, process_id: str | None) -> Process:
        return replace(self, id=process_id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Process:
        raw_fields = data.get("fields") or {}
        # 空文字のマッピングは「未設定」として扱う
        mapped = {str(k): str(v).strip() for k, v in raw_fields.items() if v and str(v).strip()}
        linked = data.get("linkedCompanies") or []
        return cls(
            id=_opt_str(data.get("id")),
            company_name=str(data.get("companyName") or "").strip(),
            display_name=str(data.get("displayName") or "").strip(),
            entity=str(data.get("entity") or "").strip(),
            fields=mapped,
            additional_details=AdditionalDetailsConfig.from_dict(data.get("additionalDetails")),
            output_options=OutputOptions.from_dict(data.get("outputOptions")),
            benefit_provider=_opt_str(data.get("benefitProvider")),
            linked_companies=tuple(str(c) for c in linked if str(c).strip()),
            data_config=DataConfig.from_dict(data.get("dataConfig")),
            created_at=_opt_str(data.get("createdAt")),
            updated_at=_opt_str(data.get("updatedAt")),
        )

    def to_dict(self, include_id: bool = True) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if include_id and self.id is not None:
            out["id"] = self.id
        out.update(
            {
                "companyName": self.company_name,
                "displayName": self.display_name,
                "entity": self.entity,
                "fields": dict(self.fields),
                "additionalDetails": self.additional_details.to_dict(),
                "outputOptions": self.output_options.to_dict(),
                "benefitProvider": self.benefit_provider,
                "linkedCompanies": list(self.linked_companies),
                "dataConfig": self.data_config.to_dict() if self.data_config else None,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            }
        )
        return out


class ImportAction(Enum):
    """Operator decision for an imported process that collides with a saved one."""
    OVERWRITE = "overwrite"
    RENAME = "rename"
    SKIP = "skip"


@dataclass(frozen=True)
class ImportDecision:
    action: ImportAction
    apply_to_all: bool = False  # reuse this action for every remaining collision


@dataclass(frozen=True)
class ImportCollision:
    incoming: Process
    existing: Process


@dataclass(frozen=True)
class ImportResult:
    imported: int = 0
    overwritten: int = 0
    skipped: int = 0
