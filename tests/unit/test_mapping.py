from __future__ import annotations

import pytest

from batch_formatter.models.columns import OUTPUT_KEYS, REQUIRED_FIELDS
from batch_formatter.models.process import AdditionalDetailsConfig, OutputOptions, Process
from batch_formatter.services.mapping import (
    apply_mapping,
    clean_loc_amount,
    error_row_numbers,
    format_additional_details,
    is_keyword_flagged,
    is_valid_email,
    resolve_email,
    sanitize_string,
    suggest_mappings,
    summarize_validation,
    validate_rows,
)

FIELDS = {
    "Firstname": "First",
    "Surname": "Last",
    "LOC Amount": "Amount",
    "Email": "Email",
}


def _process(**options) -> Process:
    return Process(company_name="Acme", fields=dict(FIELDS), output_options=OutputOptions(**options))


def _row(first="Alice", last="Smith", amount="100", email="alice@example.com", **extra) -> dict[str, str]:
    row = {"First": first, "Last": last, "Amount": amount, "Email": email}
    row.update(extra)
    return row


@pytest.mark.parametrize(
    "value,round_up,expected",
    [
        ("£1,234.567", False, "1234.57"),
        ("149.01", True, "150"),
        ("150", True, "150"),
        ("abc", False, ""),
        ("", False, ""),
        (None, False, ""),
        ("GBP 99", False, "99.00"),
        ("12.5.1", False, "12.50"),
        ("9" * 400, False, ""),
        ("9" * 400, True, ""),
    ],
)
def test_clean_loc_amount(value, round_up, expected):
    assert clean_loc_amount(value, round_up=round_up) == expected


def test_sanitize_string():
    assert sanitize_string('  O\'Brien, "Jr"  `x`  ') == "OBrien Jr x"
    assert sanitize_string(None) == ""
    assert sanitize_string("a\t\n b") == "a b"


def test_email_helpers():
    assert is_valid_email("a@b.co")
    assert not is_valid_email("a@b")
    assert not is_valid_email("")
    assert is_keyword_flagged("noemail@corp.com", ["NOEMAIL"])
    assert not is_keyword_flagged("alice@corp.com", ["noemail", ""])


def test_email_primary_wins():
    opts = OutputOptions(fallback_email="hr@acme.com", secondary_email_column="Personal")
    assert resolve_email(_row(Personal="alice@home.com"), FIELDS, opts) == "alice@example.com"


def test_email_invalid_primary_uses_secondary():
    opts = OutputOptions(fallback_email="hr@acme.com", secondary_email_column="Personal")
    assert resolve_email(_row(email="not-an-email", Personal="alice@home.com"), FIELDS, opts) == "alice@home.com"


def test_email_flagged_primary_and_no_secondary_uses_fallback():
    opts = OutputOptions(fallback_email="hr@acme.com", email_keywords_to_replace=("noemail",))
    assert resolve_email(_row(email="noemail@acme.com"), FIELDS, opts) == "hr@acme.com"


def test_email_unresolved_without_fallback_is_empty():
    assert resolve_email(_row(email=""), FIELDS, OutputOptions()) == ""


def test_email_flagged_primary_without_secondary_or_fallback_is_empty():
    opts = OutputOptions(email_keywords_to_replace=("none",))
    assert resolve_email(_row(email="none@x.com"), FIELDS, opts) == ""


def test_email_empty_primary_uses_secondary():
    opts = OutputOptions(secondary_email_column="Personal")
    assert resolve_email(_row(email="", Personal="a@b.com"), FIELDS, opts) == "a@b.com"


def test_additional_details_order_and_separator():
    cfg = AdditionalDetailsConfig(
        include_company=True,
        include_entity=True,
        reference_column="Ref",
        entity_column="Site",
        fixed_prefix="C2W",
        fixed_suffix="END",
    )
    row = {"Ref": "R1", "Site": "Leeds"}
    assert format_additional_details(row, cfg, "Acme Corp", "ACM") == "C2W/ACM/acme corp/Leeds/R1/END"
    # 空の要素は詰める
    assert format_additional_details({"Ref": ""}, cfg, "", "") == "C2W/END"


def test_apply_mapping_output_shape_and_defaults():
    result = apply_mapping([_row()], _process())
    assert len(result.data) == 1
    out = result.data[0]
    assert tuple(out.keys()) == OUTPUT_KEYS
    assert out["Country"] == "UK"
    assert out["Pay Frequency"] == "Monthly"
    assert out["Date of Approval"] == ""
    assert out["Street1"] == ""
    assert out["LOC Amount"] == "100.00"
    assert result.is_valid


def test_mapped_column_missing_from_row_takes_default():
    proc = Process(company_name="Acme", fields={**FIELDS, "Country": "Nation"})
    assert apply_mapping([_row()], proc).data[0]["Country"] == "UK"
    assert apply_mapping([_row(Nation="Ireland")], proc).data[0]["Country"] == "Ireland"


def test_range_filter_inclusive_bounds():
    rows = [_row(amount="99.99"), _row(amount="100"), _row(amount="500"), _row(amount="500.01"), _row(amount="")]
    result = apply_mapping(rows, _process(loc_minimum=100.0, loc_maximum=500.0))
    assert result.filtered == 2
    assert [r["LOC Amount"] for r in result.data] == ["100.00", "500.00", ""]
    # 空の LOC は除外されず検証エラーになる
    assert error_row_numbers(result.validation) == [3]
    assert result.validation[0].columns == ["LOC Amount"]


def test_range_filter_uses_rounded_value():
    result = apply_mapping([_row(amount="499.50")], _process(round_loc_amount=True, loc_maximum=499.9))
    assert result.filtered == 1


def test_row_count_invariant_and_required_fields():
    rows = [_row(), _row(first="", email="bad"), _row(amount="5"), _row(last="")]
    result = apply_mapping(rows, _process(loc_minimum=10.0))
    assert len(result.data) + result.filtered == len(rows)
    flagged = {v.row for v in result.validation}
    for i, out in enumerate(result.data, start=1):
        missing = [k for k in REQUIRED_FIELDS if not out[k]]
        assert bool(missing) == (i in flagged)
    summary = summarize_validation(result.validation)
    assert summary["total_rows_with_errors"] == 2
    assert summary["by_column"] == {"Firstname": 1, "Email": 1, "Surname": 1}
    assert summary["by_type"] == {"missing": 3}


def test_apply_mapping_is_deterministic():
    rows = [_row(), _row(first="Bob", amount="£2,000")]
    proc = _process(round_loc_amount=True)
    assert apply_mapping(rows, proc) == apply_mapping(rows, proc)


def test_company_and_entity_override_in_additional_details():
    proc = Process(
        company_name="Acme",
        entity="ACM",
        fields=dict(FIELDS),
        additional_details=AdditionalDetailsConfig(include_company=True, include_entity=True),
    )
    assert apply_mapping([_row()], proc).data[0]["Additional Details"] == "ACM/acme"
    out = apply_mapping([_row()], proc, company_name="Globex", entity="GLX").data[0]
    assert out["Additional Details"] == "GLX/globex"


def test_validate_rows_numbers_are_one_based():
    rows = [dict.fromkeys(OUTPUT_KEYS, "x"), dict.fromkeys(OUTPUT_KEYS, "")]
    validation = validate_rows(rows)
    assert [v.row for v in validation] == [2]
    assert len(validation[0].errors) == len(REQUIRED_FIELDS)


def test_overflowing_loc_is_treated_as_missing():
    rows = [_row(amount="9" * 400), _row(amount="120")]
    result = apply_mapping(rows, _process(round_loc_amount=True, loc_maximum=1000.0))
    assert [r["LOC Amount"] for r in result.data] == ["", "120"]
    assert result.filtered == 0
    assert error_row_numbers(result.validation) == [1]


def test_suggest_mappings_common_headers():
    columns = ["Employee No", "Forename", "Family Name", "Address Line 1", "Town", "Post Code", "Voucher Amount", "E-mail"]
    assert suggest_mappings(columns) == {
        "Firstname": "Forename",
        "Surname": "Family Name",
        "Street1": "Address Line 1",
        "City": "Town",
        "Postcode": "Post Code",
        "LOC Amount": "Voucher Amount",
        "Email": "E-mail",
    }


def test_suggest_mappings_variation_order_wins_over_column_order():
    # "loc amount" は "amount" より優先
    assert suggest_mappings(["Total Amount", "LOC Amount"])["LOC Amount"] == "LOC Amount"


def test_suggest_mappings_ignores_blank_headers_and_unmatched_targets():
    assert suggest_mappings(["", "  ", "Reference"]) == {}
