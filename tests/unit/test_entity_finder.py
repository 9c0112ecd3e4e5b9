from __future__ import annotations

import pytest

from batch_formatter.models.matching import EmployeeToFind
from batch_formatter.services.entity_finder import (
    EntitySearchSession,
    auto_detect_columns,
    entities_csv,
    extract_employees_from_invoice,
    parse_loc_amount,
    parse_name_from_description,
    row_matches,
)

BATCH_1 = [
    ["First Name", "Surname", "LOC Amount", "Additional Details"],
    ["Alice", "Smith", "500", "ACM/acme"],
    ["Bob", "Jones", "£250.00", "GLX"],
]
BATCH_2 = [
    ["Forename", "Last Name", "Amount", "Entity"],
    ["Zed", "Quinn", "1.00", "ZQ"],
]


def test_auto_detect_columns():
    roles = auto_detect_columns(BATCH_1[0])
    assert roles.first_name == "First Name"
    assert roles.last_name == "Surname"
    assert roles.loc == "LOC Amount"
    assert roles.entity_columns == ["Additional Details"]
    assert roles.is_complete
    assert not auto_detect_columns(["Foo", "Bar"]).is_complete


@pytest.mark.parametrize("value,expected", [("£1,250.50", 1250.5), ("", 0.0), (None, 0.0), ("abc", 0.0), ("-5", -5.0)])
def test_parse_loc_amount(value, expected):
    assert parse_loc_amount(value) == expected


def test_parse_name_from_description():
    assert parse_name_from_description("Alice Smith - C2W voucher") == ("Alice", "Smith")
    assert parse_name_from_description("Smith") == ("Smith", "")
    assert parse_name_from_description("X 123") == ("", "")


def test_row_matches_rules():
    alice = EmployeeToFind("Alice", "Smith", 100.0)
    assert row_matches(alice, "ALICE", " smith ", 100.004)
    assert not row_matches(alice, "Alice", "Smith", 100.02)
    assert not row_matches(alice, "Alice", "Brown", 100.0)
    # 片方の名前のみ: 姓名どちらの列でも一致
    only_last = EmployeeToFind("", "Smith", 100.0)
    assert row_matches(only_last, "Smith", "", 100.0)
    assert row_matches(only_last, "", "Smith", 100.0)
    assert not row_matches(EmployeeToFind("", "", 100.0), "", "", 100.0)


def test_extract_employees_from_invoice():
    raw = [
        ["Invoice 123"],
        ["Description", "Qty", "Net Price"],
        ["Alice Smith - C2W voucher", "1", "£500.00"],
        ["Bob Jones", "1", "0"],
        ["Subtotal", "", "500"],
        ["Carol-White", "1", "250"],
    ]
    employees = extract_employees_from_invoice(raw)
    assert [(e.first_name, e.last_name, e.loc) for e in employees] == [("Alice", "Smith", 500.0), ("Carol", "White", 250.0)]
    assert [e.id for e in employees] == [0, 1]
    assert extract_employees_from_invoice([["Name", "Amount"]]) == []


def test_search_session_is_cumulative():
    session = EntitySearchSession()
    session.add_employee("alice", "SMITH", "500.00")
    session.add_employee("Bob", "", "250")
    session.add_employee("Zed", "Quinn", "1")
    session.add_batch_file("batch1.xlsx", BATCH_1)

    found = session.search()
    assert {(f.employee.first_name, f.entity, f.batch_file) for f in found} == {
        ("alice", "ACM/acme", "batch1.xlsx"),
        ("Bob", "GLX", "batch1.xlsx"),
    }
    assert [e.full_name for e in session.missing] == ["Zed Quinn"]

    # 検索済みファイルは再検索しない
    assert session.search() == []
    assert len(session.found) == 2

    session.add_batch_file("batch2.csv", BATCH_2)
    newly = session.search()
    assert [f.employee.first_name for f in newly] == ["Zed"]
    assert newly[0].entity == "ZQ"
    assert session.missing == []


def test_search_selected_employees_only():
    session = EntitySearchSession()
    alice = session.add_employee("Alice", "Smith", 500.0)
    session.add_employee("Bob", "Jones", 250.0)
    session.add_batch_file("batch1.xlsx", BATCH_1)
    found = session.search(selected=[alice.id])
    assert [f.employee.id for f in found] == [alice.id]


def test_reset_batch_files_allows_research():
    session = EntitySearchSession()
    session.add_batch_file("batch1.xlsx", BATCH_1)
    session.search()
    session.add_employee("Alice", "Smith", 500.0)
    assert session.search() == []
    session.reset_batch_files()
    assert len(session.search()) == 1


def test_add_employee_requires_a_name():
    with pytest.raises(ValueError):
        EntitySearchSession().add_employee(" ", "", 10.0)


def test_entities_csv_quotes_every_field():
    session = EntitySearchSession()
    session.add_employee("Alice", "Smith", 500.0)
    session.add_batch_file("b.xlsx", BATCH_1)
    session.search()
    assert entities_csv(session.found) == 'First Name,Last Name,Entity\n"Alice","Smith","ACM/acme"'
