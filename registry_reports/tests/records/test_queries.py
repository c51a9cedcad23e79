from __future__ import annotations

from datetime import date

from registry_reports.domain.reports import ReportFilter
from registry_reports.records import SqlActivityQuery, SqlDocumentQuery, SqlRequestQuery
from registry_reports.records.queries import end_of_day, start_of_day


def test_document_search_without_criteria_returns_all_by_id(seeded):
    rows = SqlDocumentQuery(seeded).search(ReportFilter())
    assert [r.certificate_number for r in rows] == ["BC-1001", "MC-2001", "DC-3001"]


def test_document_search_combines_criteria(seeded):
    rows = SqlDocumentQuery(seeded).search(
        ReportFilter(registry_office="Manila", barangay="Barangay 2", province="Metro Manila")
    )
    assert [r.certificate_number for r in rows] == ["DC-3001"]


def test_document_search_sentinel_is_no_constraint(seeded):
    rows = SqlDocumentQuery(seeded).search(ReportFilter(document_type="All Documents"))
    assert len(rows) == 3


def test_request_get_all_resolves_document_type(seeded):
    rows = SqlRequestQuery(seeded).get_all()
    assert [(r.requestor_name, r.document_type) for r in rows] == [
        ("Ana Lopez", "Birth Certificate"),
        ("Ben Cruz", "Marriage Certificate"),
        ("Carla Diaz", None),
    ]


def test_activity_search_filters(seeded):
    query = SqlActivityQuery(seeded)
    logins = query.search(activity_type="login")
    assert [a.description for a in logins] == ["Anonymous login attempt", "Admin logged in"]

    by_user = query.search(user_id=2)
    assert [a.username for a in by_user] == ["clerk"]

    one_day = query.search(date_from=date(2024, 5, 2), date_to=date(2024, 5, 2))
    assert [a.description for a in one_day] == ["Added document BC-1001"]


def test_activity_type_is_not_a_pattern(seeded):
    assert SqlActivityQuery(seeded).search(activity_type="Log%") == []


def test_day_bounds():
    assert start_of_day(date(2024, 1, 1)).isoformat() == "2024-01-01T00:00:00"
    assert end_of_day(date(2024, 1, 1)).isoformat() == "2024-01-01T23:59:59.999999"
