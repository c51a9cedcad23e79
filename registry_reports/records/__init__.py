"""Read-only access to the civil-registry records consumed by reports."""

from registry_reports.records.queries import (
    ActivityQuery,
    DocumentQuery,
    RequestQuery,
    SqlActivityQuery,
    SqlDocumentQuery,
    SqlRequestQuery,
)

__all__ = [
    "ActivityQuery",
    "DocumentQuery",
    "RequestQuery",
    "SqlActivityQuery",
    "SqlDocumentQuery",
    "SqlRequestQuery",
]
