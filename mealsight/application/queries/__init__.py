"""Application queries (read side)."""

from mealsight.application.queries.get_quality_report import (
    GetNoteImpactQuery,
    GetNoteImpactQueryHandler,
    GetQualityReportQuery,
    GetQualityReportQueryHandler,
    NoteImpactReport,
    QualityReport,
)

__all__ = [
    "GetNoteImpactQuery",
    "GetNoteImpactQueryHandler",
    "GetQualityReportQuery",
    "GetQualityReportQueryHandler",
    "NoteImpactReport",
    "QualityReport",
]
