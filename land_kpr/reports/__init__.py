"""Read-only statements and summaries."""

from land_kpr.reports.statements import ReportService

__all__ = ["ReportService"]
