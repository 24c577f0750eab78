"""Report generation and rendering package."""

from aqsha.reports.generator import ReportGenerator
from aqsha.reports.renderers import (
    RenderedReport,
    parse_report,
    render_report,
)

__all__ = [
    "RenderedReport",
    "ReportGenerator",
    "parse_report",
    "render_report",
]
