"""
Report Renderers

Turn a report payload into JSON, CSV or PDF bytes, and back.

DESIGN DECISION: Every format is reversible. parse_report() on any
rendered output returns a payload equal to the one that was rendered:
- JSON is the camelCase model dump
- CSV is a two-column field,value listing of the flattened dump
  (dotted paths, list indices as path segments, null values omitted)
- PDF is a one-page summary with the JSON embedded as an attachment
"""

import csv
import io
import json
from dataclasses import dataclass
from typing import Any, Union

import pydantic
from pypdf import PdfReader, PdfWriter
from pypdf.annotations import FreeText

from aqsha.errors import ValidationError
from aqsha.models.finance import ValidationIssue
from aqsha.models.report import (
    REPORT_PAYLOADS,
    ReportFormat,
    ReportPayload,
    ReportType,
)


PDF_ATTACHMENT_NAME = "report.json"

# US Letter, points
PAGE_WIDTH = 612
PAGE_HEIGHT = 792
SUMMARY_LIST_ITEMS = 12


@dataclass
class RenderedReport:
    content: bytes
    media_type: str
    extension: str


MEDIA_TYPES = {
    ReportFormat.JSON: ("application/json", "json"),
    ReportFormat.CSV: ("text/csv", "csv"),
    ReportFormat.PDF: ("application/pdf", "pdf"),
}


# =============================================================================
# FLATTENING
# =============================================================================

def flatten(value: Any, prefix: str = "") -> list[tuple[str, str]]:
    """
    Flatten nested dicts/lists into (path, text) pairs.

    {"a": {"b": [1, 2]}} -> [("a.b.0", "1"), ("a.b.1", "2")]
    """
    if isinstance(value, dict):
        pairs = []
        for key, item in value.items():
            pairs += flatten(item, f"{prefix}.{key}" if prefix else str(key))
        return pairs
    if isinstance(value, list):
        pairs = []
        for index, item in enumerate(value):
            pairs += flatten(item, f"{prefix}.{index}" if prefix else str(index))
        return pairs
    if value is None:
        return []
    if isinstance(value, bool):
        return [(prefix, "true" if value else "false")]
    return [(prefix, str(value))]


def unflatten(pairs: list[tuple[str, str]]) -> dict:
    """Inverse of flatten(). Numeric path segments become list indices."""
    root: dict = {}
    for path, text in pairs:
        parts = path.split(".")
        node: Any = root
        for position, part in enumerate(parts):
            last = position == len(parts) - 1
            next_is_index = not last and parts[position + 1].isdigit()
            child_default = [] if next_is_index else {}

            if isinstance(node, list):
                index = int(part)
                while len(node) <= index:
                    node.append(None)
                if last:
                    node[index] = text
                else:
                    if node[index] is None:
                        node[index] = child_default
                    node = node[index]
            else:
                if last:
                    node[part] = text
                else:
                    node = node.setdefault(part, child_default)
    return root


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def payload_from_dict(data: dict) -> ReportPayload:
    """Dispatch on the report_type tag and validate."""
    tag = data.get("reportType", data.get("report_type"))
    try:
        model_cls = REPORT_PAYLOADS[ReportType(tag)]
        return model_cls.model_validate(data)
    except (ValueError, KeyError, pydantic.ValidationError) as e:
        raise ValidationError(
            "Rendered report could not be parsed",
            issues=[ValidationIssue(
                field="reportType",
                issue_type="unparseable_report",
                message=str(e),
            )],
        )


def payload_to_dict(payload: ReportPayload) -> dict:
    return payload.model_dump(mode="json", by_alias=True)


# =============================================================================
# JSON
# =============================================================================

def render_json(payload: ReportPayload) -> bytes:
    return json.dumps(payload_to_dict(payload), ensure_ascii=False, indent=2).encode("utf-8")


def parse_json(content: bytes) -> ReportPayload:
    return payload_from_dict(json.loads(content))


# =============================================================================
# CSV
# =============================================================================

def render_csv(payload: ReportPayload) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["field", "value"])
    writer.writerows(flatten(payload_to_dict(payload)))
    return buffer.getvalue().encode("utf-8")


def parse_csv(content: bytes) -> ReportPayload:
    reader = csv.reader(io.StringIO(content.decode("utf-8")))
    rows = list(reader)
    pairs = [(row[0], row[1]) for row in rows[1:] if len(row) >= 2]
    return payload_from_dict(unflatten(pairs))


# =============================================================================
# PDF
# =============================================================================

def _label(key: str) -> str:
    """camelCase -> 'Camel case'."""
    words = []
    current = ""
    for char in key:
        if char.isupper() and current:
            words.append(current)
            current = char.lower()
        else:
            current += char
    words.append(current)
    return " ".join(words).capitalize()


def summary_lines(payload: ReportPayload) -> list[str]:
    """Human-readable one-page summary of a payload."""
    data = payload_to_dict(payload)
    lines = [f"Aqsha Tracker - {data['reportType'].replace('_', ' ').title()}", ""]

    period = data.get("period")
    if period:
        lines.append(f"Period: {period['startDate']} to {period['endDate']}")

    for key, value in data.items():
        if key in ("reportType", "period") or value is None:
            continue
        if isinstance(value, list):
            lines.append("")
            lines.append(f"{_label(key)} ({len(value)}):")
            for item in value[:SUMMARY_LIST_ITEMS]:
                scalars = [
                    str(v) for k, v in item.items()
                    if not isinstance(v, (list, dict)) and v is not None and not k.endswith("Id")
                ]
                lines.append("  " + " | ".join(scalars))
            if len(value) > SUMMARY_LIST_ITEMS:
                lines.append(f"  ... {len(value) - SUMMARY_LIST_ITEMS} more")
        elif not isinstance(value, dict):
            lines.append(f"{_label(key)}: {value}")

    return lines


def render_pdf(payload: ReportPayload) -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)

    writer.add_annotation(
        page_number=0,
        annotation=FreeText(
            text="\n".join(summary_lines(payload)),
            rect=(36, 36, PAGE_WIDTH - 36, PAGE_HEIGHT - 36),
            font="Helvetica",
            font_size="10pt",
        ),
    )
    writer.add_attachment(PDF_ATTACHMENT_NAME, render_json(payload))
    writer.add_metadata({
        "/Title": f"Aqsha Tracker report: {payload.report_type}",
        "/Subject": payload.report_type,
    })

    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def parse_pdf(content: bytes) -> ReportPayload:
    reader = PdfReader(io.BytesIO(content))
    attachments = reader.attachments
    if PDF_ATTACHMENT_NAME not in attachments:
        raise ValidationError(
            "PDF report has no embedded data",
            issues=[ValidationIssue(
                field="content",
                issue_type="unparseable_report",
                message=f"Missing {PDF_ATTACHMENT_NAME} attachment",
            )],
        )
    return parse_json(attachments[PDF_ATTACHMENT_NAME][0])


# =============================================================================
# DISPATCH
# =============================================================================

_RENDERERS = {
    ReportFormat.JSON: render_json,
    ReportFormat.CSV: render_csv,
    ReportFormat.PDF: render_pdf,
}

_PARSERS = {
    ReportFormat.JSON: parse_json,
    ReportFormat.CSV: parse_csv,
    ReportFormat.PDF: parse_pdf,
}


def render_report(payload: ReportPayload, report_format: ReportFormat) -> RenderedReport:
    media_type, extension = MEDIA_TYPES[report_format]
    return RenderedReport(
        content=_RENDERERS[report_format](payload),
        media_type=media_type,
        extension=extension,
    )


def parse_report(rendered: Union[bytes, str], report_format: ReportFormat) -> ReportPayload:
    """Reverse any rendering back into its payload model."""
    if isinstance(rendered, str):
        rendered = rendered.encode("utf-8")
    return _PARSERS[ReportFormat(report_format)](rendered)
