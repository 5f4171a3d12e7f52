"""
RACI Export — CSV, Markdown, printable HTML and Excel renditions of a
department matrix.

Every format serializes the same ``MatrixRow`` list with the same column
order (``Action`` then the department roles in role order), so an export
always matches the on-screen matrix.
"""

import csv
import html
import io
import logging
import re
import unicodedata

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "markdown", "html", "xlsx")
FILE_PREFIX = "raci-matrix"
EMPTY_CELL = "—"

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
RACI_FILLS = {
    "R": PatternFill(start_color="DBEAFE", end_color="DBEAFE", fill_type="solid"),
    "A": PatternFill(start_color="FDE68A", end_color="FDE68A", fill_type="solid"),
    "C": PatternFill(start_color="DCFCE7", end_color="DCFCE7", fill_type="solid"),
    "I": PatternFill(start_color="F3E8FF", end_color="F3E8FF", fill_type="solid"),
}


def _headers(roles) -> list[str]:
    return ["Action"] + [role.name for role in roles]


def _cells(row, roles) -> list[str]:
    return [row.values.get(role.id, "") for role in roles]


# ── File naming ───────────────────────────────────────────────────────────────


def department_slug(name: str) -> str:
    """``"Ressources Humaines"`` → ``"ressources-humaines"``."""
    decomposed = unicodedata.normalize("NFD", (name or "").lower())
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_only).strip("-")
    return slug or "department"


def export_filename(department_name: str, fmt: str) -> str:
    extension = {"csv": "csv", "markdown": "md", "html": "html", "xlsx": "xlsx"}[fmt]
    return f"{FILE_PREFIX}-{department_slug(department_name)}.{extension}"


# ── Text formats ──────────────────────────────────────────────────────────────


def export_csv(roles, rows) -> str:
    """``;``-separated, every field quoted (quotes doubled), ``\\n`` between lines."""
    output = io.StringIO()
    writer = csv.writer(output, delimiter=";", quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(_headers(roles))
    for row in rows:
        writer.writerow([row.label] + _cells(row, roles))
    content = output.getvalue()
    return content[:-1] if content.endswith("\n") else content


def _md_cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\r", " ").replace("\n", " ")


def export_markdown(roles, rows) -> str:
    headers = _headers(roles)
    lines = [
        "| " + " | ".join(_md_cell(h) for h in headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    for row in rows:
        cells = [_md_cell(row.label)] + [value or EMPTY_CELL for value in _cells(row, roles)]
        lines.append("| " + " | ".join(cells) + " |")
    return "\n".join(lines)


_PRINT_STYLE = (
    "@page { size: A4 landscape; margin: 16mm; }\n"
    "body { font-family: 'Inter', system-ui, -apple-system, sans-serif; color: #0f172a; }\n"
    "h1 { font-size: 20px; margin-bottom: 12px; }\n"
    "table { border-collapse: collapse; width: 100%; font-size: 12px; }\n"
    "th { background: #f8fafc; font-weight: 700; }\n"
    "tr:nth-child(even) { background: #f8fafc; }"
)
_TH = '<th style="padding:8px;border:1px solid #e2e8f0;text-align:left;">{}</th>'
_TD = '<td style="padding:8px;border:1px solid #e2e8f0;">{}</td>'


def export_html(department_name: str, roles, rows) -> str:
    """Standalone printable page (A4 landscape)."""
    title = html.escape(f"RACI matrix — {department_name}")
    header_cells = "".join(_TH.format(html.escape(h)) for h in _headers(roles))
    body_rows = "".join(
        "<tr>"
        + "".join(
            _TD.format(html.escape(cell))
            for cell in [row.label] + [value or EMPTY_CELL for value in _cells(row, roles)]
        )
        + "</tr>"
        for row in rows
    )
    return (
        "<!doctype html>\n"
        "<html>\n"
        "<head>\n"
        '<meta charset="utf-8" />\n'
        f"<title>{title}</title>\n"
        f"<style>\n{_PRINT_STYLE}\n</style>\n"
        "</head>\n"
        "<body>\n"
        f"<h1>{title}</h1>\n"
        "<table>\n"
        f"<thead><tr>{header_cells}</tr></thead>\n"
        f"<tbody>{body_rows}</tbody>\n"
        "</table>\n"
        "</body>\n"
        "</html>\n"
    )


# ── Excel ─────────────────────────────────────────────────────────────────────


def export_xlsx(department_name: str, roles, rows) -> io.BytesIO:
    """
    Generate a styled Excel workbook of the matrix.
    Returns a rewound BytesIO buffer.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "RACI Matrix"

    headers = _headers(roles)
    for col, header in enumerate(headers, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="left" if col == 1 else "center")

    for row_idx, row in enumerate(rows, 2):
        ws.cell(row=row_idx, column=1, value=row.label).border = THIN_BORDER
        for col, value in enumerate(_cells(row, roles), 2):
            cell = ws.cell(row=row_idx, column=col, value=value or None)
            cell.border = THIN_BORDER
            cell.alignment = Alignment(horizontal="center")
            if value in RACI_FILLS:
                cell.fill = RACI_FILLS[value]

    ws.column_dimensions["A"].width = 48
    for col in range(2, len(headers) + 1):
        ws.column_dimensions[get_column_letter(col)].width = max(12, len(headers[col - 1]) + 4)
    ws.freeze_panes = "B2"

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    logger.info(
        "RACI workbook generated",
        extra={"department_name": department_name, "row_count": len(rows), "role_count": len(roles)},
    )
    return output
