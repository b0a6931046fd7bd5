"""Generación de Excel formateado para entrega médica."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, Side

from salud_log.output import atomic_output

_HEADER_MAP: dict[str, str] = {
    "date": "Date",
    "time": "Time",
    "value": "Value",
    "context": "Context",
    "notes": "Notes",
    "units": "Units",
    "type": "Type",
    "name": "Name",
    "carbs": "Carbs (g)",
    "systolic": "Systolic",
    "diastolic": "Diastolic",
    "glucose_count": "Readings",
    "glucose_min": "Min",
    "glucose_max": "Max",
    "glucose_avg": "Average",
    "insulin_units": "Insulin\n(units)",
    "carbs_g": "Carbs\n(g)",
}

_WIDTHS: dict[str, int] = {
    "Date": 12,
    "Time": 8,
    "Value": 10,
    "Context": 14,
    "Notes": 40,
    "Units": 8,
    "Type": 14,
    "Name": 28,
    "Carbs (g)": 10,
    "Systolic": 10,
    "Diastolic": 10,
    "Readings": 10,
    "Min": 8,
    "Max": 8,
    "Average": 10,
    "Insulin\n(units)": 10,
    "Carbs\n(g)": 10,
}

_NUMBER_FORMATS: dict[str, str] = {
    "Value": "0.0",
    "Units": "0.0",
    "Carbs (g)": "0",
    "Systolic": "0",
    "Diastolic": "0",
    "Readings": "0",
    "Average": "0",
    "Insulin\n(units)": "0.0",
    "Carbs\n(g)": "0",
}


@dataclass(frozen=True)
class ExcelLayout:
    """Layout/formatting configuration for the report workbook."""

    daily_sheet_name: str = "Daily summary"


def write_report_workbook(
    sheets: dict[str, pd.DataFrame],
    out_path: Path,
    layout: ExcelLayout | None = None,
    daily: pd.DataFrame | None = None,
) -> Path:
    """Write a formatted workbook with one sheet per non-empty frame.

    Args:
        sheets: Sheet title -> export frame (lowercase column keys).
        out_path: Output path for the XLSX file.
        layout: Workbook layout parameters.
        daily: Optional per-day summary written as the first sheet.

    Raises:
        ExportFailure: If the workbook cannot be written; no partial file is left.
    """
    layout = layout or ExcelLayout()
    ordered: list[tuple[str, pd.DataFrame]] = []
    if daily is not None and not daily.empty:
        ordered.append((layout.daily_sheet_name, daily))
    ordered.extend((title, df) for title, df in sheets.items() if not df.empty)
    if not ordered:
        ordered.append((layout.daily_sheet_name, pd.DataFrame(columns=["date"])))

    with atomic_output(out_path) as tmp:
        with pd.ExcelWriter(tmp, engine="openpyxl") as writer:
            for title, df in ordered:
                export_df = df.rename(columns=_HEADER_MAP)
                export_df.to_excel(writer, index=False, sheet_name=title[:31])
                _format_sheet(writer.book[title[:31]])
    return out_path


def _style_header_row(ws: Any) -> None:
    """Aplica fuente negrita, alineación y borde a la fila de cabecera."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    header_font = Font(bold=True)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = center
        cell.border = border


def _style_body_rows(ws: Any) -> None:
    """Aplica alineación y borde a las filas de datos (notas a la izquierda)."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    left = Alignment(horizontal="left", vertical="center", wrap_text=True)
    headers = [str(cell.value) for cell in ws[1]]
    for row in ws.iter_rows(min_row=2):
        for cell, header in zip(row, headers):
            cell.alignment = left if header in ("Notes", "Name") else center
            cell.border = border


def _get_header_col_index(ws: Any) -> dict[str, int]:
    """Devuelve mapa nombre de cabecera -> índice de columna (1-based)."""
    headers = [str(cell.value) for cell in ws[1]]
    return {name: idx + 1 for idx, name in enumerate(headers)}


def _apply_column_widths(ws: Any, col_index: dict[str, int]) -> None:
    """Establece anchos de columna para evitar ###."""
    for header, width in _WIDTHS.items():
        idx = col_index.get(header)
        if idx is not None:
            letter = ws.cell(row=1, column=idx).column_letter
            ws.column_dimensions[letter].width = width


def _apply_number_formats(ws: Any, col_index: dict[str, int]) -> None:
    """Aplica formatos numéricos por cabecera."""
    for row in ws.iter_rows(min_row=2):
        for header, fmt in _NUMBER_FORMATS.items():
            idx = col_index.get(header)
            if idx is not None:
                row[idx - 1].number_format = fmt


def _format_sheet(ws: Any) -> None:
    """Apply borders, widths and number formats to a worksheet.

    Args:
        ws: openpyxl worksheet.
    """
    _style_header_row(ws)
    _style_body_rows(ws)
    col_index = _get_header_col_index(ws)
    _apply_column_widths(ws, col_index)
    _apply_number_formats(ws, col_index)
    ws.freeze_panes = "A2"
