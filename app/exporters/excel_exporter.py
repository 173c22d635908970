"""
Excel export helper wrapping xlsxwriter.

Provides ``ExcelExporter``, a builder that writes the clinic's income
reports into an in-memory workbook and returns its bytes for streaming via
FastAPI's ``StreamingResponse``.

Usage example::

    exporter = ExcelExporter(
        title="Ingresos 01/03/2026 - 31/03/2026",
        filtros={"Desde": "01/03/2026", "Hasta": "31/03/2026"},
    )
    exporter.add_header()
    exporter.add_totales({"efectivo": 160.0, "tarjeta": 40.0})
    exporter.add_data_table(headers, rows, numeric_cols={4})
    file_bytes = exporter.finalize()

Design notes
------------
- ``xlsxwriter`` runs in ``in_memory`` mode over a ``BytesIO`` buffer.
- Column widths follow the longest value of each column, capped at 60.
- Money cells use ``#,##0.00`` and the currency label from settings.
"""

from __future__ import annotations

import io
from datetime import datetime
from typing import Any, Sequence

import xlsxwriter
from xlsxwriter.workbook import Workbook
from xlsxwriter.worksheet import Worksheet

_COLOR_PRIMARY = "#0E7490"
_COLOR_DARK = "#164E63"
_COLOR_WHITE = "#FFFFFF"
_COLOR_ROW_ALT = "#F0FDFA"
_COLOR_BORDER = "#CBD5E1"

_MONEY_FORMAT = "#,##0.00"
_MAX_COL_WIDTH = 60
_MIN_COL_WIDTH = 10


class ExcelExporter:
    """Single-sheet workbook: clinic header, per-method totals and a data table.

    Args:
        title: Report title shown in the header row.
        filtros: Labels of the applied filters, e.g. ``{"Desde": "01/03/2026"}``.
        moneda: Currency label appended to money column headers.
        sheet_name: Worksheet tab name.
    """

    def __init__(
        self,
        title: str,
        filtros: dict[str, str] | None = None,
        moneda: str = "USD",
        sheet_name: str = "Ingresos",
    ) -> None:
        self._title = title
        self._filtros = filtros or {}
        self._moneda = moneda

        self._buffer = io.BytesIO()
        self._workbook: Workbook = xlsxwriter.Workbook(self._buffer, {"in_memory": True})
        self._worksheet: Worksheet = self._workbook.add_worksheet(sheet_name)

        self._row: int = 0
        self._num_cols: int = 5
        self._formats: dict[str, Any] = self._build_formats()

    def _build_formats(self) -> dict[str, Any]:
        wb = self._workbook
        celda = {"font_size": 9, "valign": "vcenter", "border": 1, "border_color": _COLOR_BORDER}
        return {
            "titulo": wb.add_format({
                "bold": True,
                "font_size": 14,
                "font_color": _COLOR_WHITE,
                "bg_color": _COLOR_PRIMARY,
                "align": "center",
                "valign": "vcenter",
            }),
            "subtitulo": wb.add_format({
                "font_size": 9,
                "font_color": _COLOR_WHITE,
                "bg_color": _COLOR_DARK,
                "align": "center",
            }),
            "filtro": wb.add_format({"bold": True, "font_size": 9, "align": "right"}),
            "col_header": wb.add_format({
                "bold": True,
                "font_size": 10,
                "font_color": _COLOR_WHITE,
                "bg_color": _COLOR_DARK,
                "align": "center",
                "border": 1,
                "border_color": _COLOR_BORDER,
            }),
            "texto": wb.add_format(celda),
            "texto_alt": wb.add_format({**celda, "bg_color": _COLOR_ROW_ALT}),
            "monto": wb.add_format({**celda, "align": "right", "num_format": _MONEY_FORMAT}),
            "monto_alt": wb.add_format({
                **celda,
                "align": "right",
                "num_format": _MONEY_FORMAT,
                "bg_color": _COLOR_ROW_ALT,
            }),
            "total_label": wb.add_format({"bold": True, "font_size": 10, "bg_color": "#E0F2FE", "border": 1}),
            "total_valor": wb.add_format({
                "bold": True,
                "font_size": 10,
                "bg_color": "#E0F2FE",
                "border": 1,
                "num_format": _MONEY_FORMAT,
            }),
        }

    def add_header(self) -> "ExcelExporter":
        """Write the title, the generation timestamp and one row per filter."""
        ws = self._worksheet
        last_col = self._num_cols - 1

        ws.set_row(self._row, 28)
        ws.merge_range(self._row, 0, self._row, last_col, self._title, self._formats["titulo"])
        self._row += 1

        generado = datetime.now().strftime("%d/%m/%Y %H:%M")
        ws.merge_range(
            self._row, 0, self._row, last_col,
            f"Generado: {generado}", self._formats["subtitulo"],
        )
        self._row += 1

        for clave, valor in self._filtros.items():
            ws.write(self._row, 0, clave, self._formats["filtro"])
            ws.write(self._row, 1, valor)
            self._row += 1

        self._row += 1
        return self

    def add_totales(self, totales: dict[str, float], total_label: str = "Total") -> "ExcelExporter":
        """Write one row per payment method and a grand-total row.

        Args:
            totales: ``{metodo_pago: monto}`` in display order.
            total_label: Label of the final row.
        """
        ws = self._worksheet
        for metodo, monto in totales.items():
            ws.write(self._row, 0, metodo, self._formats["total_label"])
            ws.write_number(self._row, 1, monto, self._formats["total_valor"])
            self._row += 1
        ws.write(self._row, 0, f"{total_label} ({self._moneda})", self._formats["total_label"])
        ws.write_number(self._row, 1, sum(totales.values()), self._formats["total_valor"])
        self._row += 2
        return self

    def add_data_table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[Any]],
        numeric_cols: set[int] | None = None,
    ) -> "ExcelExporter":
        """Write a table with alternate row shading.

        Args:
            headers: Column header strings.
            rows: Data rows, each the same length as ``headers``.
            numeric_cols: Zero-based indices of money columns.
        """
        ws = self._worksheet
        numeric_cols = numeric_cols or set()
        widths = [len(str(h)) for h in headers]

        for ci, header in enumerate(headers):
            label = f"{header} ({self._moneda})" if ci in numeric_cols else header
            ws.write(self._row, ci, label, self._formats["col_header"])
            widths[ci] = max(widths[ci], len(label))
        self._row += 1

        for ri, fila in enumerate(rows):
            alt = ri % 2 == 1
            for ci, valor in enumerate(fila):
                if ci in numeric_cols:
                    ws.write_number(
                        self._row, ci, float(valor or 0),
                        self._formats["monto_alt" if alt else "monto"],
                    )
                else:
                    ws.write(
                        self._row, ci, "" if valor is None else str(valor),
                        self._formats["texto_alt" if alt else "texto"],
                    )
                widths[ci] = min(_MAX_COL_WIDTH, max(widths[ci], len(str(valor or ""))))
            self._row += 1

        for ci, width in enumerate(widths):
            ws.set_column(ci, ci, max(width + 2, _MIN_COL_WIDTH))
        return self

    def finalize(self) -> bytes:
        """Close the workbook and return the ``.xlsx`` bytes."""
        self._workbook.close()
        self._buffer.seek(0)
        return self._buffer.read()
