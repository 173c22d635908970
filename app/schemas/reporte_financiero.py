"""
Pydantic v2 schemas for the transaction log (``/api/financial-reports``).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.pago import MetodoPago


class ReporteFinancieroCreate(BaseModel):
    """Manual income entry (not produced by the payment ledger).

    Attributes:
        presupuesto_id: Budget the income belongs to; its patient is used.
        monto: Amount received.
        metodo_pago: Payment method.
        concepto_pago: Free-text concept.
    """

    presupuesto_id: int = Field(..., ge=1)
    monto: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    metodo_pago: MetodoPago
    concepto_pago: str = Field(default="Ingreso manual", min_length=1, max_length=500)

    model_config = ConfigDict(str_strip_whitespace=True)


class ReporteFinancieroResponse(BaseModel):
    id: int
    presupuesto_id: int | None
    paciente_id: int
    paciente_nombre: str | None = None
    fecha: datetime
    monto: float
    metodo_pago: str
    concepto_pago: str
    created_at: datetime | None = None


class TablaReportesResponse(BaseModel):
    """Paginated wrapper returned by ``GET /api/financial-reports``."""

    rows: list[ReporteFinancieroResponse]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)


# ---------------------------------------------------------------------------
# Monthly report
# ---------------------------------------------------------------------------


class TransaccionItem(BaseModel):
    id: int
    fecha: datetime
    monto: float
    paciente_id: int
    paciente_nombre: str | None = None
    concepto_pago: str


class MetodoPagoResumen(BaseModel):
    """Income grouped under one payment method."""

    metodo_pago: str
    total_monto: float
    cantidad_transacciones: int = Field(..., ge=0)
    transacciones: list[TransaccionItem]


class ReporteMensualResponse(BaseModel):
    """Per-method totals for one calendar month.

    The ``total_monto`` of every group adds up exactly to ``total_mensual``.
    """

    reporte: list[MetodoPagoResumen]
    total_mensual: float
    mes: int = Field(..., ge=1, le=12)
    anio: int

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "reporte": [
                    {
                        "metodo_pago": "efectivo",
                        "total_monto": 160.0,
                        "cantidad_transacciones": 2,
                        "transacciones": [],
                    }
                ],
                "total_mensual": 160.0,
                "mes": 3,
                "anio": 2026,
            }
        }
    )


# ---------------------------------------------------------------------------
# Annual report
# ---------------------------------------------------------------------------


class ReporteAnualItem(BaseModel):
    mes: int = Field(..., ge=1, le=12)
    mes_label: str = Field(..., description="Abreviatura del mes (ej. 'Ene').")
    metodo_pago: str
    total_monto: float
    cantidad_transacciones: int = Field(..., ge=0)


class ReporteAnualResponse(BaseModel):
    reporte: list[ReporteAnualItem]
    total_anual: float
    anio: int


# ---------------------------------------------------------------------------
# Date-range report
# ---------------------------------------------------------------------------


class ReporteRangoResponse(BaseModel):
    """Raw entries plus per-method subtotals for an inclusive date range."""

    reports: list[ReporteFinancieroResponse]
    total_periodo: float
    resumen_metodos_pago: dict[str, float]
    fecha_inicio: date
    fecha_fin: date
