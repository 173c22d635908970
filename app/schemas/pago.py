"""
Pydantic v2 schemas for the per-phase payment ledger (``/api/payments``).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

MetodoPago = Literal["efectivo", "transferencia", "tarjeta", "cheque"]
TipoComprobante = Literal["factura", "recibo", "otro"]


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class ComprobanteIn(BaseModel):
    numero: str = Field(..., min_length=1, max_length=50)
    tipo: TipoComprobante | None = None


class PagoCreate(BaseModel):
    """Payload for ``POST /api/payments/budget/{id}/fase/{i}/pago``.

    Attributes:
        descripcion: Free-text description, required.
        monto: Amount paid; may not exceed the phase's pending balance.
        metodo_pago: "efectivo", "transferencia", "tarjeta" or "cheque".
        comprobante: Optional receipt reference.
        fecha: Payment date; defaults to now.
    """

    descripcion: str = Field(..., min_length=1, max_length=500)
    monto: Decimal = Field(..., ge=0, max_digits=12, decimal_places=2)
    metodo_pago: MetodoPago
    comprobante: ComprobanteIn | None = None
    fecha: datetime | None = None

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "descripcion": "Abono inicial",
                "monto": 60.0,
                "metodo_pago": "efectivo",
                "comprobante": {"numero": "001-000123", "tipo": "recibo"},
            }
        },
    )


class PagoAnular(BaseModel):
    """Payload for ``PATCH .../pago/{pago_id}/anular``."""

    motivo: str = Field(..., min_length=1, max_length=500)

    model_config = ConfigDict(str_strip_whitespace=True)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class PagoResponse(BaseModel):
    id: int
    descripcion: str
    fecha: datetime
    monto: float
    saldo: float
    metodo_pago: str
    comprobante_numero: str | None = None
    comprobante_tipo: str | None = None
    anulado: bool
    fecha_anulacion: datetime | None = None
    motivo_anulacion: str | None = None
    reporte_financiero_id: int | None = None


class PagoFaseResponse(BaseModel):
    """State of one phase ledger after a payment was registered or voided.

    ``total_pagado``, ``saldo_pendiente`` and ``estado_pago`` are derived from
    the non-voided entries.
    """

    id: int
    presupuesto_id: int
    fase_index: int
    nombre_fase: str
    total_fase: float
    total_pagado: float
    saldo_pendiente: float
    estado_pago: str
    pagos: list[PagoResponse]


class ResumenFase(BaseModel):
    fase_index: int
    nombre_fase: str
    total_fase: float
    total_pagado: float
    saldo_pendiente: float
    estado_pago: str
    pagos: list[PagoResponse]


class ResumenGeneral(BaseModel):
    """Budget-wide figures of the payment summary.

    ``porcentaje_pagado`` is ``0`` when the budget total is zero.
    """

    total_presupuesto: float
    total_pagado: float
    saldo_pendiente: float
    porcentaje_pagado: float = Field(..., ge=0.0)
    estado_pago: str


class ResumenPagosResponse(BaseModel):
    resumen_general: ResumenGeneral
    fases: list[ResumenFase]


class EliminacionPagosResponse(BaseModel):
    """Counts returned by the ledger wipe endpoints."""

    message: str
    presupuestos_afectados: int = Field(..., ge=0)
    pagos_eliminados: int = Field(..., ge=0)
    reportes_eliminados: int = Field(..., ge=0)


class ConciliacionFase(BaseModel):
    fase_index: int
    total_pagado_cache: float
    total_pagado_ledger: float
    diferencia: float


class ConciliacionResponse(BaseModel):
    """Drift between cached budget totals and ledger-derived totals.

    Attributes:
        presupuesto_id: Budget inspected.
        consistente: True when no phase differs and no reference is missing.
        fases: Per-phase comparison (only phases that differ).
        pagos_sin_reporte: Non-voided payment ids whose income entry is missing.
        reparado: True when the cached fields were rewritten from the ledger.
    """

    presupuesto_id: int
    consistente: bool
    total_pagado_cache: float
    total_pagado_ledger: float
    fases: list[ConciliacionFase]
    pagos_sin_reporte: list[int]
    reparado: bool = False
