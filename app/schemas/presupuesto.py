"""
Pydantic v2 schemas for the treatment budget (Presupuesto) module.

Request models validate the phase/procedure tree before it reaches the
service layer (field errors surface as HTTP 400).  Response models define the
exact JSON shapes returned by ``app/routers/presupuestos.py``; they are free of
SQLAlchemy imports so that the schema layer stays decoupled from ORM
internals.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class ProcedimientoIn(BaseModel):
    """One billable procedure as submitted by the client.

    Attributes:
        nombre: Procedure name.
        numero_piezas: Unit count, strictly positive.
        costo_por_unidad: Unit cost, zero or positive.
    """

    nombre: str = Field(..., min_length=1, max_length=300, description="Nombre del procedimiento.")
    numero_piezas: int = Field(..., gt=0, description="Número de piezas (entero positivo).")
    costo_por_unidad: Decimal = Field(
        ...,
        ge=0,
        max_digits=12,
        decimal_places=2,
        description="Costo por unidad (no negativo).",
    )

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {"nombre": "Resina compuesta", "numero_piezas": 2, "costo_por_unidad": 35.0}
        },
    )


class FaseIn(BaseModel):
    """A budget phase with at least one procedure."""

    nombre: str = Field(..., min_length=1, max_length=200, description="Nombre de la fase.")
    descripcion: str | None = Field(default=None, description="Descripción opcional.")
    procedimientos: list[ProcedimientoIn] = Field(
        ...,
        min_length=1,
        description="Procedimientos de la fase (al menos uno).",
    )

    model_config = ConfigDict(str_strip_whitespace=True)


class PresupuestoCreate(BaseModel):
    """Payload accepted by ``POST /api/budgets``.

    Attributes:
        paciente_id: Patient the budget belongs to.
        especialidad: Clinical specialty label.
        fases: Ordered phases (at least one).
        plan_tratamiento_id: Optional treatment plan; at most one budget per plan.
    """

    paciente_id: int = Field(..., ge=1, description="ID del paciente.")
    especialidad: str = Field(..., min_length=1, max_length=100, description="Especialidad.")
    fases: list[FaseIn] = Field(..., min_length=1, description="Fases del presupuesto.")
    plan_tratamiento_id: int | None = Field(
        default=None, ge=1, description="ID del plan de tratamiento (opcional)."
    )

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "paciente_id": 1,
                "especialidad": "Rehabilitación Oral",
                "fases": [
                    {
                        "nombre": "Fase higiénica",
                        "procedimientos": [
                            {"nombre": "Profilaxis", "numero_piezas": 1, "costo_por_unidad": 40.0}
                        ],
                    }
                ],
            }
        },
    )


class PresupuestoPlanCreate(BaseModel):
    """Payload for ``POST /api/budgets/treatment/{plan_id}``.

    The patient comes from the plan; ``especialidad`` defaults to the plan's.
    """

    especialidad: str | None = Field(default=None, min_length=1, max_length=100)
    fases: list[FaseIn] = Field(..., min_length=1)

    model_config = ConfigDict(str_strip_whitespace=True)


class PresupuestoUpdate(BaseModel):
    """Full replacement payload for ``PUT /api/budgets/{id}``."""

    especialidad: str = Field(..., min_length=1, max_length=100)
    fases: list[FaseIn] = Field(..., min_length=1)

    model_config = ConfigDict(str_strip_whitespace=True)


class ProcedimientosReplace(BaseModel):
    """Payload for ``PATCH /api/budgets/{id}/fase/{i}/procedimientos``."""

    procedimientos: list[ProcedimientoIn] = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ProcedimientoResponse(BaseModel):
    id: int
    nombre: str
    numero_piezas: int
    costo_por_unidad: float
    costo_total: float


class FaseResponse(BaseModel):
    """Phase with its procedures and cached payment figures."""

    id: int
    indice: int = Field(..., ge=0, description="Posición de la fase (base 0).")
    nombre: str
    descripcion: str | None
    procedimientos: list[ProcedimientoResponse]
    total: float
    total_pagado: float
    saldo_pendiente: float
    estado_pago: str


class PresupuestoResponse(BaseModel):
    """Full budget as returned by every ``/api/budgets`` endpoint.

    Attributes:
        id: Presupuesto primary key.
        paciente_id: Patient primary key.
        paciente_nombre: Patient display name.
        numero_cedula: Patient identity document.
        plan_tratamiento_id: Linked treatment plan, if any.
        fecha: Budget date.
        especialidad: Specialty label.
        fases: Ordered phases.
        total_general: Sum of phase totals.
        total_pagado: Sum of phase paid amounts.
        saldo_pendiente_total: total_general - total_pagado.
        estado_pago_general: Aggregate payment status.
    """

    id: int
    paciente_id: int
    paciente_nombre: str | None = None
    numero_cedula: str | None = None
    plan_tratamiento_id: int | None
    fecha: datetime
    especialidad: str
    fases: list[FaseResponse]
    total_general: float
    total_pagado: float
    saldo_pendiente_total: float
    estado_pago_general: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 7,
                "paciente_id": 1,
                "paciente_nombre": "María Torres",
                "numero_cedula": "0102030405",
                "plan_tratamiento_id": None,
                "fecha": "2026-03-02T10:15:00",
                "especialidad": "Rehabilitación Oral",
                "fases": [],
                "total_general": 100.0,
                "total_pagado": 60.0,
                "saldo_pendiente_total": 40.0,
                "estado_pago_general": "parcial",
            }
        }
    )
