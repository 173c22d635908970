"""
Payment ledger router.

Mounts under ``/api/payments`` (prefix set in ``main.py``).

All endpoints require a valid JWT token.  The system-wide wipe and the drift
repair additionally require the ``ADMIN`` role.

Endpoints
---------
GET    /budget/{id}/summary                         — Payment summary per phase.
POST   /budget/{id}/fase/{i}/pago                   — Register a payment.
PATCH  /budget/{id}/fase/{i}/pago/{pago_id}/anular  — Void a payment.
DELETE /budget/{id}/pagos                           — Wipe one budget's ledgers.
DELETE /deleteAll?confirmar=true[&paciente_id=]     — Scoped admin wipe (ADMIN).
GET    /budget/{id}/conciliacion                    — Drift report.
POST   /budget/{id}/conciliacion                    — Repair drift (ADMIN).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Path, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import ValidationError
from app.schemas.auth import UsuarioToken
from app.schemas.pago import (
    ConciliacionResponse,
    EliminacionPagosResponse,
    PagoAnular,
    PagoCreate,
    PagoFaseResponse,
    ResumenPagosResponse,
)
from app.services import conciliacion_service, pago_service
from app.services.auth_service import get_current_user, require_role

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pagos"])

FaseIndex = Annotated[int, Path(ge=0, description="Índice de la fase (base 0).")]

_AUTH_RESPONSES = {401: {"description": "Token JWT ausente o inválido."}}


# ---------------------------------------------------------------------------
# GET /budget/{id}/summary
# ---------------------------------------------------------------------------


@router.get(
    "/budget/{presupuesto_id}/summary",
    response_model=ResumenPagosResponse,
    summary="Resumen de pagos de un presupuesto",
    description=(
        "Devuelve, para cada fase del presupuesto, el total, lo pagado, el saldo, "
        "el estado y la lista de pagos (los anulados aparecen marcados). "
        "El porcentaje pagado es 0 cuando el total del presupuesto es 0."
    ),
    responses={**_AUTH_RESPONSES, 404: {"description": "Presupuesto no encontrado."}},
)
def get_resumen(
    presupuesto_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> ResumenPagosResponse:
    logger.debug("GET /payments/budget/%d/summary", presupuesto_id)
    return pago_service.get_resumen(db, presupuesto_id)


# ---------------------------------------------------------------------------
# POST /budget/{id}/fase/{i}/pago
# ---------------------------------------------------------------------------


@router.post(
    "/budget/{presupuesto_id}/fase/{fase_index}/pago",
    response_model=PagoFaseResponse,
    status_code=201,
    summary="Registrar pago en una fase",
    description=(
        "Agrega un pago al libro de la fase, registra el ingreso en el reporte "
        "financiero y actualiza los totales del presupuesto en una sola "
        "transacción. Con el encabezado Idempotency-Key, un reintento con la "
        "misma clave no vuelve a sumar el monto."
    ),
    responses={
        201: {"description": "Pago registrado."},
        400: {"description": "El monto excede el saldo pendiente o datos inválidos."},
        **_AUTH_RESPONSES,
        404: {"description": "Presupuesto o fase inexistente."},
        409: {"description": "Modificación concurrente; reintentar."},
    },
)
def registrar_pago(
    presupuesto_id: int,
    fase_index: FaseIndex,
    data: PagoCreate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[UsuarioToken, Depends(get_current_user)],
    idempotency_key: Annotated[
        str | None,
        Header(alias="Idempotency-Key", max_length=100),
    ] = None,
) -> PagoFaseResponse:
    """Register a payment on one phase of a budget.

    Args:
        presupuesto_id: Budget primary key.
        fase_index: Zero-based phase position.
        data: Validated payment payload.
        db: Database session.
        current_user: Authenticated user.
        idempotency_key: Optional client key for safe retries.

    Returns:
        The phase ledger after the payment (HTTP 201).

    Raises:
        BusinessRuleError: Amount above the pending balance.
        NotFoundError: Unknown budget or phase.
        ConflictError: Concurrent modification.
    """
    logger.info(
        "POST /payments/budget/%d/fase/%d/pago monto=%s metodo=%s user=%s",
        presupuesto_id, fase_index, data.monto, data.metodo_pago, current_user.id,
    )
    pago_fase = pago_service.registrar_pago(
        db, presupuesto_id, fase_index, data, clave_idempotencia=idempotency_key
    )
    return pago_service.build_pago_fase_response(pago_fase)


# ---------------------------------------------------------------------------
# PATCH /budget/{id}/fase/{i}/pago/{pago_id}/anular
# ---------------------------------------------------------------------------


@router.patch(
    "/budget/{presupuesto_id}/fase/{fase_index}/pago/{pago_id}/anular",
    response_model=PagoFaseResponse,
    summary="Anular un pago",
    description=(
        "Marca el pago como anulado (irreversible), elimina su ingreso del "
        "reporte financiero y descuenta el monto del presupuesto."
    ),
    responses={
        400: {"description": "El pago ya está anulado."},
        **_AUTH_RESPONSES,
        404: {"description": "Presupuesto, fase o pago inexistente."},
        409: {"description": "Modificación concurrente; reintentar."},
    },
)
def anular_pago(
    presupuesto_id: int,
    fase_index: FaseIndex,
    pago_id: int,
    data: PagoAnular,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> PagoFaseResponse:
    logger.info(
        "PATCH /payments/budget/%d/fase/%d/pago/%d/anular user=%s",
        presupuesto_id, fase_index, pago_id, current_user.id,
    )
    pago_fase = pago_service.anular_pago(
        db, presupuesto_id, fase_index, pago_id, data.motivo
    )
    return pago_service.build_pago_fase_response(pago_fase)


# ---------------------------------------------------------------------------
# Bulk deletes
# ---------------------------------------------------------------------------


@router.delete(
    "/budget/{presupuesto_id}/pagos",
    response_model=EliminacionPagosResponse,
    summary="Eliminar los pagos de un presupuesto",
    description=(
        "Elimina los libros de pago y los reportes financieros del presupuesto "
        "y deja sus montos pagados en cero."
    ),
    responses={**_AUTH_RESPONSES, 404: {"description": "Presupuesto no encontrado."}},
)
def delete_pagos_presupuesto(
    presupuesto_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> EliminacionPagosResponse:
    logger.info("DELETE /payments/budget/%d/pagos user=%s", presupuesto_id, current_user.id)
    return pago_service.delete_pagos_presupuesto(db, presupuesto_id)


@router.delete(
    "/deleteAll",
    response_model=EliminacionPagosResponse,
    summary="Eliminación administrativa de pagos",
    description=(
        "Elimina libros de pago y reportes financieros, de un paciente o de "
        "todos, y reinicia los presupuestos afectados. Requiere rol ADMIN y "
        "confirmar=true."
    ),
    responses={
        400: {"description": "Falta confirmar=true."},
        **_AUTH_RESPONSES,
        403: {"description": "Rol insuficiente (requiere ADMIN)."},
    },
)
def delete_all(
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[UsuarioToken, Depends(require_role("ADMIN"))],
    confirmar: Annotated[bool, Query(description="Debe ser true.")] = False,
    paciente_id: Annotated[
        int | None, Query(ge=1, description="Limitar a un paciente.")
    ] = None,
) -> EliminacionPagosResponse:
    if not confirmar:
        raise ValidationError("Debe confirmar la eliminación con confirmar=true.")
    logger.info(
        "DELETE /payments/deleteAll paciente_id=%s user=%s", paciente_id, current_user.id
    )
    return pago_service.delete_all(db, paciente_id=paciente_id, usuario_id=current_user.id)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@router.get(
    "/budget/{presupuesto_id}/conciliacion",
    response_model=ConciliacionResponse,
    summary="Verificar consistencia de pagos",
    responses={**_AUTH_RESPONSES, 404: {"description": "Presupuesto no encontrado."}},
)
def detectar_desfase(
    presupuesto_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> ConciliacionResponse:
    logger.debug("GET /payments/budget/%d/conciliacion", presupuesto_id)
    return conciliacion_service.detectar_desfase(db, presupuesto_id)


@router.post(
    "/budget/{presupuesto_id}/conciliacion",
    response_model=ConciliacionResponse,
    summary="Reparar totales desde los pagos",
    description=(
        "Reescribe los montos pagados del presupuesto a partir de los pagos no "
        "anulados y recrea los ingresos faltantes. Requiere rol ADMIN."
    ),
    responses={
        **_AUTH_RESPONSES,
        403: {"description": "Rol insuficiente (requiere ADMIN)."},
        404: {"description": "Presupuesto no encontrado."},
    },
)
def conciliar(
    presupuesto_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[UsuarioToken, Depends(require_role("ADMIN"))],
) -> ConciliacionResponse:
    logger.info("POST /payments/budget/%d/conciliacion user=%s", presupuesto_id, current_user.id)
    return conciliacion_service.conciliar(db, presupuesto_id)
