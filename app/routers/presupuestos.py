"""
Treatment budgets router.

Mounts under ``/api/budgets`` (prefix set in ``main.py``).

All endpoints require a valid JWT token (``get_current_user`` dependency).
Domain errors raised by the service (``ValidationError``, ``NotFoundError``,
``BusinessRuleError``, ``ConflictError``) are turned into JSON bodies by the
handlers registered in ``main.py``.

Endpoints
---------
GET    /                                   — All budgets, newest first.
GET    /paciente/{paciente_id}             — Budgets of one patient.
GET    /treatment/{plan_id}                — Budget linked to a treatment plan.
GET    /{id}                               — One budget.
POST   /                                   — Create with manual phases.
POST   /from-treatment/{plan_id}           — Derive from a plan's activities.
POST   /treatment/{plan_id}                — Create with manual phases for a plan.
POST   /{id}/fase/{i}/procedimiento        — Append one procedure to a phase.
PATCH  /{id}/fase/{i}/procedimientos       — Replace a phase's procedures.
PUT    /{id}                               — Replace specialty and phases.
DELETE /{id}                               — Delete (unconditional).
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Response, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.auth import UsuarioToken
from app.schemas.presupuesto import (
    PresupuestoCreate,
    PresupuestoPlanCreate,
    PresupuestoResponse,
    PresupuestoUpdate,
    ProcedimientoIn,
    ProcedimientosReplace,
)
from app.services import presupuesto_service
from app.services.auth_service import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Presupuestos"])

FaseIndex = Annotated[int, Path(ge=0, description="Índice de la fase (base 0).")]

_AUTH_RESPONSES = {401: {"description": "Token JWT ausente o inválido."}}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[PresupuestoResponse],
    summary="Listar presupuestos",
    responses=_AUTH_RESPONSES,
)
def list_presupuestos(
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> list[PresupuestoResponse]:
    logger.debug("GET /budgets")
    return presupuesto_service.list_presupuestos(db)


@router.get(
    "/paciente/{paciente_id}",
    response_model=list[PresupuestoResponse],
    summary="Presupuestos de un paciente",
    responses={**_AUTH_RESPONSES, 404: {"description": "El paciente no tiene presupuestos."}},
)
def list_by_paciente(
    paciente_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> list[PresupuestoResponse]:
    logger.debug("GET /budgets/paciente/%d", paciente_id)
    return presupuesto_service.list_by_paciente(db, paciente_id)


@router.get(
    "/treatment/{plan_id}",
    response_model=PresupuestoResponse,
    summary="Presupuesto de un plan de tratamiento",
    responses={**_AUTH_RESPONSES, 404: {"description": "El plan no tiene presupuesto."}},
)
def get_by_plan(
    plan_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> PresupuestoResponse:
    logger.debug("GET /budgets/treatment/%d", plan_id)
    return presupuesto_service.get_by_plan(db, plan_id)


@router.get(
    "/{presupuesto_id}",
    response_model=PresupuestoResponse,
    summary="Detalle de un presupuesto",
    responses={**_AUTH_RESPONSES, 404: {"description": "Presupuesto no encontrado."}},
)
def get_presupuesto(
    presupuesto_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> PresupuestoResponse:
    logger.debug("GET /budgets/%d", presupuesto_id)
    return presupuesto_service.get_detalle(db, presupuesto_id)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=PresupuestoResponse,
    status_code=201,
    summary="Crear presupuesto",
    description=(
        "Crea un presupuesto con fases y procedimientos ingresados manualmente. "
        "Calcula el costo total de cada procedimiento, el total de cada fase y "
        "el total general. Si se indica un plan de tratamiento, el plan no puede "
        "tener otro presupuesto."
    ),
    responses={
        201: {"description": "Presupuesto creado."},
        400: {"description": "Datos inválidos o el plan ya tiene presupuesto."},
        **_AUTH_RESPONSES,
        404: {"description": "Plan de tratamiento inexistente."},
    },
)
def create_presupuesto(
    data: PresupuestoCreate,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> PresupuestoResponse:
    """Create a budget from manually entered phases.

    Args:
        data: Validated creation payload from the request body.
        db: Database session.
        _current_user: Authenticated user guard.

    Returns:
        The newly created ``PresupuestoResponse`` (HTTP 201).

    Raises:
        ValidationError: Unknown patient or plan of another patient.
        NotFoundError: Unknown treatment plan.
        BusinessRuleError: The plan already has a budget.
    """
    logger.info(
        "POST /budgets paciente_id=%d fases=%d user=%s",
        data.paciente_id, len(data.fases), _current_user.id,
    )
    presupuesto = presupuesto_service.create_presupuesto(db, data)
    return presupuesto_service.get_detalle(db, presupuesto.id)


@router.post(
    "/from-treatment/{plan_id}",
    response_model=PresupuestoResponse,
    status_code=201,
    summary="Crear presupuesto desde un plan de tratamiento",
    description=(
        "Genera una única fase 'Fase Principal' con un procedimiento de costo "
        "cero por cada actividad del plan. Los costos se completan luego con "
        "PATCH /{id}/fase/0/procedimientos."
    ),
    responses={
        201: {"description": "Presupuesto creado."},
        400: {"description": "El plan ya tiene presupuesto o no tiene actividades."},
        **_AUTH_RESPONSES,
        404: {"description": "Plan de tratamiento inexistente."},
    },
)
def create_from_treatment_plan(
    plan_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> PresupuestoResponse:
    logger.info("POST /budgets/from-treatment/%d user=%s", plan_id, _current_user.id)
    presupuesto = presupuesto_service.create_from_treatment_plan(db, plan_id)
    return presupuesto_service.get_detalle(db, presupuesto.id)


@router.post(
    "/treatment/{plan_id}",
    response_model=PresupuestoResponse,
    status_code=201,
    summary="Crear presupuesto manual para un plan de tratamiento",
    responses={
        201: {"description": "Presupuesto creado."},
        400: {"description": "Datos inválidos o el plan ya tiene presupuesto."},
        **_AUTH_RESPONSES,
        404: {"description": "Plan de tratamiento inexistente."},
    },
)
def create_for_treatment_plan(
    plan_id: int,
    data: PresupuestoPlanCreate,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> PresupuestoResponse:
    logger.info("POST /budgets/treatment/%d user=%s", plan_id, _current_user.id)
    presupuesto = presupuesto_service.create_for_treatment_plan(db, plan_id, data)
    return presupuesto_service.get_detalle(db, presupuesto.id)


# ---------------------------------------------------------------------------
# Edits
# ---------------------------------------------------------------------------


@router.post(
    "/{presupuesto_id}/fase/{fase_index}/procedimiento",
    response_model=PresupuestoResponse,
    status_code=201,
    summary="Agregar un procedimiento a una fase",
    responses={
        400: {"description": "Índice de fase fuera de rango o datos inválidos."},
        **_AUTH_RESPONSES,
        404: {"description": "Presupuesto no encontrado."},
    },
)
def add_procedimiento(
    presupuesto_id: int,
    fase_index: FaseIndex,
    data: ProcedimientoIn,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> PresupuestoResponse:
    logger.info(
        "POST /budgets/%d/fase/%d/procedimiento user=%s",
        presupuesto_id, fase_index, _current_user.id,
    )
    presupuesto_service.add_procedimiento(db, presupuesto_id, fase_index, data)
    return presupuesto_service.get_detalle(db, presupuesto_id)


@router.patch(
    "/{presupuesto_id}/fase/{fase_index}/procedimientos",
    response_model=PresupuestoResponse,
    summary="Reemplazar los procedimientos de una fase",
    description=(
        "Sustituye todos los procedimientos de la fase y recalcula los totales. "
        "Se rechaza si el nuevo total de la fase queda por debajo de lo ya pagado."
    ),
    responses={
        400: {"description": "Índice fuera de rango, lista vacía o total menor a lo pagado."},
        **_AUTH_RESPONSES,
        404: {"description": "Presupuesto no encontrado."},
        409: {"description": "Modificación concurrente."},
    },
)
def replace_procedimientos(
    presupuesto_id: int,
    fase_index: FaseIndex,
    data: ProcedimientosReplace,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> PresupuestoResponse:
    logger.info(
        "PATCH /budgets/%d/fase/%d/procedimientos count=%d user=%s",
        presupuesto_id, fase_index, len(data.procedimientos), _current_user.id,
    )
    presupuesto_service.replace_procedimientos(
        db, presupuesto_id, fase_index, data.procedimientos
    )
    return presupuesto_service.get_detalle(db, presupuesto_id)


@router.put(
    "/{presupuesto_id}",
    response_model=PresupuestoResponse,
    summary="Actualizar presupuesto",
    description=(
        "Reemplaza la especialidad y todas las fases. Los montos pagados de cada "
        "fase se conservan según su índice."
    ),
    responses={
        400: {"description": "Datos inválidos o la edición contradice pagos existentes."},
        **_AUTH_RESPONSES,
        404: {"description": "Presupuesto no encontrado."},
        409: {"description": "Modificación concurrente."},
    },
)
def update_presupuesto(
    presupuesto_id: int,
    data: PresupuestoUpdate,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> PresupuestoResponse:
    logger.info("PUT /budgets/%d user=%s", presupuesto_id, _current_user.id)
    presupuesto_service.update_presupuesto(db, presupuesto_id, data)
    return presupuesto_service.get_detalle(db, presupuesto_id)


@router.delete(
    "/{presupuesto_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Eliminar presupuesto",
    description=(
        "Elimina el presupuesto con sus fases y pagos. Los ingresos registrados "
        "se conservan para los reportes financieros."
    ),
    responses={
        204: {"description": "Presupuesto eliminado."},
        **_AUTH_RESPONSES,
        404: {"description": "Presupuesto no encontrado."},
    },
)
def delete_presupuesto(
    presupuesto_id: int,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> Response:
    logger.info("DELETE /budgets/%d user=%s", presupuesto_id, _current_user.id)
    presupuesto_service.delete_presupuesto(db, presupuesto_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
