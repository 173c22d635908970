"""
Financial reports (transaction log) router.

Mounts under ``/api/financial-reports`` (prefix set in ``main.py``).

Query parameter names keep the clinic front-end's spelling (``año``,
``fechaInicio``, ``fechaFin``) through ``Query(alias=...)``.

Endpoints
---------
GET    /                                  — Paginated income entries.
POST   /                                  — Manual income entry.
DELETE /{id}                              — Delete one entry.
GET    /mensual?mes&año                   — Monthly report by payment method.
GET    /anual?año                         — Annual report by month and method.
GET    /rango?fechaInicio&fechaFin        — Date-range report.
GET    /rango/excel?fechaInicio&fechaFin  — Date-range report as .xlsx.
"""

from __future__ import annotations

import datetime
import io
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.auth import UsuarioToken
from app.schemas.common import PaginationParams
from app.schemas.reporte_financiero import (
    ReporteAnualResponse,
    ReporteFinancieroCreate,
    ReporteFinancieroResponse,
    ReporteMensualResponse,
    ReporteRangoResponse,
    TablaReportesResponse,
)
from app.services import reporte_financiero_service
from app.services.auth_service import get_current_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reportes Financieros"])

_AUTH_RESPONSES = {401: {"description": "Token JWT ausente o inválido."}}

FechaInicio = Annotated[
    datetime.date, Query(alias="fechaInicio", description="Primer día (YYYY-MM-DD).")
]
FechaFin = Annotated[
    datetime.date, Query(alias="fechaFin", description="Último día, incluido (YYYY-MM-DD).")
]


def _pagination_params(
    page: Annotated[int, Query(ge=1, description="Número de página (base 1).")] = 1,
    page_size: Annotated[
        int, Query(ge=1, le=200, description="Registros por página (máx. 200).")
    ] = 50,
) -> PaginationParams:
    return PaginationParams(page=page, page_size=page_size)


# ---------------------------------------------------------------------------
# Table and manual entries
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=TablaReportesResponse,
    summary="Listar ingresos",
    responses=_AUTH_RESPONSES,
)
def list_reportes(
    pagination: Annotated[PaginationParams, Depends(_pagination_params)],
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
    paciente_id: Annotated[int | None, Query(ge=1)] = None,
) -> TablaReportesResponse:
    logger.debug("GET /financial-reports page=%d", pagination.page)
    return reporte_financiero_service.list_reportes(db, pagination, paciente_id)


@router.post(
    "",
    response_model=ReporteFinancieroResponse,
    status_code=201,
    summary="Registrar ingreso manual",
    responses={
        201: {"description": "Ingreso registrado."},
        **_AUTH_RESPONSES,
        404: {"description": "Presupuesto no encontrado."},
    },
)
def create_reporte(
    data: ReporteFinancieroCreate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> ReporteFinancieroResponse:
    logger.info(
        "POST /financial-reports presupuesto_id=%d monto=%s user=%s",
        data.presupuesto_id, data.monto, current_user.id,
    )
    reporte = reporte_financiero_service.create_reporte(db, data)
    return reporte_financiero_service.get_detalle(db, reporte.id)


@router.delete(
    "/{reporte_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Eliminar ingreso",
    description="Los ingresos de pagos activos no se eliminan aquí: se anula el pago.",
    responses={
        204: {"description": "Ingreso eliminado."},
        400: {"description": "El ingreso pertenece a un pago activo."},
        **_AUTH_RESPONSES,
        404: {"description": "Ingreso no encontrado."},
    },
)
def delete_reporte(
    reporte_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> Response:
    logger.info("DELETE /financial-reports/%d user=%s", reporte_id, current_user.id)
    reporte_financiero_service.delete_reporte(db, reporte_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Period reports
# ---------------------------------------------------------------------------


@router.get(
    "/mensual",
    response_model=ReporteMensualResponse,
    summary="Reporte mensual por método de pago",
    responses={400: {"description": "Mes o año inválido."}, **_AUTH_RESPONSES},
)
def reporte_mensual(
    mes: Annotated[int, Query(ge=1, le=12, description="Mes (1-12).")],
    anio: Annotated[int, Query(alias="año", ge=2000, le=2100, description="Año.")],
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> ReporteMensualResponse:
    logger.debug("GET /financial-reports/mensual mes=%d anio=%d", mes, anio)
    return reporte_financiero_service.reporte_mensual(db, mes, anio)


@router.get(
    "/anual",
    response_model=ReporteAnualResponse,
    summary="Reporte anual por mes y método de pago",
    responses={400: {"description": "Año inválido."}, **_AUTH_RESPONSES},
)
def reporte_anual(
    anio: Annotated[int, Query(alias="año", ge=2000, le=2100, description="Año.")],
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> ReporteAnualResponse:
    logger.debug("GET /financial-reports/anual anio=%d", anio)
    return reporte_financiero_service.reporte_anual(db, anio)


@router.get(
    "/rango",
    response_model=ReporteRangoResponse,
    summary="Reporte por rango de fechas",
    description="Incluye ambos días extremos completos.",
    responses={400: {"description": "Fechas inválidas o fin anterior al inicio."}, **_AUTH_RESPONSES},
)
def reporte_rango(
    fecha_inicio: FechaInicio,
    fecha_fin: FechaFin,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> ReporteRangoResponse:
    logger.debug("GET /financial-reports/rango %s..%s", fecha_inicio, fecha_fin)
    return reporte_financiero_service.reporte_rango(db, fecha_inicio, fecha_fin)


@router.get(
    "/rango/excel",
    summary="Exportar reporte por rango a Excel (.xlsx)",
    response_class=StreamingResponse,
    responses={
        200: {
            "description": "Archivo Excel generado.",
            "content": {
                "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": {}
            },
        },
        400: {"description": "Fechas inválidas o fin anterior al inicio."},
        **_AUTH_RESPONSES,
    },
)
def exportar_rango_excel(
    fecha_inicio: FechaInicio,
    fecha_fin: FechaFin,
    db: Annotated[Session, Depends(get_db)],
    _current_user: Annotated[UsuarioToken, Depends(get_current_user)],
) -> StreamingResponse:
    logger.info("GET /financial-reports/rango/excel %s..%s", fecha_inicio, fecha_fin)
    file_bytes = reporte_financiero_service.exportar_rango_excel(db, fecha_inicio, fecha_fin)

    filename = f"ingresos_{fecha_inicio:%Y%m%d}_{fecha_fin:%Y%m%d}.xlsx"
    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Content-Length": str(len(file_bytes)),
    }
    return StreamingResponse(
        io.BytesIO(file_bytes),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers=headers,
    )
