"""
Transaction log (ReporteFinanciero) service layer.

All database access for the ``/api/financial-reports`` endpoints lives here,
plus the insert/delete hooks called by the payment ledger.

Design notes
------------
- ``record_from_payment`` and ``delete_by_id`` only ``flush``; the ledger
  commits them together with the payment entry and the budget totals.
- Periods are half-open ``[inicio, fin)`` on ``fecha``: a month runs from its
  first day to the first day of the next month; a date range covers whole
  calendar days, both ends included.
- The monthly report groups in Python with ``Decimal`` so that the totals of
  every payment method add up exactly to ``total_mensual``.  The annual
  report aggregates in SQL with ``extract('month', ...)``, which SQLAlchemy
  renders for both PostgreSQL and SQLite.
- Month labels come from a static Spanish list so the output does not depend
  on the database locale.
"""

from __future__ import annotations

import datetime
import logging
from collections import OrderedDict
from decimal import Decimal

from sqlalchemy import extract, func
from sqlalchemy.orm import Session

from app.config import get_settings
from app.exceptions import BusinessRuleError, NotFoundError, ValidationError
from app.exporters.excel_exporter import ExcelExporter
from app.models.pago import Pago
from app.models.presupuesto import Presupuesto
from app.models.reporte_financiero import ReporteFinanciero
from app.schemas.common import PaginationParams
from app.schemas.reporte_financiero import (
    MetodoPagoResumen,
    ReporteAnualItem,
    ReporteAnualResponse,
    ReporteFinancieroCreate,
    ReporteFinancieroResponse,
    ReporteMensualResponse,
    ReporteRangoResponse,
    TablaReportesResponse,
    TransaccionItem,
)
from app.utils.constants import DEC_0
from app.utils.montos import q2, suma

logger = logging.getLogger(__name__)

_MES_LABELS: list[str] = [
    "",
    "Ene", "Feb", "Mar", "Abr", "May", "Jun",
    "Jul", "Ago", "Sep", "Oct", "Nov", "Dic",
]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _limites_mes(mes: int, anio: int) -> tuple[datetime.datetime, datetime.datetime]:
    if mes < 1 or mes > 12:
        raise ValidationError("El mes debe estar entre 1 y 12.", detalles={"mes": mes})
    inicio = datetime.datetime(anio, mes, 1)
    if mes == 12:
        fin = datetime.datetime(anio + 1, 1, 1)
    else:
        fin = datetime.datetime(anio, mes + 1, 1)
    return inicio, fin


def _limites_rango(
    fecha_inicio: datetime.date, fecha_fin: datetime.date
) -> tuple[datetime.datetime, datetime.datetime]:
    if fecha_fin < fecha_inicio:
        raise ValidationError(
            "La fecha de fin no puede ser anterior a la fecha de inicio.",
            detalles={"fechaInicio": fecha_inicio.isoformat(), "fechaFin": fecha_fin.isoformat()},
        )
    inicio = datetime.datetime.combine(fecha_inicio, datetime.time.min)
    fin = datetime.datetime.combine(fecha_fin + datetime.timedelta(days=1), datetime.time.min)
    return inicio, fin


def _build_response(row: ReporteFinanciero) -> ReporteFinancieroResponse:
    return ReporteFinancieroResponse(
        id=row.id,
        presupuesto_id=row.presupuesto_id,
        paciente_id=row.paciente_id,
        paciente_nombre=row.paciente.nombre_paciente if row.paciente is not None else None,
        fecha=row.fecha,
        monto=float(row.monto),
        metodo_pago=row.metodo_pago,
        concepto_pago=row.concepto_pago,
        created_at=row.created_at,
    )


def _rows_en_periodo(
    db: Session, inicio: datetime.datetime, fin: datetime.datetime
) -> list[ReporteFinanciero]:
    return (
        db.query(ReporteFinanciero)
        .filter(ReporteFinanciero.fecha >= inicio, ReporteFinanciero.fecha < fin)
        .order_by(ReporteFinanciero.fecha, ReporteFinanciero.id)
        .all()
    )


# ---------------------------------------------------------------------------
# Ledger hooks (no commit)
# ---------------------------------------------------------------------------


def record_from_payment(
    db: Session,
    presupuesto: Presupuesto,
    monto: Decimal,
    metodo_pago: str,
    concepto_pago: str,
    fecha: datetime.datetime | None = None,
) -> ReporteFinanciero:
    """Insert an income entry for a ledger payment and flush it.

    ``fecha`` defaults to now.  The caller owns the transaction.
    """
    reporte = ReporteFinanciero(
        presupuesto_id=presupuesto.id,
        paciente_id=presupuesto.paciente_id,
        fecha=fecha or datetime.datetime.now(),
        monto=q2(monto),
        metodo_pago=metodo_pago,
        concepto_pago=concepto_pago,
    )
    db.add(reporte)
    db.flush()
    logger.debug(
        "record_from_payment: reporte_id=%d presupuesto_id=%d monto=%s",
        reporte.id, presupuesto.id, reporte.monto,
    )
    return reporte


def delete_by_id(db: Session, reporte_id: int) -> bool:
    """Delete one income entry by primary key; ``False`` if it was already gone."""
    reporte = db.get(ReporteFinanciero, reporte_id)
    if reporte is None:
        logger.warning("delete_by_id: reporte_id=%d not found", reporte_id)
        return False
    db.delete(reporte)
    return True


# ---------------------------------------------------------------------------
# Public service functions: table and manual entries
# ---------------------------------------------------------------------------


def list_reportes(
    db: Session,
    pagination: PaginationParams,
    paciente_id: int | None = None,
) -> TablaReportesResponse:
    """Return a page of income entries, newest first."""
    q = db.query(ReporteFinanciero)
    if paciente_id is not None:
        q = q.filter(ReporteFinanciero.paciente_id == paciente_id)

    total: int = q.count()
    offset = (pagination.page - 1) * pagination.page_size
    rows = (
        q.order_by(ReporteFinanciero.fecha.desc(), ReporteFinanciero.id.desc())
        .offset(offset)
        .limit(pagination.page_size)
        .all()
    )
    logger.debug(
        "list_reportes: total=%d page=%d page_size=%d",
        total, pagination.page, pagination.page_size,
    )
    return TablaReportesResponse(
        rows=[_build_response(r) for r in rows],
        total=total,
        page=pagination.page,
        page_size=pagination.page_size,
    )


def get_detalle(db: Session, reporte_id: int) -> ReporteFinancieroResponse:
    reporte = db.get(ReporteFinanciero, reporte_id)
    if reporte is None:
        raise NotFoundError(f"Reporte financiero con ID {reporte_id} no encontrado.")
    return _build_response(reporte)


def create_reporte(db: Session, data: ReporteFinancieroCreate) -> ReporteFinanciero:
    """Record a manual income entry for a budget's patient.

    Raises:
        NotFoundError: If the budget does not exist.
    """
    presupuesto = db.get(Presupuesto, data.presupuesto_id)
    if presupuesto is None:
        raise NotFoundError(f"Presupuesto con ID {data.presupuesto_id} no encontrado.")

    reporte = ReporteFinanciero(
        presupuesto_id=presupuesto.id,
        paciente_id=presupuesto.paciente_id,
        fecha=datetime.datetime.now(),
        monto=q2(data.monto),
        metodo_pago=data.metodo_pago,
        concepto_pago=data.concepto_pago,
    )
    db.add(reporte)
    db.commit()
    db.refresh(reporte)

    logger.info(
        "create_reporte: id=%d presupuesto_id=%d monto=%s",
        reporte.id, presupuesto.id, reporte.monto,
    )
    return reporte


def delete_reporte(db: Session, reporte_id: int) -> None:
    """Delete one income entry.

    Raises:
        NotFoundError: If the entry does not exist.
        BusinessRuleError: If an active ledger payment still references it;
            the payment has to be voided instead.
    """
    reporte = db.get(ReporteFinanciero, reporte_id)
    if reporte is None:
        raise NotFoundError(f"Reporte financiero con ID {reporte_id} no encontrado.")

    pago = (
        db.query(Pago.id)
        .filter(Pago.reporte_financiero_id == reporte_id, Pago.anulado.is_(False))
        .first()
    )
    if pago is not None:
        logger.warning(
            "delete_reporte: id=%d still referenced by pago id=%d", reporte_id, pago.id
        )
        raise BusinessRuleError(
            "El ingreso pertenece a un pago activo; anule el pago en su lugar.",
            detalles={"pago_id": pago.id},
        )

    db.delete(reporte)
    db.commit()
    logger.info("delete_reporte: id=%d deleted", reporte_id)


# ---------------------------------------------------------------------------
# Public service functions: period reports
# ---------------------------------------------------------------------------


def reporte_mensual(db: Session, mes: int, anio: int) -> ReporteMensualResponse:
    """Income of one calendar month grouped by payment method.

    Raises:
        ValidationError: If ``mes`` is outside 1–12.
    """
    inicio, fin = _limites_mes(mes, anio)
    rows = _rows_en_periodo(db, inicio, fin)

    grupos: "OrderedDict[str, list[ReporteFinanciero]]" = OrderedDict()
    for r in rows:
        grupos.setdefault(r.metodo_pago, []).append(r)

    reporte: list[MetodoPagoResumen] = []
    total_mensual = DEC_0
    for metodo in sorted(grupos):
        items = grupos[metodo]
        subtotal = suma(r.monto for r in items)
        total_mensual += subtotal
        reporte.append(
            MetodoPagoResumen(
                metodo_pago=metodo,
                total_monto=float(subtotal),
                cantidad_transacciones=len(items),
                transacciones=[
                    TransaccionItem(
                        id=r.id,
                        fecha=r.fecha,
                        monto=float(r.monto),
                        paciente_id=r.paciente_id,
                        paciente_nombre=(
                            r.paciente.nombre_paciente if r.paciente is not None else None
                        ),
                        concepto_pago=r.concepto_pago,
                    )
                    for r in items
                ],
            )
        )

    logger.debug(
        "reporte_mensual: %02d/%d rows=%d total=%s", mes, anio, len(rows), total_mensual
    )
    return ReporteMensualResponse(
        reporte=reporte,
        total_mensual=float(q2(total_mensual)),
        mes=mes,
        anio=anio,
    )


def reporte_anual(db: Session, anio: int) -> ReporteAnualResponse:
    """Income of one year grouped by (month, payment method), sorted."""
    inicio = datetime.datetime(anio, 1, 1)
    fin = datetime.datetime(anio + 1, 1, 1)
    mes_col = extract("month", ReporteFinanciero.fecha)

    rows = (
        db.query(
            mes_col.label("mes"),
            ReporteFinanciero.metodo_pago.label("metodo_pago"),
            func.coalesce(func.sum(ReporteFinanciero.monto), 0).label("total_monto"),
            func.count(ReporteFinanciero.id).label("cantidad"),
        )
        .filter(ReporteFinanciero.fecha >= inicio, ReporteFinanciero.fecha < fin)
        .group_by(mes_col, ReporteFinanciero.metodo_pago)
        .order_by(mes_col, ReporteFinanciero.metodo_pago)
        .all()
    )

    items: list[ReporteAnualItem] = []
    totales: list[Decimal] = []
    for row in rows:
        mes = int(row.mes)
        monto = q2(row.total_monto)
        totales.append(monto)
        items.append(
            ReporteAnualItem(
                mes=mes,
                mes_label=_MES_LABELS[mes],
                metodo_pago=row.metodo_pago,
                total_monto=float(monto),
                cantidad_transacciones=int(row.cantidad),
            )
        )

    total_anual = suma(totales)
    logger.debug("reporte_anual: %d groups=%d total=%s", anio, len(items), total_anual)
    return ReporteAnualResponse(reporte=items, total_anual=float(total_anual), anio=anio)


def reporte_rango(
    db: Session, fecha_inicio: datetime.date, fecha_fin: datetime.date
) -> ReporteRangoResponse:
    """Raw income entries between two calendar days (inclusive) with subtotals.

    Raises:
        ValidationError: If ``fecha_fin`` is before ``fecha_inicio``.
    """
    inicio, fin = _limites_rango(fecha_inicio, fecha_fin)
    rows = _rows_en_periodo(db, inicio, fin)

    por_metodo: dict[str, Decimal] = {}
    for r in rows:
        por_metodo[r.metodo_pago] = q2(por_metodo.get(r.metodo_pago, DEC_0) + q2(r.monto))
    total = suma(por_metodo.values())

    logger.debug(
        "reporte_rango: %s..%s rows=%d total=%s", fecha_inicio, fecha_fin, len(rows), total
    )
    return ReporteRangoResponse(
        reports=[_build_response(r) for r in rows],
        total_periodo=float(total),
        resumen_metodos_pago={k: float(v) for k, v in sorted(por_metodo.items())},
        fecha_inicio=fecha_inicio,
        fecha_fin=fecha_fin,
    )


def exportar_rango_excel(
    db: Session, fecha_inicio: datetime.date, fecha_fin: datetime.date
) -> bytes:
    """Build an ``.xlsx`` workbook with the date-range report."""
    settings = get_settings()
    data = reporte_rango(db, fecha_inicio, fecha_fin)
    desde = fecha_inicio.strftime("%d/%m/%Y")
    hasta = fecha_fin.strftime("%d/%m/%Y")

    exporter = ExcelExporter(
        title=f"{settings.APP_NAME} - Ingresos",
        filtros={"Desde": desde, "Hasta": hasta},
        moneda=settings.MONEDA,
    )
    exporter.add_header()
    exporter.add_totales(data.resumen_metodos_pago, total_label="Total del período")
    exporter.add_data_table(
        ["Fecha", "Paciente", "Concepto", "Método de pago", "Monto"],
        [
            [
                r.fecha.strftime("%d/%m/%Y %H:%M"),
                r.paciente_nombre or r.paciente_id,
                r.concepto_pago,
                r.metodo_pago,
                r.monto,
            ]
            for r in data.reports
        ],
        numeric_cols={4},
    )
    file_bytes = exporter.finalize()

    logger.info(
        "exportar_rango_excel: %s..%s rows=%d bytes=%d",
        fecha_inicio, fecha_fin, len(data.reports), len(file_bytes),
    )
    return file_bytes
