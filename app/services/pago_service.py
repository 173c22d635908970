"""
Per-phase payment ledger (PagoFase / Pago) service layer.

All database access for the ``/api/payments`` endpoints lives here.

Design notes
------------
- A payment event touches three records: the ledger entry, the income entry
  in the transaction log and the budget's cached totals.  All three are
  written in one session and committed once; any failure rolls back every
  step, so the cached totals never drift from the ledger.
- The budget row is read with ``SELECT ... FOR UPDATE`` before the phase's
  paid total is computed, which serialises concurrent registrations against
  the same budget.  The ``version`` column adds an optimistic check on top;
  a stale writer gets ``ConflictError``.
- Voiding deletes the income entry through ``Pago.reporte_financiero_id``,
  the reference stored when the payment was registered.
- An optional idempotency key makes a retried registration return the
  existing ledger state instead of adding the amount twice.
- Paid and pending amounts of a ledger are always derived from its
  non-voided entries; they are never stored on ``PagoFase``.
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.exceptions import (
    BusinessRuleError,
    ConflictError,
    ConsistencyFailure,
    LedgerError,
    NotFoundError,
)
from app.models.pago import Pago
from app.models.pago_fase import PagoFase
from app.models.presupuesto import Presupuesto
from app.models.reporte_financiero import ReporteFinanciero
from app.schemas.pago import (
    EliminacionPagosResponse,
    PagoCreate,
    PagoFaseResponse,
    PagoResponse,
    ResumenFase,
    ResumenGeneral,
    ResumenPagosResponse,
)
from app.services import presupuesto_service, reporte_financiero_service
from app.utils.constants import DEC_0
from app.utils.montos import calcular_estado_pago, porcentaje, q2, suma

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _lock_presupuesto(db: Session, presupuesto_id: int) -> Presupuesto:
    """Load the budget row with a row lock, refreshing any cached state."""
    presupuesto: Presupuesto | None = (
        db.query(Presupuesto)
        .filter(Presupuesto.id == presupuesto_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if presupuesto is None:
        raise NotFoundError(f"Presupuesto con ID {presupuesto_id} no encontrado.")
    return presupuesto


def _find_pago_fase(presupuesto: Presupuesto, fase_index: int) -> PagoFase | None:
    return next((pf for pf in presupuesto.pagos_fase if pf.fase_index == fase_index), None)


def _build_pago(row: Pago) -> PagoResponse:
    return PagoResponse(
        id=row.id,
        descripcion=row.descripcion,
        fecha=row.fecha,
        monto=float(row.monto),
        saldo=float(row.saldo),
        metodo_pago=row.metodo_pago,
        comprobante_numero=row.comprobante_numero,
        comprobante_tipo=row.comprobante_tipo,
        anulado=bool(row.anulado),
        fecha_anulacion=row.fecha_anulacion,
        motivo_anulacion=row.motivo_anulacion,
        reporte_financiero_id=row.reporte_financiero_id,
    )


def build_pago_fase_response(row: PagoFase) -> PagoFaseResponse:
    pagado = presupuesto_service.pagado_de_ledger(row)
    total = q2(row.total_fase)
    return PagoFaseResponse(
        id=row.id,
        presupuesto_id=row.presupuesto_id,
        fase_index=row.fase_index,
        nombre_fase=row.nombre_fase,
        total_fase=float(total),
        total_pagado=float(pagado),
        saldo_pendiente=float(q2(total - pagado)),
        estado_pago=calcular_estado_pago(total, pagado),
        pagos=[_build_pago(p) for p in row.pagos],
    )


def _conflicto(db: Session, operacion: str, exc: Exception) -> ConflictError:
    """Roll back after a concurrent writer won a race and build the 409 error."""
    db.rollback()
    logger.warning("%s: concurrent modification detected (%s)", operacion, exc)
    return ConflictError(
        "El presupuesto fue modificado por otra operación. Intente nuevamente."
    )


def _vaciar_ledgers(presupuesto: Presupuesto) -> int:
    """Delete every ledger of the budget and reset its paid amounts.

    Returns:
        Number of ledger entries removed.  Does not commit.
    """
    n_pagos = sum(len(pf.pagos) for pf in presupuesto.pagos_fase)
    presupuesto.pagos_fase.clear()
    for fase in presupuesto.fases:
        fase.total_pagado = DEC_0
    presupuesto_service.recalcular_totales(presupuesto)
    return n_pagos


# ---------------------------------------------------------------------------
# Public service functions: ledger
# ---------------------------------------------------------------------------


def get_or_create_pago_fase(
    db: Session, presupuesto: Presupuesto, fase_index: int
) -> PagoFase:
    """Return the ledger of a phase, creating it from the phase if missing.

    A new ledger takes the phase's current name and total as its snapshot.
    Does not commit.

    Raises:
        NotFoundError: If ``fase_index`` is not a phase of the budget.
    """
    fase = next((f for f in presupuesto.fases if f.indice == fase_index), None)
    if fase is None:
        raise NotFoundError(
            f"La fase {fase_index} no existe en el presupuesto {presupuesto.id}.",
            detalles={"fase_index": fase_index, "total_fases": len(presupuesto.fases)},
        )

    pago_fase = _find_pago_fase(presupuesto, fase_index)
    if pago_fase is None:
        pago_fase = PagoFase(
            fase_index=fase_index,
            nombre_fase=fase.nombre,
            total_fase=q2(fase.total),
        )
        presupuesto.pagos_fase.append(pago_fase)
        db.flush()
        logger.debug(
            "get_or_create_pago_fase: created ledger id=%d presupuesto_id=%d fase=%d",
            pago_fase.id, presupuesto.id, fase_index,
        )
    return pago_fase


def registrar_pago(
    db: Session,
    presupuesto_id: int,
    fase_index: int,
    data: PagoCreate,
    clave_idempotencia: str | None = None,
) -> PagoFase:
    """Register a payment against one budget phase.

    Appends the ledger entry, writes the income entry and adds the amount to
    the budget, all in one transaction.

    Args:
        db: Active SQLAlchemy session.
        presupuesto_id: Budget primary key.
        fase_index: Zero-based phase position.
        data: Validated payment payload.
        clave_idempotencia: Optional client key; a repeated key on the same
            ledger returns the current state without writing anything.

    Returns:
        The phase ledger after the payment.

    Raises:
        NotFoundError: If the budget or the phase does not exist.
        BusinessRuleError: If the amount exceeds the phase's pending balance.
        ConflictError: If a concurrent writer modified the budget first.
        ConsistencyFailure: If the database rejects one of the writes.
    """
    try:
        presupuesto = _lock_presupuesto(db, presupuesto_id)
        pago_fase = get_or_create_pago_fase(db, presupuesto, fase_index)

        if clave_idempotencia:
            repetido = next(
                (p for p in pago_fase.pagos if p.clave_idempotencia == clave_idempotencia),
                None,
            )
            if repetido is not None:
                logger.info(
                    "registrar_pago: idempotent replay presupuesto_id=%d fase=%d pago_id=%d",
                    presupuesto_id, fase_index, repetido.id,
                )
                db.commit()
                return pago_fase

        monto = q2(data.monto)
        total_fase = q2(pago_fase.total_fase)
        pagado = presupuesto_service.pagado_de_ledger(pago_fase)
        if pagado + monto > total_fase:
            saldo = q2(total_fase - pagado)
            logger.warning(
                "registrar_pago: rejected presupuesto_id=%d fase=%d monto=%s saldo=%s",
                presupuesto_id, fase_index, monto, saldo,
            )
            raise BusinessRuleError(
                "El monto excede el saldo pendiente de la fase.",
                detalles={"saldo_pendiente": float(saldo), "monto": float(monto)},
            )

        reporte = reporte_financiero_service.record_from_payment(
            db,
            presupuesto,
            monto,
            data.metodo_pago,
            f"Pago de fase {fase_index + 1}: {data.descripcion}",
        )
        pago = Pago(
            descripcion=data.descripcion,
            fecha=data.fecha or datetime.datetime.now(),
            monto=monto,
            saldo=q2(total_fase - (pagado + monto)),
            metodo_pago=data.metodo_pago,
            comprobante_numero=data.comprobante.numero if data.comprobante else None,
            comprobante_tipo=data.comprobante.tipo if data.comprobante else None,
            anulado=False,
            reporte_financiero_id=reporte.id,
            clave_idempotencia=clave_idempotencia or None,
        )
        pago_fase.pagos.append(pago)
        presupuesto_service.apply_payment_delta(presupuesto, fase_index, monto)
    except LedgerError:
        db.rollback()
        raise
    except (IntegrityError, StaleDataError) as exc:
        raise _conflicto(db, "registrar_pago", exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("registrar_pago: write failed presupuesto_id=%d", presupuesto_id)
        raise ConsistencyFailure("No se pudo registrar el pago.") from exc

    presupuesto_service.confirmar(db, "registrar_pago")
    db.refresh(pago_fase)

    logger.info(
        "registrar_pago: presupuesto_id=%d fase=%d pago_id=%d monto=%s reporte_id=%d",
        presupuesto_id, fase_index, pago.id, monto, reporte.id,
    )
    return pago_fase


def anular_pago(
    db: Session,
    presupuesto_id: int,
    fase_index: int,
    pago_id: int,
    motivo: str,
) -> PagoFase:
    """Void one ledger entry and reverse its effects.

    Flags the entry as voided, deletes its income entry and subtracts the
    amount from the budget in one transaction.  Voiding is one-way.

    Raises:
        NotFoundError: If the budget, the phase ledger or the entry is missing.
        BusinessRuleError: If the entry is already voided.
        ConflictError: If a concurrent writer modified the budget first.
    """
    try:
        presupuesto = _lock_presupuesto(db, presupuesto_id)
        pago_fase = _find_pago_fase(presupuesto, fase_index)
        if pago_fase is None:
            raise NotFoundError("No se encontraron pagos para esta fase.")

        pago = next((p for p in pago_fase.pagos if p.id == pago_id), None)
        if pago is None:
            raise NotFoundError(f"Pago con ID {pago_id} no encontrado en la fase.")
        if pago.anulado:
            logger.warning("anular_pago: pago_id=%d already voided", pago_id)
            raise BusinessRuleError("El pago ya está anulado.")

        pago.anulado = True
        pago.fecha_anulacion = datetime.datetime.now()
        pago.motivo_anulacion = motivo

        reporte_id = pago.reporte_financiero_id
        if reporte_id is not None:
            pago.reporte_financiero_id = None
            db.flush()
            reporte_financiero_service.delete_by_id(db, reporte_id)

        presupuesto_service.apply_payment_delta(presupuesto, fase_index, -q2(pago.monto))
    except LedgerError:
        db.rollback()
        raise
    except (IntegrityError, StaleDataError) as exc:
        raise _conflicto(db, "anular_pago", exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("anular_pago: write failed pago_id=%d", pago_id)
        raise ConsistencyFailure("No se pudo anular el pago.") from exc

    presupuesto_service.confirmar(db, "anular_pago")
    db.refresh(pago_fase)

    logger.info(
        "anular_pago: presupuesto_id=%d fase=%d pago_id=%d monto=%s reporte_id=%s",
        presupuesto_id, fase_index, pago_id, pago.monto, reporte_id,
    )
    return pago_fase


# ---------------------------------------------------------------------------
# Public service functions: summary
# ---------------------------------------------------------------------------


def get_resumen(db: Session, presupuesto_id: int) -> ResumenPagosResponse:
    """Payment summary for every phase defined on the budget.

    Phases without a ledger appear with nothing paid.  Voided entries are
    listed (flagged) but do not count towards the paid amount.

    Raises:
        NotFoundError: If the budget does not exist.
    """
    presupuesto = presupuesto_service._get_presupuesto(db, presupuesto_id)

    fases: list[ResumenFase] = []
    pagados: list[Decimal] = []
    for fase in presupuesto.fases:
        pago_fase = _find_pago_fase(presupuesto, fase.indice)
        pagado = (
            presupuesto_service.pagado_de_ledger(pago_fase) if pago_fase is not None else DEC_0
        )
        total = q2(fase.total)
        pagados.append(pagado)
        fases.append(
            ResumenFase(
                fase_index=fase.indice,
                nombre_fase=fase.nombre,
                total_fase=float(total),
                total_pagado=float(pagado),
                saldo_pendiente=float(q2(total - pagado)),
                estado_pago=calcular_estado_pago(total, pagado),
                pagos=[_build_pago(p) for p in pago_fase.pagos] if pago_fase else [],
            )
        )

    total_presupuesto = q2(presupuesto.total_general)
    total_pagado = suma(pagados)
    logger.debug(
        "get_resumen: presupuesto_id=%d total=%s pagado=%s",
        presupuesto_id, total_presupuesto, total_pagado,
    )
    return ResumenPagosResponse(
        resumen_general=ResumenGeneral(
            total_presupuesto=float(total_presupuesto),
            total_pagado=float(total_pagado),
            saldo_pendiente=float(q2(total_presupuesto - total_pagado)),
            porcentaje_pagado=porcentaje(total_pagado, total_presupuesto),
            estado_pago=calcular_estado_pago(total_presupuesto, total_pagado),
        ),
        fases=fases,
    )


# ---------------------------------------------------------------------------
# Public service functions: bulk deletes
# ---------------------------------------------------------------------------


def delete_pagos_presupuesto(db: Session, presupuesto_id: int) -> EliminacionPagosResponse:
    """Delete the ledgers and income entries of one budget and reset its totals.

    Raises:
        NotFoundError: If the budget does not exist.
    """
    presupuesto = _lock_presupuesto(db, presupuesto_id)
    n_pagos = _vaciar_ledgers(presupuesto)
    db.flush()
    n_reportes = (
        db.query(ReporteFinanciero)
        .filter(ReporteFinanciero.presupuesto_id == presupuesto_id)
        .delete(synchronize_session=False)
    )
    presupuesto_service.confirmar(db, "delete_pagos_presupuesto")

    logger.warning(
        "delete_pagos_presupuesto: presupuesto_id=%d pagos=%d reportes=%d",
        presupuesto_id, n_pagos, n_reportes,
    )
    return EliminacionPagosResponse(
        message="Pagos y reportes financieros eliminados.",
        presupuestos_afectados=1,
        pagos_eliminados=n_pagos,
        reportes_eliminados=n_reportes,
    )


def delete_all(
    db: Session,
    paciente_id: int | None = None,
    usuario_id: str | None = None,
) -> EliminacionPagosResponse:
    """Administrative wipe of ledgers and income entries.

    Scoped to one patient when ``paciente_id`` is given, otherwise applies to
    every budget.  Affected budgets are reset to nothing paid so that their
    cached totals still match the (now empty) ledgers.
    """
    q = db.query(Presupuesto)
    if paciente_id is not None:
        q = q.filter(Presupuesto.paciente_id == paciente_id)
    presupuestos = q.with_for_update().populate_existing().all()

    n_pagos = 0
    afectados = 0
    for presupuesto in presupuestos:
        if presupuesto.pagos_fase or q2(presupuesto.total_pagado) != DEC_0:
            afectados += 1
        n_pagos += _vaciar_ledgers(presupuesto)
    db.flush()

    q_rep = db.query(ReporteFinanciero)
    if paciente_id is not None:
        q_rep = q_rep.filter(ReporteFinanciero.paciente_id == paciente_id)
    n_reportes = q_rep.delete(synchronize_session=False)

    presupuesto_service.confirmar(db, "delete_all")

    logger.warning(
        "delete_all: usuario=%s paciente_id=%s presupuestos=%d pagos=%d reportes=%d",
        usuario_id, paciente_id, afectados, n_pagos, n_reportes,
    )
    return EliminacionPagosResponse(
        message="Pagos y reportes financieros eliminados.",
        presupuestos_afectados=afectados,
        pagos_eliminados=n_pagos,
        reportes_eliminados=n_reportes,
    )
