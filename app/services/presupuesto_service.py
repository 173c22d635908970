"""
Treatment budget (Presupuesto) service layer.

All database access for the ``/api/budgets`` endpoints lives here, together
with the recomputation hooks used by the payment ledger
(``app/services/pago_service.py``).

Design notes
------------
- ``recalcular_totales`` is the only function that writes derived fields
  (procedure totals, phase totals and balances, budget aggregates and
  statuses).  Every write path ends by calling it, so there is no separate
  "recompute" step to forget.
- ``apply_payment_delta`` never commits; the ledger calls it inside the same
  transaction that writes the payment entry and the income entry.
- Phase edits preserve each phase's paid amount, which is re-derived from the
  ledger entries, and re-sync the ledger's ``nombre_fase``/``total_fase``
  snapshot.  An edit that would leave a phase below what has already been
  paid, or that would drop a phase holding a ledger, is rejected.
- Amounts are ``Decimal`` (``app/utils/montos.py``) inside the service and are
  converted to ``float`` only in ``_build_response``.
"""

from __future__ import annotations

import datetime
import logging
from decimal import Decimal
from typing import Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.exceptions import (
    BusinessRuleError,
    ConflictError,
    ConsistencyFailure,
    NotFoundError,
    ValidationError,
)
from app.models.fase import Fase
from app.models.pago_fase import PagoFase
from app.models.presupuesto import Presupuesto
from app.models.procedimiento import Procedimiento
from app.schemas.presupuesto import (
    FaseIn,
    FaseResponse,
    PresupuestoCreate,
    PresupuestoPlanCreate,
    PresupuestoResponse,
    PresupuestoUpdate,
    ProcedimientoIn,
    ProcedimientoResponse,
)
from app.services import clinica_service
from app.utils.constants import (
    DEC_0,
    ESTADO_PENDIENTE,
    FASE_PRINCIPAL_DESCRIPCION,
    FASE_PRINCIPAL_NOMBRE,
    MONTO_MAXIMO,
)
from app.utils.montos import calcular_estado_pago, q2, suma

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_presupuesto(db: Session, presupuesto_id: int) -> Presupuesto:
    presupuesto: Presupuesto | None = (
        db.query(Presupuesto).filter(Presupuesto.id == presupuesto_id).first()
    )
    if presupuesto is None:
        raise NotFoundError(f"Presupuesto con ID {presupuesto_id} no encontrado.")
    return presupuesto


def _get_fase(presupuesto: Presupuesto, fase_index: int) -> Fase:
    """Return the phase at ``fase_index`` or raise ``ValidationError``."""
    if fase_index < 0 or fase_index >= len(presupuesto.fases):
        raise ValidationError(
            f"Índice de fase inválido: {fase_index}.",
            detalles={"fase_index": fase_index, "total_fases": len(presupuesto.fases)},
        )
    return presupuesto.fases[fase_index]


def _build_procedimiento(data: ProcedimientoIn, orden: int) -> Procedimiento:
    if data.numero_piezas <= 0:
        raise ValidationError("El número de piezas debe ser mayor que cero.")
    if q2(data.costo_por_unidad) < DEC_0:
        raise ValidationError("El costo por unidad no puede ser negativo.")
    costo = q2(data.costo_por_unidad)
    costo_total = q2(costo * data.numero_piezas)
    if costo_total > MONTO_MAXIMO:
        raise ValidationError(
            f"El costo total del procedimiento '{data.nombre}' excede el máximo permitido.",
            detalles={"costo_total": str(costo_total), "maximo": str(MONTO_MAXIMO)},
        )
    return Procedimiento(
        orden=orden,
        nombre=data.nombre,
        numero_piezas=data.numero_piezas,
        costo_por_unidad=costo,
        costo_total=costo_total,
    )


def _validar_total_general(presupuesto: Presupuesto) -> None:
    """Reject a budget whose recomputed total no longer fits a money column."""
    if presupuesto.total_general > MONTO_MAXIMO:
        raise ValidationError(
            "El total del presupuesto excede el máximo permitido.",
            detalles={
                "total_general": str(presupuesto.total_general),
                "maximo": str(MONTO_MAXIMO),
            },
        )


def _build_fases(fases: Iterable[FaseIn]) -> list[Fase]:
    """Turn validated phase payloads into ``Fase`` rows indexed by position.

    Raises:
        ValidationError: If no phase is given or a phase has no procedures.
    """
    result: list[Fase] = []
    for indice, data in enumerate(fases):
        if not data.procedimientos:
            raise ValidationError(
                f"La fase '{data.nombre}' debe tener al menos un procedimiento."
            )
        result.append(
            Fase(
                indice=indice,
                nombre=data.nombre,
                descripcion=data.descripcion,
                procedimientos=[
                    _build_procedimiento(p, orden)
                    for orden, p in enumerate(data.procedimientos)
                ],
                total_pagado=DEC_0,
            )
        )
    if not result:
        raise ValidationError("El presupuesto debe tener al menos una fase.")
    return result


def _ensure_plan_libre(db: Session, plan_id: int) -> None:
    existente = (
        db.query(Presupuesto.id)
        .filter(Presupuesto.plan_tratamiento_id == plan_id)
        .first()
    )
    if existente is not None:
        logger.warning(
            "create: plan_tratamiento_id=%d already has presupuesto id=%d",
            plan_id, existente.id,
        )
        raise BusinessRuleError(
            "Ya existe un presupuesto para este plan de tratamiento.",
            detalles={"presupuesto_id": existente.id},
        )


def pagado_de_ledger(pago_fase: PagoFase) -> Decimal:
    """Sum of the non-voided entries of one phase ledger."""
    return suma(p.monto for p in pago_fase.pagos if not p.anulado)


def pagado_por_fase(presupuesto: Presupuesto) -> dict[int, Decimal]:
    """Ledger-derived paid amount keyed by phase index (only phases with a ledger)."""
    return {pf.fase_index: pagado_de_ledger(pf) for pf in presupuesto.pagos_fase}


def confirmar(db: Session, operacion: str) -> None:
    """Commit the session, translating concurrency failures.

    Raises:
        ConflictError: If another writer bumped the budget version first or a
            unique constraint was hit by a concurrent insert.
    """
    try:
        db.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.rollback()
        logger.warning("%s: concurrent modification detected (%s)", operacion, exc)
        raise ConflictError(
            "El presupuesto fue modificado por otra operación. Intente nuevamente."
        ) from exc


# ---------------------------------------------------------------------------
# Derived fields
# ---------------------------------------------------------------------------


def recalcular_totales(presupuesto: Presupuesto) -> None:
    """Recompute every derived monetary field of ``presupuesto`` in place.

    Procedure line totals, phase totals/balances/statuses and the budget
    aggregates are rewritten from the procedures and the cached per-phase
    paid amounts.  Does not touch the session.
    """
    for fase in presupuesto.fases:
        for proc in fase.procedimientos:
            proc.costo_total = q2(q2(proc.costo_por_unidad) * proc.numero_piezas)
        fase.total = suma(p.costo_total for p in fase.procedimientos)
        fase.total_pagado = q2(fase.total_pagado)
        fase.saldo_pendiente = q2(fase.total - fase.total_pagado)
        fase.estado_pago = calcular_estado_pago(fase.total, fase.total_pagado)

    presupuesto.total_general = suma(f.total for f in presupuesto.fases)
    presupuesto.total_pagado = suma(f.total_pagado for f in presupuesto.fases)
    presupuesto.saldo_pendiente_total = q2(
        presupuesto.total_general - presupuesto.total_pagado
    )
    presupuesto.estado_pago_general = calcular_estado_pago(
        presupuesto.total_general, presupuesto.total_pagado
    )


def _sync_pago_fase_snapshots(presupuesto: Presupuesto) -> None:
    """Re-sync each ledger's phase name/total with the edited phases.

    Raises:
        BusinessRuleError: If a ledger's phase no longer exists or its new
            total is below the amount already paid.
    """
    fases = {f.indice: f for f in presupuesto.fases}
    for pf in presupuesto.pagos_fase:
        fase = fases.get(pf.fase_index)
        if fase is None:
            raise BusinessRuleError(
                f"No se puede eliminar la fase {pf.fase_index + 1}: tiene pagos registrados.",
                detalles={"fase_index": pf.fase_index},
            )
        pagado = pagado_de_ledger(pf)
        if fase.total < pagado:
            raise BusinessRuleError(
                f"El total de la fase {pf.fase_index + 1} ({fase.total}) "
                f"no puede ser menor que lo ya pagado ({pagado}).",
                detalles={
                    "fase_index": pf.fase_index,
                    "total_fase": float(fase.total),
                    "total_pagado": float(pagado),
                },
            )
        pf.nombre_fase = fase.nombre
        pf.total_fase = fase.total


def apply_payment_delta(
    presupuesto: Presupuesto, fase_index: int, monto: Decimal
) -> None:
    """Add a signed amount to a phase's cached paid total and recompute.

    Positive for a new payment, negative for a voided one.  Not idempotent:
    callers invoke it exactly once per payment event, inside the same
    transaction that writes the ledger entry.  Does not commit.

    Raises:
        NotFoundError: If ``fase_index`` is not a phase of the budget.
        ConsistencyFailure: If the result would make the phase's paid
            amount negative.
    """
    fase = next((f for f in presupuesto.fases if f.indice == fase_index), None)
    if fase is None:
        raise NotFoundError(
            f"La fase {fase_index} no existe en el presupuesto {presupuesto.id}."
        )
    nuevo = q2(q2(fase.total_pagado) + q2(monto))
    if nuevo < DEC_0:
        raise ConsistencyFailure(
            f"El total pagado de la fase {fase_index + 1} quedaría negativo.",
            detalles={"fase_index": fase_index, "total_pagado": float(nuevo)},
        )
    fase.total_pagado = nuevo
    recalcular_totales(presupuesto)
    logger.debug(
        "apply_payment_delta: presupuesto_id=%s fase=%d delta=%s pagado=%s",
        presupuesto.id, fase_index, monto, nuevo,
    )


def _build_response(row: Presupuesto) -> PresupuestoResponse:
    """Construct a ``PresupuestoResponse`` from a ``Presupuesto`` ORM object."""
    fases = [
        FaseResponse(
            id=f.id,
            indice=f.indice,
            nombre=f.nombre,
            descripcion=f.descripcion,
            procedimientos=[
                ProcedimientoResponse(
                    id=p.id,
                    nombre=p.nombre,
                    numero_piezas=p.numero_piezas,
                    costo_por_unidad=float(p.costo_por_unidad),
                    costo_total=float(p.costo_total),
                )
                for p in f.procedimientos
            ],
            total=float(f.total),
            total_pagado=float(f.total_pagado),
            saldo_pendiente=float(f.saldo_pendiente),
            estado_pago=f.estado_pago,
        )
        for f in row.fases
    ]
    return PresupuestoResponse(
        id=row.id,
        paciente_id=row.paciente_id,
        paciente_nombre=row.paciente.nombre_paciente if row.paciente is not None else None,
        numero_cedula=row.paciente.numero_cedula if row.paciente is not None else None,
        plan_tratamiento_id=row.plan_tratamiento_id,
        fecha=row.fecha,
        especialidad=row.especialidad,
        fases=fases,
        total_general=float(row.total_general),
        total_pagado=float(row.total_pagado),
        saldo_pendiente_total=float(row.saldo_pendiente_total),
        estado_pago_general=row.estado_pago_general,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


# ---------------------------------------------------------------------------
# Public service functions: reads
# ---------------------------------------------------------------------------


def list_presupuestos(db: Session) -> list[PresupuestoResponse]:
    rows = db.query(Presupuesto).order_by(Presupuesto.fecha.desc(), Presupuesto.id.desc()).all()
    logger.debug("list_presupuestos: %d rows", len(rows))
    return [_build_response(r) for r in rows]


def get_detalle(db: Session, presupuesto_id: int) -> PresupuestoResponse:
    """Return the full detail of a single budget.

    Raises:
        NotFoundError: If no budget with the given ID exists.
    """
    return _build_response(_get_presupuesto(db, presupuesto_id))


def list_by_paciente(db: Session, paciente_id: int) -> list[PresupuestoResponse]:
    """Return every budget of a patient, newest first.

    Raises:
        NotFoundError: If the patient has no budgets.
    """
    rows = (
        db.query(Presupuesto)
        .filter(Presupuesto.paciente_id == paciente_id)
        .order_by(Presupuesto.fecha.desc(), Presupuesto.id.desc())
        .all()
    )
    if not rows:
        raise NotFoundError("No se encontraron presupuestos para este paciente.")
    return [_build_response(r) for r in rows]


def get_by_plan(db: Session, plan_id: int) -> PresupuestoResponse:
    """Return the budget linked to a treatment plan.

    Raises:
        NotFoundError: If no budget references the plan.
    """
    row = (
        db.query(Presupuesto)
        .filter(Presupuesto.plan_tratamiento_id == plan_id)
        .first()
    )
    if row is None:
        raise NotFoundError("No existe un presupuesto para este plan de tratamiento.")
    return _build_response(row)


# ---------------------------------------------------------------------------
# Public service functions: creation
# ---------------------------------------------------------------------------


def _persist_nuevo(db: Session, presupuesto: Presupuesto, operacion: str) -> Presupuesto:
    recalcular_totales(presupuesto)
    _validar_total_general(presupuesto)
    db.add(presupuesto)
    confirmar(db, operacion)
    db.refresh(presupuesto)
    logger.info(
        "%s: created presupuesto id=%d paciente_id=%d total=%s",
        operacion, presupuesto.id, presupuesto.paciente_id, presupuesto.total_general,
    )
    return presupuesto


def create_presupuesto(db: Session, data: PresupuestoCreate) -> Presupuesto:
    """Create a budget from manually entered phases and procedures.

    Args:
        db: Active SQLAlchemy session.
        data: Validated creation payload.

    Returns:
        The newly persisted ``Presupuesto`` with every derived total computed.

    Raises:
        ValidationError: If the patient does not exist, or the plan belongs
            to another patient.
        NotFoundError: If ``plan_tratamiento_id`` does not exist.
        BusinessRuleError: If the plan already has a budget.
    """
    if not clinica_service.paciente_existe(db, data.paciente_id):
        raise ValidationError(f"Paciente con ID {data.paciente_id} no existe.")

    if data.plan_tratamiento_id is not None:
        plan = clinica_service.get_plan_tratamiento(db, data.plan_tratamiento_id)
        if plan.paciente_id != data.paciente_id:
            raise ValidationError(
                "El plan de tratamiento pertenece a otro paciente.",
                detalles={"plan_tratamiento_id": plan.id, "paciente_id": plan.paciente_id},
            )
        _ensure_plan_libre(db, plan.id)

    presupuesto = Presupuesto(
        paciente_id=data.paciente_id,
        plan_tratamiento_id=data.plan_tratamiento_id,
        fecha=datetime.datetime.now(),
        especialidad=data.especialidad,
        fases=_build_fases(data.fases),
        estado_pago_general=ESTADO_PENDIENTE,
    )
    return _persist_nuevo(db, presupuesto, "create_presupuesto")


def create_from_treatment_plan(db: Session, plan_id: int) -> Presupuesto:
    """Derive a budget from a treatment plan's activities.

    Synthesises a single "Fase Principal" holding one zero-cost procedure
    (one piece) per plan activity.  Costs are filled in later through
    ``replace_procedimientos``.

    Raises:
        NotFoundError: If the plan does not exist.
        BusinessRuleError: If the plan already has a budget.
        ValidationError: If the plan has no activities.
    """
    plan = clinica_service.get_plan_tratamiento(db, plan_id)
    _ensure_plan_libre(db, plan.id)

    if not plan.actividades:
        raise ValidationError("El plan de tratamiento no tiene actividades.")

    fase = FaseIn(
        nombre=FASE_PRINCIPAL_NOMBRE,
        descripcion=FASE_PRINCIPAL_DESCRIPCION,
        procedimientos=[
            ProcedimientoIn(
                nombre=a.actividad_plan_trat,
                numero_piezas=1,
                costo_por_unidad=DEC_0,
            )
            for a in plan.actividades
        ],
    )
    presupuesto = Presupuesto(
        paciente_id=plan.paciente_id,
        plan_tratamiento_id=plan.id,
        fecha=datetime.datetime.now(),
        especialidad=plan.especialidad,
        fases=_build_fases([fase]),
        estado_pago_general=ESTADO_PENDIENTE,
    )
    return _persist_nuevo(db, presupuesto, "create_from_treatment_plan")


def create_for_treatment_plan(
    db: Session, plan_id: int, data: PresupuestoPlanCreate
) -> Presupuesto:
    """Create a budget with manual phases for an existing treatment plan.

    The patient is taken from the plan; ``especialidad`` defaults to the
    plan's when omitted.

    Raises:
        NotFoundError: If the plan does not exist.
        BusinessRuleError: If the plan already has a budget.
    """
    plan = clinica_service.get_plan_tratamiento(db, plan_id)
    _ensure_plan_libre(db, plan.id)

    presupuesto = Presupuesto(
        paciente_id=plan.paciente_id,
        plan_tratamiento_id=plan.id,
        fecha=datetime.datetime.now(),
        especialidad=data.especialidad or plan.especialidad,
        fases=_build_fases(data.fases),
        estado_pago_general=ESTADO_PENDIENTE,
    )
    return _persist_nuevo(db, presupuesto, "create_for_treatment_plan")


# ---------------------------------------------------------------------------
# Public service functions: edits
# ---------------------------------------------------------------------------


def add_procedimiento(
    db: Session, presupuesto_id: int, fase_index: int, data: ProcedimientoIn
) -> Presupuesto:
    """Append one procedure to a phase and recompute totals.

    Raises:
        NotFoundError: If the budget does not exist.
        ValidationError: If ``fase_index`` is out of range or the new
            totals exceed the money column range.
        BusinessRuleError: If a ledger snapshot cannot be re-synced.
    """
    presupuesto = _get_presupuesto(db, presupuesto_id)
    fase = _get_fase(presupuesto, fase_index)

    orden = max((p.orden for p in fase.procedimientos), default=-1) + 1
    fase.procedimientos.append(_build_procedimiento(data, orden))

    recalcular_totales(presupuesto)
    try:
        _validar_total_general(presupuesto)
        _sync_pago_fase_snapshots(presupuesto)
    except (BusinessRuleError, ValidationError):
        db.rollback()
        raise
    confirmar(db, "add_procedimiento")
    db.refresh(presupuesto)

    logger.info(
        "add_procedimiento: presupuesto_id=%d fase=%d nombre=%s",
        presupuesto_id, fase_index, data.nombre,
    )
    return presupuesto


def replace_procedimientos(
    db: Session,
    presupuesto_id: int,
    fase_index: int,
    procedimientos: list[ProcedimientoIn],
) -> Presupuesto:
    """Replace every procedure of a phase.

    Raises:
        NotFoundError: If the budget does not exist.
        ValidationError: If ``fase_index`` is out of range or the list is empty.
        BusinessRuleError: If the new phase total is below what was paid.
    """
    presupuesto = _get_presupuesto(db, presupuesto_id)
    fase = _get_fase(presupuesto, fase_index)
    if not procedimientos:
        raise ValidationError("La fase debe tener al menos un procedimiento.")

    nuevos = [_build_procedimiento(p, orden) for orden, p in enumerate(procedimientos)]
    fase.procedimientos = nuevos

    recalcular_totales(presupuesto)
    try:
        _validar_total_general(presupuesto)
        _sync_pago_fase_snapshots(presupuesto)
    except (BusinessRuleError, ValidationError):
        db.rollback()
        raise
    confirmar(db, "replace_procedimientos")
    db.refresh(presupuesto)

    logger.info(
        "replace_procedimientos: presupuesto_id=%d fase=%d count=%d total=%s",
        presupuesto_id, fase_index, len(nuevos), fase.total,
    )
    return presupuesto


def update_presupuesto(
    db: Session, presupuesto_id: int, data: PresupuestoUpdate
) -> Presupuesto:
    """Replace the specialty and the whole phase tree of a budget.

    Paid amounts are carried over per phase index from the ledger entries.

    Raises:
        NotFoundError: If the budget does not exist.
        BusinessRuleError: If a phase with a ledger would disappear or end up
            below its paid amount.
    """
    presupuesto = _get_presupuesto(db, presupuesto_id)
    pagado = pagado_por_fase(presupuesto)

    nuevas = _build_fases(data.fases)
    for fase in nuevas:
        fase.total_pagado = pagado.get(fase.indice, DEC_0)

    presupuesto.especialidad = data.especialidad
    presupuesto.fases = nuevas

    recalcular_totales(presupuesto)
    try:
        _validar_total_general(presupuesto)
        _sync_pago_fase_snapshots(presupuesto)
    except (BusinessRuleError, ValidationError):
        db.rollback()
        raise
    confirmar(db, "update_presupuesto")
    db.refresh(presupuesto)

    logger.info(
        "update_presupuesto: id=%d fases=%d total=%s",
        presupuesto_id, len(nuevas), presupuesto.total_general,
    )
    return presupuesto


def delete_presupuesto(db: Session, presupuesto_id: int) -> None:
    """Delete a budget with its phases and ledgers.

    The deletion is unconditional.  Income entries of the budget are kept
    for reporting with their ``presupuesto_id`` set to NULL.

    Raises:
        NotFoundError: If the budget does not exist.
    """
    presupuesto = _get_presupuesto(db, presupuesto_id)
    n_pagos = sum(len(pf.pagos) for pf in presupuesto.pagos_fase)
    if n_pagos:
        logger.warning(
            "delete_presupuesto: id=%d has %d ledger entries; deleting anyway",
            presupuesto_id, n_pagos,
        )
    db.delete(presupuesto)
    confirmar(db, "delete_presupuesto")
    logger.info("delete_presupuesto: id=%d deleted", presupuesto_id)
