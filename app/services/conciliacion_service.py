"""
Reconciliation between a budget's cached totals and its payment ledgers.

The ledger entries are the source of truth: ``detectar_desfase`` compares
them with the paid amounts cached on ``Fase``/``Presupuesto``, and
``conciliar`` rewrites the cached fields (and re-creates missing income
entries) so that both agree again.

Design notes
------------
- Payment and void commit all their writes together, so drift only appears
  after manual database edits or data loaded from older systems.
- ``conciliar`` takes the same row lock as the payment ledger.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.pago import Pago
from app.models.presupuesto import Presupuesto
from app.schemas.pago import ConciliacionFase, ConciliacionResponse
from app.services import pago_service, presupuesto_service, reporte_financiero_service
from app.utils.constants import DEC_0
from app.utils.montos import q2, suma

logger = logging.getLogger(__name__)


def _pagos_sin_reporte(presupuesto: Presupuesto) -> list[tuple[int, Pago]]:
    """Active ledger entries whose income entry is missing, with their phase index."""
    faltantes: list[tuple[int, Pago]] = []
    for pf in presupuesto.pagos_fase:
        for pago in pf.pagos:
            if not pago.anulado and pago.reporte_financiero is None:
                faltantes.append((pf.fase_index, pago))
    return faltantes


def _comparar(presupuesto: Presupuesto) -> tuple[list[ConciliacionFase], dict[int, Decimal]]:
    ledger = presupuesto_service.pagado_por_fase(presupuesto)
    diferencias: list[ConciliacionFase] = []
    indices = sorted({f.indice for f in presupuesto.fases} | set(ledger))
    cache = {f.indice: q2(f.total_pagado) for f in presupuesto.fases}
    for indice in indices:
        en_cache = cache.get(indice, DEC_0)
        en_ledger = ledger.get(indice, DEC_0)
        if en_cache != en_ledger:
            diferencias.append(
                ConciliacionFase(
                    fase_index=indice,
                    total_pagado_cache=float(en_cache),
                    total_pagado_ledger=float(en_ledger),
                    diferencia=float(q2(en_cache - en_ledger)),
                )
            )
    return diferencias, ledger


def _build_reporte(presupuesto: Presupuesto) -> ConciliacionResponse:
    diferencias, ledger = _comparar(presupuesto)
    sin_reporte = _pagos_sin_reporte(presupuesto)
    total_cache = q2(presupuesto.total_pagado)
    total_ledger = suma(ledger.values())
    return ConciliacionResponse(
        presupuesto_id=presupuesto.id,
        consistente=not diferencias and not sin_reporte and total_cache == total_ledger,
        total_pagado_cache=float(total_cache),
        total_pagado_ledger=float(total_ledger),
        fases=diferencias,
        pagos_sin_reporte=[p.id for _, p in sin_reporte],
    )


def detectar_desfase(db: Session, presupuesto_id: int) -> ConciliacionResponse:
    """Report drift between cached paid amounts and the ledger, without writing.

    Raises:
        NotFoundError: If the budget does not exist.
    """
    presupuesto = presupuesto_service._get_presupuesto(db, presupuesto_id)
    reporte = _build_reporte(presupuesto)
    logger.debug(
        "detectar_desfase: presupuesto_id=%d consistente=%s", presupuesto_id, reporte.consistente
    )
    return reporte


def conciliar(db: Session, presupuesto_id: int) -> ConciliacionResponse:
    """Rewrite the budget's cached paid amounts from the ledger.

    Also re-creates the income entry of every active payment that lost it.

    Returns:
        The drift found before the repair, with ``reparado`` set when
        anything was rewritten.

    Raises:
        NotFoundError: If the budget does not exist.
        ConflictError: If a concurrent writer modified the budget first.
    """
    presupuesto = pago_service._lock_presupuesto(db, presupuesto_id)
    reporte = _build_reporte(presupuesto)
    if reporte.consistente:
        db.commit()
        return reporte

    ledger = presupuesto_service.pagado_por_fase(presupuesto)
    for fase in presupuesto.fases:
        fase.total_pagado = ledger.get(fase.indice, DEC_0)
    presupuesto_service.recalcular_totales(presupuesto)

    for fase_index, pago in _pagos_sin_reporte(presupuesto):
        nuevo = reporte_financiero_service.record_from_payment(
            db,
            presupuesto,
            pago.monto,
            pago.metodo_pago,
            f"Pago de fase {fase_index + 1}: {pago.descripcion}",
            fecha=pago.fecha,
        )
        pago.reporte_financiero_id = nuevo.id

    presupuesto_service.confirmar(db, "conciliar")

    logger.warning(
        "conciliar: presupuesto_id=%d fases=%d pagos_sin_reporte=%d repaired",
        presupuesto_id, len(reporte.fases), len(reporte.pagos_sin_reporte),
    )
    return reporte.model_copy(update={"reparado": True})
