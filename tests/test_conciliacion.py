"""
Tests for drift detection and repair between cached totals and ledgers.
"""

from decimal import Decimal

from app.models import Fase, Pago, Presupuesto, ReporteFinanciero
from app.schemas.pago import PagoCreate
from app.services import conciliacion_service, pago_service


def _registrar(db, presupuesto_id, fase_index, monto):
    return pago_service.registrar_pago(
        db,
        presupuesto_id,
        fase_index,
        PagoCreate(descripcion="Abono", monto=Decimal(str(monto)), metodo_pago="efectivo"),
    )


class TestDeteccion:
    def test_presupuesto_consistente(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        _registrar(db, presupuesto.id, 0, 60)

        reporte = conciliacion_service.detectar_desfase(db, presupuesto.id)

        assert reporte.consistente is True
        assert reporte.fases == []
        assert reporte.pagos_sin_reporte == []
        assert reporte.total_pagado_cache == reporte.total_pagado_ledger == 60.0

    def test_detecta_total_desfasado(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        _registrar(db, presupuesto.id, 0, 60)
        db.query(Fase).filter(Fase.presupuesto_id == presupuesto.id, Fase.indice == 0).update(
            {"total_pagado": Decimal("90.00")}
        )
        db.commit()

        reporte = conciliacion_service.detectar_desfase(db, presupuesto.id)

        assert reporte.consistente is False
        assert len(reporte.fases) == 1
        assert reporte.fases[0].fase_index == 0
        assert reporte.fases[0].total_pagado_cache == 90.0
        assert reporte.fases[0].total_pagado_ledger == 60.0
        assert reporte.fases[0].diferencia == 30.0
        assert reporte.reparado is False


class TestReparacion:
    def test_reescribe_totales_desde_ledger(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        _registrar(db, presupuesto.id, 0, 60)
        db.query(Fase).filter(Fase.presupuesto_id == presupuesto.id, Fase.indice == 0).update(
            {"total_pagado": Decimal("90.00")}
        )
        db.commit()

        reporte = conciliacion_service.conciliar(db, presupuesto.id)

        assert reporte.reparado is True
        presupuesto = db.get(Presupuesto, presupuesto.id)
        assert presupuesto.fases[0].total_pagado == Decimal("60.00")
        assert presupuesto.fases[0].saldo_pendiente == Decimal("40.00")
        assert presupuesto.total_pagado == Decimal("60.00")
        assert conciliacion_service.detectar_desfase(db, presupuesto.id).consistente is True

    def test_recrea_ingreso_faltante(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)
        ledger = _registrar(db, presupuesto.id, 0, 25)
        pago_id = ledger.pagos[0].id
        db.query(ReporteFinanciero).delete()
        db.commit()

        antes = conciliacion_service.detectar_desfase(db, presupuesto.id)
        assert antes.pagos_sin_reporte == [pago_id]

        reporte = conciliacion_service.conciliar(db, presupuesto.id)

        assert reporte.reparado is True
        pago = db.get(Pago, pago_id)
        nuevo = db.get(ReporteFinanciero, pago.reporte_financiero_id)
        assert nuevo is not None
        assert nuevo.monto == Decimal("25.00")
        assert nuevo.fecha == pago.fecha
        assert nuevo.concepto_pago == "Pago de fase 1: Abono"
        assert db.query(ReporteFinanciero).count() == 1

    def test_sin_desfase_no_repara(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)
        _registrar(db, presupuesto.id, 0, 10)

        reporte = conciliacion_service.conciliar(db, presupuesto.id)

        assert reporte.consistente is True
        assert reporte.reparado is False
