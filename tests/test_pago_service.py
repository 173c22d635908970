"""
Tests for the per-phase payment ledger.

Every payment event must leave the ledger, the transaction log and the
budget's cached totals in agreement, or leave all three untouched.
"""

from decimal import Decimal

import pytest

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.database import Base
from app.exceptions import BusinessRuleError, ConflictError, ConsistencyFailure, NotFoundError
from app.models import Paciente, Pago, PagoFase, Presupuesto, ReporteFinanciero
from app.schemas.pago import PagoCreate
from app.schemas.presupuesto import PresupuestoCreate
from app.services import pago_service, presupuesto_service
from tests.conftest import fases_con_totales


def _pago(monto, metodo="efectivo", descripcion="Abono", **extra):
    return PagoCreate(
        descripcion=descripcion, monto=Decimal(str(monto)), metodo_pago=metodo, **extra
    )


def _snapshot(db, presupuesto_id):
    presupuesto = db.get(Presupuesto, presupuesto_id)
    return (
        presupuesto.total_pagado,
        presupuesto.saldo_pendiente_total,
        presupuesto.estado_pago_general,
        [(f.total_pagado, f.estado_pago) for f in presupuesto.fases],
        db.query(Pago).count(),
        db.query(ReporteFinanciero).count(),
    )


class TestRegistrarYAnular:
    """Register/void sequence on a two-phase budget (100 + 50)."""

    def test_secuencia_completa(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        pid = presupuesto.id

        ledger = pago_service.registrar_pago(db, pid, 0, _pago(60))
        primero = ledger.pagos[0]
        assert primero.saldo == Decimal("40.00")
        assert primero.reporte_financiero_id is not None

        presupuesto = db.get(Presupuesto, pid)
        assert presupuesto.fases[0].total_pagado == Decimal("60.00")
        assert presupuesto.fases[0].estado_pago == "parcial"
        assert presupuesto.total_pagado == Decimal("60.00")
        assert presupuesto.saldo_pendiente_total == Decimal("90.00")
        assert presupuesto.estado_pago_general == "parcial"

        with pytest.raises(BusinessRuleError) as exc_info:
            pago_service.registrar_pago(db, pid, 0, _pago(50))
        assert exc_info.value.detalles["saldo_pendiente"] == 40.0

        ledger = pago_service.registrar_pago(db, pid, 0, _pago(40, metodo="tarjeta"))
        assert [p.saldo for p in ledger.pagos] == [Decimal("40.00"), Decimal("0.00")]
        presupuesto = db.get(Presupuesto, pid)
        assert presupuesto.fases[0].estado_pago == "completado"
        assert presupuesto.fases[0].saldo_pendiente == Decimal("0.00")
        assert db.query(ReporteFinanciero).count() == 2

        ledger = pago_service.anular_pago(db, pid, 0, primero.id, "Error de digitación")
        anulado = next(p for p in ledger.pagos if p.id == primero.id)
        assert anulado.anulado is True
        assert anulado.motivo_anulacion == "Error de digitación"
        assert anulado.fecha_anulacion is not None
        assert anulado.reporte_financiero_id is None

        presupuesto = db.get(Presupuesto, pid)
        assert presupuesto.fases[0].total_pagado == Decimal("40.00")
        assert presupuesto.fases[0].estado_pago == "parcial"
        assert presupuesto.total_pagado == Decimal("40.00")
        assert presupuesto.saldo_pendiente_total == Decimal("110.00")

        reportes = db.query(ReporteFinanciero).all()
        assert len(reportes) == 1
        assert reportes[0].monto == Decimal("40.00")
        assert reportes[0].metodo_pago == "tarjeta"

    def test_exceso_no_modifica_nada(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)
        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(70))
        antes = _snapshot(db, presupuesto.id)

        with pytest.raises(BusinessRuleError):
            pago_service.registrar_pago(db, presupuesto.id, 0, _pago("30.01"))

        assert _snapshot(db, presupuesto.id) == antes

    def test_exceso_en_fase_sin_ledger_no_crea_ledger(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)

        with pytest.raises(BusinessRuleError):
            pago_service.registrar_pago(db, presupuesto.id, 1, _pago(51))

        assert db.query(PagoFase).count() == 0

    def test_pago_exacto_completa_fase(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)

        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(100))
        pago_service.registrar_pago(db, presupuesto.id, 1, _pago(50))

        presupuesto = db.get(Presupuesto, presupuesto.id)
        assert [f.estado_pago for f in presupuesto.fases] == ["completado", "completado"]
        assert presupuesto.estado_pago_general == "completado"
        assert presupuesto.saldo_pendiente_total == Decimal("0.00")

    def test_concepto_y_comprobante(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)

        ledger = pago_service.registrar_pago(
            db,
            presupuesto.id,
            1,
            _pago(20, metodo="transferencia", descripcion="Resinas",
                  comprobante={"numero": "001-000045", "tipo": "factura"}),
        )

        pago = ledger.pagos[0]
        assert pago.comprobante_numero == "001-000045"
        assert pago.comprobante_tipo == "factura"
        assert ledger.nombre_fase == "Fase 2"
        assert ledger.total_fase == Decimal("50.00")
        reporte = db.get(ReporteFinanciero, pago.reporte_financiero_id)
        assert reporte.concepto_pago == "Pago de fase 2: Resinas"
        assert reporte.paciente_id == presupuesto.paciente_id
        assert reporte.metodo_pago == "transferencia"

    def test_anular_dos_veces(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)
        ledger = pago_service.registrar_pago(db, presupuesto.id, 0, _pago(30))
        pago_id = ledger.pagos[0].id
        pago_service.anular_pago(db, presupuesto.id, 0, pago_id, "Duplicado")

        with pytest.raises(BusinessRuleError):
            pago_service.anular_pago(db, presupuesto.id, 0, pago_id, "Otra vez")

        assert db.get(Presupuesto, presupuesto.id).total_pagado == Decimal("0.00")

    def test_anular_sin_ledger_o_pago(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(30))

        with pytest.raises(NotFoundError):
            pago_service.anular_pago(db, presupuesto.id, 1, 1, "Sin ledger")
        with pytest.raises(NotFoundError):
            pago_service.anular_pago(db, presupuesto.id, 0, 999, "Sin pago")

    def test_presupuesto_o_fase_inexistente(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)

        with pytest.raises(NotFoundError):
            pago_service.registrar_pago(db, 999, 0, _pago(10))
        with pytest.raises(NotFoundError):
            pago_service.registrar_pago(db, presupuesto.id, 5, _pago(10))


class TestIdempotencia:
    def test_reintento_con_misma_clave(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)

        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(25), clave_idempotencia="k-1")
        ledger = pago_service.registrar_pago(
            db, presupuesto.id, 0, _pago(25), clave_idempotencia="k-1"
        )

        assert len(ledger.pagos) == 1
        assert db.query(ReporteFinanciero).count() == 1
        assert db.get(Presupuesto, presupuesto.id).total_pagado == Decimal("25.00")

    def test_claves_distintas(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)

        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(25), clave_idempotencia="k-1")
        ledger = pago_service.registrar_pago(
            db, presupuesto.id, 0, _pago(25), clave_idempotencia="k-2"
        )

        assert len(ledger.pagos) == 2
        assert db.get(Presupuesto, presupuesto.id).total_pagado == Decimal("50.00")


class TestResumen:
    def test_resumen_incluye_todas_las_fases(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        ledger = pago_service.registrar_pago(db, presupuesto.id, 0, _pago(60))
        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(15))
        pago_service.anular_pago(db, presupuesto.id, 0, ledger.pagos[0].id, "Error")

        resumen = pago_service.get_resumen(db, presupuesto.id)

        assert resumen.resumen_general.total_presupuesto == 150.0
        assert resumen.resumen_general.total_pagado == 15.0
        assert resumen.resumen_general.saldo_pendiente == 135.0
        assert resumen.resumen_general.porcentaje_pagado == 10.0
        assert resumen.resumen_general.estado_pago == "parcial"
        assert [f.fase_index for f in resumen.fases] == [0, 1]
        assert [p.anulado for p in resumen.fases[0].pagos] == [True, False]
        assert resumen.fases[1].pagos == []
        assert resumen.fases[1].estado_pago == "pendiente"

    def test_resumen_con_total_cero(self, db, plan):
        presupuesto = presupuesto_service.create_from_treatment_plan(db, plan.id)

        resumen = pago_service.get_resumen(db, presupuesto.id)

        assert resumen.resumen_general.total_presupuesto == 0.0
        assert resumen.resumen_general.porcentaje_pagado == 0.0
        assert resumen.resumen_general.estado_pago == "pendiente"

    def test_resumen_inexistente(self, db):
        with pytest.raises(NotFoundError):
            pago_service.get_resumen(db, 404)


class TestEliminacionMasiva:
    def test_delete_pagos_presupuesto(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        otro = crear_presupuesto(80)
        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(60))
        pago_service.registrar_pago(db, presupuesto.id, 1, _pago(10))
        pago_service.registrar_pago(db, otro.id, 0, _pago(5))

        resultado = pago_service.delete_pagos_presupuesto(db, presupuesto.id)

        assert resultado.pagos_eliminados == 2
        assert resultado.reportes_eliminados == 2
        presupuesto = db.get(Presupuesto, presupuesto.id)
        assert presupuesto.total_pagado == Decimal("0.00")
        assert presupuesto.estado_pago_general == "pendiente"
        assert all(f.total_pagado == Decimal("0.00") for f in presupuesto.fases)
        assert presupuesto.pagos_fase == []
        assert db.query(ReporteFinanciero).count() == 1
        assert db.get(Presupuesto, otro.id).total_pagado == Decimal("5.00")

    def test_delete_all_por_paciente(self, db, crear_presupuesto, otro_paciente):
        propio = crear_presupuesto(100)
        ajeno = crear_presupuesto(100, paciente_id=otro_paciente.id)
        pago_service.registrar_pago(db, propio.id, 0, _pago(20))
        pago_service.registrar_pago(db, ajeno.id, 0, _pago(30))

        resultado = pago_service.delete_all(db, paciente_id=propio.paciente_id, usuario_id="1")

        assert resultado.presupuestos_afectados == 1
        assert resultado.pagos_eliminados == 1
        assert resultado.reportes_eliminados == 1
        assert db.get(Presupuesto, propio.id).total_pagado == Decimal("0.00")
        assert db.get(Presupuesto, ajeno.id).total_pagado == Decimal("30.00")
        restantes = db.query(ReporteFinanciero).all()
        assert [r.paciente_id for r in restantes] == [otro_paciente.id]

    def test_delete_all_global(self, db, crear_presupuesto, otro_paciente):
        propio = crear_presupuesto(100)
        ajeno = crear_presupuesto(100, paciente_id=otro_paciente.id)
        crear_presupuesto(10)
        pago_service.registrar_pago(db, propio.id, 0, _pago(20))
        pago_service.registrar_pago(db, ajeno.id, 0, _pago(30))

        resultado = pago_service.delete_all(db)

        assert resultado.presupuestos_afectados == 2
        assert resultado.pagos_eliminados == 2
        assert db.query(ReporteFinanciero).count() == 0
        assert db.query(Pago).count() == 0
        assert all(
            p.total_pagado == Decimal("0.00") for p in db.query(Presupuesto).all()
        )


# ==========================================================================
# Concurrent writers
# ==========================================================================


@pytest.fixture
def sesiones(tmp_path):
    """Session factory over a file-backed database shared by several connections."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    abiertas = []

    def _abrir():
        session = factory()
        abiertas.append(session)
        return session

    yield _abrir

    for session in abiertas:
        session.close()
    engine.dispose()


@pytest.fixture
def presupuesto_compartido(sesiones):
    """Id of a one-phase budget (100) committed to the shared database."""
    session = sesiones()
    row = Paciente(nombre_paciente="María Torres", numero_cedula="0102030405")
    session.add(row)
    session.commit()
    presupuesto = presupuesto_service.create_presupuesto(
        session,
        PresupuestoCreate(
            paciente_id=row.id,
            especialidad="Rehabilitación Oral",
            fases=fases_con_totales(100),
        ),
    )
    return presupuesto.id


class TestConcurrencia:
    """Two sessions racing on the same budget."""

    def test_version_desfasada_es_conflicto(self, sesiones, presupuesto_compartido):
        primera, segunda = sesiones(), sesiones()
        a = primera.get(Presupuesto, presupuesto_compartido)
        b = segunda.get(Presupuesto, presupuesto_compartido)

        a.especialidad = "Prótesis"
        presupuesto_service.confirmar(primera, "editar")
        b.especialidad = "Endodoncia"

        with pytest.raises(ConflictError):
            presupuesto_service.confirmar(segunda, "editar")

        verificacion = sesiones()
        assert verificacion.get(Presupuesto, presupuesto_compartido).especialidad == "Prótesis"

    def test_primer_pago_simultaneo(self, sesiones, presupuesto_compartido):
        primera, segunda = sesiones(), sesiones()

        def _gana_la_primera(session, flush_context, instances):
            pago_service.registrar_pago(primera, presupuesto_compartido, 0, _pago(60))

        event.listen(segunda, "before_flush", _gana_la_primera, once=True)

        with pytest.raises(ConflictError):
            pago_service.registrar_pago(segunda, presupuesto_compartido, 0, _pago(60))

        verificacion = sesiones()
        presupuesto = verificacion.get(Presupuesto, presupuesto_compartido)
        assert presupuesto.total_pagado == Decimal("60.00")
        assert presupuesto.fases[0].total_pagado == Decimal("60.00")
        assert verificacion.query(PagoFase).count() == 1
        assert verificacion.query(Pago).count() == 1
        assert verificacion.query(ReporteFinanciero).count() == 1

        ledger = pago_service.registrar_pago(segunda, presupuesto_compartido, 0, _pago(40))
        assert [p.saldo for p in ledger.pagos] == [Decimal("40.00"), Decimal("0.00")]


class TestFallosDeEscritura:
    """A rejected write leaves ledger, transaction log and totals untouched."""

    def test_error_de_base_de_datos_revierte_todo(self, db, crear_presupuesto, monkeypatch):
        presupuesto = crear_presupuesto(100, 50)
        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(20))
        antes = _snapshot(db, presupuesto.id)

        def _falla(*args, **kwargs):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(presupuesto_service, "apply_payment_delta", _falla)

        with pytest.raises(ConsistencyFailure):
            pago_service.registrar_pago(db, presupuesto.id, 1, _pago(10))
        with pytest.raises(ConsistencyFailure):
            pago_service.anular_pago(
                db, presupuesto.id, 0, db.query(Pago).one().id, "Error de digitación"
            )

        assert _snapshot(db, presupuesto.id) == antes
        assert db.query(PagoFase).count() == 1
        assert db.query(Pago).filter(Pago.anulado.is_(True)).count() == 0

    def test_restriccion_unica_es_conflicto(self, db, crear_presupuesto, monkeypatch):
        presupuesto = crear_presupuesto(100)
        antes = _snapshot(db, presupuesto.id)

        def _duplicado(*args, **kwargs):
            raise IntegrityError("INSERT INTO pagos_fase", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(presupuesto_service, "apply_payment_delta", _duplicado)

        with pytest.raises(ConflictError):
            pago_service.registrar_pago(db, presupuesto.id, 0, _pago(10))

        assert _snapshot(db, presupuesto.id) == antes
        assert db.query(PagoFase).count() == 0
