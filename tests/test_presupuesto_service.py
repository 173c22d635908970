"""
Tests for the budget service: creation paths, derived totals and edits.
"""

from decimal import Decimal

import pytest

from app.exceptions import BusinessRuleError, NotFoundError, ValidationError
from app.models import PagoFase, PlanTratamiento, Presupuesto, ReporteFinanciero
from app.schemas.pago import PagoCreate
from app.schemas.presupuesto import (
    PresupuestoCreate,
    PresupuestoPlanCreate,
    PresupuestoUpdate,
    ProcedimientoIn,
)
from app.services import pago_service, presupuesto_service
from tests.conftest import fases_con_totales


def _pago(monto, metodo="efectivo"):
    return PagoCreate(descripcion="Abono", monto=Decimal(str(monto)), metodo_pago=metodo)


class TestCreacion:
    """Manual budgets and budgets derived from treatment plans."""

    def test_totales_derivados(self, db, paciente):
        data = PresupuestoCreate(
            paciente_id=paciente.id,
            especialidad="Rehabilitación Oral",
            fases=fases_con_totales(100, 50),
        )
        data.fases[1].procedimientos.append(
            ProcedimientoIn(nombre="Resina", numero_piezas=3, costo_por_unidad=Decimal("12.50"))
        )

        presupuesto = presupuesto_service.create_presupuesto(db, data)

        assert [f.indice for f in presupuesto.fases] == [0, 1]
        assert presupuesto.fases[1].procedimientos[1].costo_total == Decimal("37.50")
        assert presupuesto.fases[0].total == Decimal("100.00")
        assert presupuesto.fases[1].total == Decimal("87.50")
        assert presupuesto.total_general == Decimal("187.50")
        assert presupuesto.total_pagado == Decimal("0.00")
        assert presupuesto.saldo_pendiente_total == Decimal("187.50")
        assert presupuesto.estado_pago_general == "pendiente"
        assert all(f.estado_pago == "pendiente" for f in presupuesto.fases)

    def test_paciente_inexistente(self, db):
        data = PresupuestoCreate(
            paciente_id=999, especialidad="Endodoncia", fases=fases_con_totales(10)
        )
        with pytest.raises(ValidationError):
            presupuesto_service.create_presupuesto(db, data)
        assert db.query(Presupuesto).count() == 0

    def test_un_presupuesto_por_plan(self, db, paciente, plan):
        data = PresupuestoCreate(
            paciente_id=paciente.id,
            especialidad="Ortodoncia",
            fases=fases_con_totales(300),
            plan_tratamiento_id=plan.id,
        )
        presupuesto_service.create_presupuesto(db, data)

        with pytest.raises(BusinessRuleError):
            presupuesto_service.create_presupuesto(db, data)
        with pytest.raises(BusinessRuleError):
            presupuesto_service.create_from_treatment_plan(db, plan.id)
        assert db.query(Presupuesto).count() == 1

    def test_plan_de_otro_paciente(self, db, plan, otro_paciente):
        data = PresupuestoCreate(
            paciente_id=otro_paciente.id,
            especialidad="Ortodoncia",
            fases=fases_con_totales(300),
            plan_tratamiento_id=plan.id,
        )
        with pytest.raises(ValidationError):
            presupuesto_service.create_presupuesto(db, data)

    def test_desde_plan(self, db, paciente, plan):
        presupuesto = presupuesto_service.create_from_treatment_plan(db, plan.id)

        assert presupuesto.paciente_id == paciente.id
        assert presupuesto.plan_tratamiento_id == plan.id
        assert presupuesto.especialidad == "Ortodoncia"
        assert len(presupuesto.fases) == 1
        fase = presupuesto.fases[0]
        assert fase.nombre == "Fase Principal"
        assert [p.nombre for p in fase.procedimientos] == [
            "Estudio de modelos",
            "Brackets superiores",
            "Brackets inferiores",
        ]
        assert all(p.numero_piezas == 1 for p in fase.procedimientos)
        assert all(p.costo_total == Decimal("0.00") for p in fase.procedimientos)
        assert presupuesto.total_general == Decimal("0.00")
        assert presupuesto.estado_pago_general == "pendiente"

    def test_desde_plan_inexistente(self, db):
        with pytest.raises(NotFoundError):
            presupuesto_service.create_from_treatment_plan(db, 4242)

    def test_desde_plan_sin_actividades(self, db, paciente):
        vacio = PlanTratamiento(paciente_id=paciente.id, especialidad="Periodoncia")
        db.add(vacio)
        db.commit()

        with pytest.raises(ValidationError):
            presupuesto_service.create_from_treatment_plan(db, vacio.id)

    def test_para_plan_con_fases_manuales(self, db, plan):
        presupuesto = presupuesto_service.create_for_treatment_plan(
            db, plan.id, PresupuestoPlanCreate(fases=fases_con_totales(120, 80))
        )

        assert presupuesto.especialidad == "Ortodoncia"
        assert presupuesto.paciente_id == plan.paciente_id
        assert presupuesto.total_general == Decimal("200.00")
        assert presupuesto_service.get_by_plan(db, plan.id).id == presupuesto.id


class TestLecturas:
    def test_list_by_paciente_sin_presupuestos(self, db, paciente):
        with pytest.raises(NotFoundError):
            presupuesto_service.list_by_paciente(db, paciente.id)

    def test_list_by_paciente(self, db, paciente, crear_presupuesto):
        crear_presupuesto(10)
        crear_presupuesto(20)

        rows = presupuesto_service.list_by_paciente(db, paciente.id)

        assert len(rows) == 2
        assert rows[0].paciente_nombre == "María Torres"
        assert rows[0].numero_cedula == "0102030405"

    def test_detalle_inexistente(self, db):
        with pytest.raises(NotFoundError):
            presupuesto_service.get_detalle(db, 77)

    def test_get_by_plan_sin_presupuesto(self, db, plan):
        with pytest.raises(NotFoundError):
            presupuesto_service.get_by_plan(db, plan.id)


class TestEdicion:
    """Procedure edits recompute totals and keep what was already paid."""

    def test_add_procedimiento(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)

        presupuesto = presupuesto_service.add_procedimiento(
            db,
            presupuesto.id,
            1,
            ProcedimientoIn(nombre="Sellante", numero_piezas=2, costo_por_unidad=Decimal("15")),
        )

        assert presupuesto.fases[1].total == Decimal("80.00")
        assert presupuesto.total_general == Decimal("180.00")
        assert [p.orden for p in presupuesto.fases[1].procedimientos] == [0, 1]

    def test_indice_de_fase_invalido(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)
        proc = ProcedimientoIn(nombre="X", numero_piezas=1, costo_por_unidad=Decimal("1"))

        with pytest.raises(ValidationError):
            presupuesto_service.add_procedimiento(db, presupuesto.id, 3, proc)
        with pytest.raises(ValidationError):
            presupuesto_service.replace_procedimientos(db, presupuesto.id, -1, [proc])

    def test_presupuesto_inexistente(self, db):
        proc = ProcedimientoIn(nombre="X", numero_piezas=1, costo_por_unidad=Decimal("1"))
        with pytest.raises(NotFoundError):
            presupuesto_service.add_procedimiento(db, 999, 0, proc)

    def test_replace_procedimientos(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)

        presupuesto = presupuesto_service.replace_procedimientos(
            db,
            presupuesto.id,
            0,
            [
                ProcedimientoIn(nombre="Corona", numero_piezas=1, costo_por_unidad=Decimal("250")),
                ProcedimientoIn(nombre="Poste", numero_piezas=2, costo_por_unidad=Decimal("40")),
            ],
        )

        assert [p.nombre for p in presupuesto.fases[0].procedimientos] == ["Corona", "Poste"]
        assert presupuesto.fases[0].total == Decimal("330.00")
        assert presupuesto.total_general == Decimal("380.00")

    def test_replace_conserva_pagado_y_sincroniza_ledger(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(60))

        presupuesto = presupuesto_service.replace_procedimientos(
            db,
            presupuesto.id,
            0,
            [ProcedimientoIn(nombre="Corona", numero_piezas=1, costo_por_unidad=Decimal("200"))],
        )

        fase = presupuesto.fases[0]
        assert fase.total == Decimal("200.00")
        assert fase.total_pagado == Decimal("60.00")
        assert fase.saldo_pendiente == Decimal("140.00")
        assert fase.estado_pago == "parcial"
        assert presupuesto.pagos_fase[0].total_fase == Decimal("200.00")

    def test_replace_por_debajo_de_lo_pagado(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)
        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(60))

        with pytest.raises(BusinessRuleError):
            presupuesto_service.replace_procedimientos(
                db,
                presupuesto.id,
                0,
                [ProcedimientoIn(nombre="Barato", numero_piezas=1, costo_por_unidad=Decimal("50"))],
            )

        presupuesto = db.get(Presupuesto, presupuesto.id)
        assert presupuesto.fases[0].total == Decimal("100.00")
        assert presupuesto.total_pagado == Decimal("60.00")

    def test_update_conserva_pagado_por_fase(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        pago_service.registrar_pago(db, presupuesto.id, 1, _pago(30))

        presupuesto = presupuesto_service.update_presupuesto(
            db,
            presupuesto.id,
            PresupuestoUpdate(especialidad="Prótesis", fases=fases_con_totales(120, 60, 20)),
        )

        assert presupuesto.especialidad == "Prótesis"
        assert [f.total_pagado for f in presupuesto.fases] == [
            Decimal("0.00"), Decimal("30.00"), Decimal("0.00"),
        ]
        assert presupuesto.total_general == Decimal("200.00")
        assert presupuesto.total_pagado == Decimal("30.00")
        assert presupuesto.estado_pago_general == "parcial"

    def test_update_no_elimina_fase_con_pagos(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        pago_service.registrar_pago(db, presupuesto.id, 1, _pago(30))

        with pytest.raises(BusinessRuleError):
            presupuesto_service.update_presupuesto(
                db,
                presupuesto.id,
                PresupuestoUpdate(especialidad="Prótesis", fases=fases_con_totales(150)),
            )

        assert len(db.get(Presupuesto, presupuesto.id).fases) == 2

    def test_add_procedimiento_sincroniza_ledger(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)
        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(60))

        presupuesto = presupuesto_service.add_procedimiento(
            db,
            presupuesto.id,
            0,
            ProcedimientoIn(nombre="Resina", numero_piezas=1, costo_por_unidad=Decimal("25")),
        )

        assert presupuesto.fases[0].total == Decimal("125.00")
        assert presupuesto.fases[0].saldo_pendiente == Decimal("65.00")
        assert presupuesto.pagos_fase[0].total_fase == Decimal("125.00")

    def test_add_procedimiento_revierte_si_ledger_no_sincroniza(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100, 50)
        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(60))
        db.query(PagoFase).filter(PagoFase.presupuesto_id == presupuesto.id).update(
            {"fase_index": 5}
        )
        db.commit()

        with pytest.raises(BusinessRuleError):
            presupuesto_service.add_procedimiento(
                db,
                presupuesto.id,
                1,
                ProcedimientoIn(nombre="Resina", numero_piezas=1, costo_por_unidad=Decimal("25")),
            )

        presupuesto = db.get(Presupuesto, presupuesto.id)
        assert len(presupuesto.fases[1].procedimientos) == 1
        assert presupuesto.fases[1].total == Decimal("50.00")
        assert presupuesto.total_general == Decimal("150.00")


class TestLimitesDeMonto:
    """Line and budget totals must fit the Numeric(12, 2) money columns."""

    def test_linea_excede_maximo(self, db, paciente):
        fases = fases_con_totales(100)
        fases[0].procedimientos[0] = ProcedimientoIn(
            nombre="Implante", numero_piezas=1_000_000_000, costo_por_unidad=Decimal("100")
        )
        data = PresupuestoCreate(paciente_id=paciente.id, especialidad="Implantes", fases=fases)

        with pytest.raises(ValidationError) as exc:
            presupuesto_service.create_presupuesto(db, data)

        assert exc.value.detalles["maximo"] == "9999999999.99"
        assert db.query(Presupuesto).count() == 0

    def test_total_general_excede_maximo(self, db, paciente):
        data = PresupuestoCreate(
            paciente_id=paciente.id,
            especialidad="Implantes",
            fases=fases_con_totales(6_000_000_000, 6_000_000_000),
        )

        with pytest.raises(ValidationError):
            presupuesto_service.create_presupuesto(db, data)
        assert db.query(Presupuesto).count() == 0

    def test_add_procedimiento_excede_maximo(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(9_000_000_000)

        with pytest.raises(ValidationError):
            presupuesto_service.add_procedimiento(
                db,
                presupuesto.id,
                0,
                ProcedimientoIn(
                    nombre="Implante", numero_piezas=1, costo_por_unidad=Decimal("2000000000")
                ),
            )

        presupuesto = db.get(Presupuesto, presupuesto.id)
        assert len(presupuesto.fases[0].procedimientos) == 1
        assert presupuesto.total_general == Decimal("9000000000.00")


class TestEliminacion:
    def test_delete_conserva_ingresos(self, db, crear_presupuesto):
        presupuesto = crear_presupuesto(100)
        pago_service.registrar_pago(db, presupuesto.id, 0, _pago(40))
        presupuesto_id = presupuesto.id

        presupuesto_service.delete_presupuesto(db, presupuesto_id)

        assert db.get(Presupuesto, presupuesto_id) is None
        reportes = db.query(ReporteFinanciero).all()
        assert len(reportes) == 1
        assert reportes[0].presupuesto_id is None
        assert reportes[0].monto == Decimal("40.00")

    def test_delete_inexistente(self, db):
        with pytest.raises(NotFoundError):
            presupuesto_service.delete_presupuesto(db, 31)
