"""Seed demo data: patients, a treatment plan, budgets and payments.

Budgets and payments go through the service layer so that every derived
total, ledger and income entry is consistent from the start.  Tables must
exist already (``alembic upgrade head``).

Usage:
    py seed_data.py
"""

from __future__ import annotations

import sys
import os
from datetime import date
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.database import SessionLocal  # noqa: E402
from app.models import ActividadPlan, Paciente, PlanTratamiento, Presupuesto  # noqa: E402
from app.schemas.pago import PagoCreate  # noqa: E402
from app.schemas.presupuesto import FaseIn, PresupuestoCreate, ProcedimientoIn  # noqa: E402
from app.services import pago_service, presupuesto_service  # noqa: E402


def seed_pacientes(session) -> list[Paciente]:
    if session.query(Paciente).count() > 0:
        print("  [SKIP] Paciente — ya tiene datos.")
        return session.query(Paciente).order_by(Paciente.id).all()

    registros = [
        Paciente(nombre_paciente="María Fernanda Torres", numero_cedula="0102030405"),
        Paciente(nombre_paciente="Luis Alberto Paredes", numero_cedula="0911223344"),
        Paciente(nombre_paciente="Ana Lucía Cabrera", numero_cedula="1717171717"),
    ]
    session.add_all(registros)
    session.commit()
    print(f"  [OK] Paciente — {len(registros)} registros.")
    return registros


def seed_plan(session, paciente: Paciente) -> PlanTratamiento:
    plan = session.query(PlanTratamiento).filter_by(paciente_id=paciente.id).first()
    if plan is not None:
        print("  [SKIP] PlanTratamiento — ya tiene datos.")
        return plan

    plan = PlanTratamiento(
        paciente_id=paciente.id,
        especialidad="Ortodoncia",
        actividades=[
            ActividadPlan(cita="Cita 1", actividad_plan_trat="Estudio de modelos y radiografías",
                          fecha_plan_trat=date(2026, 3, 2), monto_abono=Decimal("50.00")),
            ActividadPlan(cita="Cita 2", actividad_plan_trat="Colocación de brackets superiores",
                          fecha_plan_trat=date(2026, 3, 16), monto_abono=Decimal("300.00")),
            ActividadPlan(cita="Cita 3", actividad_plan_trat="Colocación de brackets inferiores",
                          fecha_plan_trat=date(2026, 3, 30), monto_abono=Decimal("300.00")),
        ],
    )
    session.add(plan)
    session.commit()
    print(f"  [OK] PlanTratamiento — 1 registro ({len(plan.actividades)} actividades).")
    return plan


def seed_presupuestos(session, pacientes: list[Paciente], plan: PlanTratamiento) -> None:
    if session.query(Presupuesto).count() > 0:
        print("  [SKIP] Presupuesto — ya tiene datos.")
        return

    manual = presupuesto_service.create_presupuesto(
        session,
        PresupuestoCreate(
            paciente_id=pacientes[1].id,
            especialidad="Rehabilitación Oral",
            fases=[
                FaseIn(
                    nombre="Fase higiénica",
                    procedimientos=[
                        ProcedimientoIn(nombre="Profilaxis", numero_piezas=1,
                                        costo_por_unidad=Decimal("40.00")),
                        ProcedimientoIn(nombre="Destartraje", numero_piezas=1,
                                        costo_por_unidad=Decimal("60.00")),
                    ],
                ),
                FaseIn(
                    nombre="Fase restauradora",
                    descripcion="Resinas en premolares",
                    procedimientos=[
                        ProcedimientoIn(nombre="Resina compuesta", numero_piezas=4,
                                        costo_por_unidad=Decimal("35.00")),
                    ],
                ),
            ],
        ),
    )
    print(f"  [OK] Presupuesto manual id={manual.id} total={manual.total_general}")

    derivado = presupuesto_service.create_from_treatment_plan(session, plan.id)
    presupuesto_service.replace_procedimientos(
        session,
        derivado.id,
        0,
        [
            ProcedimientoIn(nombre=a.actividad_plan_trat, numero_piezas=1,
                            costo_por_unidad=Decimal("250.00"))
            for a in plan.actividades
        ],
    )
    print(f"  [OK] Presupuesto desde plan id={derivado.id}")

    pago_service.registrar_pago(
        session, manual.id, 0,
        PagoCreate(descripcion="Pago total fase higiénica", monto=Decimal("100.00"),
                   metodo_pago="efectivo"),
    )
    pago_service.registrar_pago(
        session, manual.id, 1,
        PagoCreate(descripcion="Abono resinas", monto=Decimal("70.00"),
                   metodo_pago="tarjeta",
                   comprobante={"numero": "001-000045", "tipo": "recibo"}),
    )
    pago_service.registrar_pago(
        session, derivado.id, 0,
        PagoCreate(descripcion="Abono inicial ortodoncia", monto=Decimal("300.00"),
                   metodo_pago="transferencia"),
    )
    print("  [OK] Pago — 3 registros.")


def main():
    print("=" * 60)
    print("  Seed Demo Clínica (presupuestos y pagos)")
    print("=" * 60)

    session = SessionLocal()
    try:
        print("\n[1/3] Pacientes...")
        pacientes = seed_pacientes(session)

        print("\n[2/3] Plan de tratamiento...")
        plan = seed_plan(session, pacientes[0])

        print("\n[3/3] Presupuestos y pagos...")
        seed_presupuestos(session, pacientes, plan)

        print("\n" + "=" * 60)
        print("  Seed completado!")
        print("=" * 60)

    except Exception as exc:
        session.rollback()
        print(f"\n[ERROR] Seed fallido: {exc}")
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
