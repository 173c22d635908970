"""
Pytest fixtures for the billing ledger tests.

Sections:
    - Database: in-memory SQLite shared through ``StaticPool``
    - API client: ``TestClient`` with ``get_db`` overridden and bearer tokens
    - Clinic data: patients and a treatment plan
    - Budgets: factory for budgets with given phase totals
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from datetime import date  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: E402,F401
from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import ActividadPlan, Paciente, PlanTratamiento  # noqa: E402
from app.schemas.presupuesto import FaseIn, PresupuestoCreate, ProcedimientoIn  # noqa: E402
from app.services import presupuesto_service  # noqa: E402
from app.utils.security import create_access_token  # noqa: E402

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


# ==========================================================================
# Database
# ==========================================================================


@pytest.fixture
def db():
    """Fresh schema and session per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


# ==========================================================================
# API client
# ==========================================================================


@pytest.fixture
def client(db):
    def _override_get_db():
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    token = create_access_token({"sub": "7", "username": "recepcion", "rol": "RECEPCION"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    token = create_access_token({"sub": "1", "username": "admin", "rol": "ADMIN"})
    return {"Authorization": f"Bearer {token}"}


# ==========================================================================
# Clinic data
# ==========================================================================


@pytest.fixture
def paciente(db):
    row = Paciente(nombre_paciente="María Torres", numero_cedula="0102030405")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def otro_paciente(db):
    row = Paciente(nombre_paciente="Luis Paredes", numero_cedula="0911223344")
    db.add(row)
    db.commit()
    return row


@pytest.fixture
def plan(db, paciente):
    """Orthodontics plan with three activities."""
    row = PlanTratamiento(
        paciente_id=paciente.id,
        especialidad="Ortodoncia",
        actividades=[
            ActividadPlan(cita="Cita 1", actividad_plan_trat="Estudio de modelos",
                          fecha_plan_trat=date(2026, 3, 2)),
            ActividadPlan(cita="Cita 2", actividad_plan_trat="Brackets superiores",
                          fecha_plan_trat=date(2026, 3, 16)),
            ActividadPlan(cita="Cita 3", actividad_plan_trat="Brackets inferiores",
                          fecha_plan_trat=date(2026, 3, 30)),
        ],
    )
    db.add(row)
    db.commit()
    return row


# ==========================================================================
# Budgets
# ==========================================================================


def fases_con_totales(*totales):
    """One phase per total, each with a single one-piece procedure."""
    return [
        FaseIn(
            nombre=f"Fase {i + 1}",
            procedimientos=[
                ProcedimientoIn(nombre=f"Procedimiento {i + 1}", numero_piezas=1,
                                costo_por_unidad=Decimal(str(total)))
            ],
        )
        for i, total in enumerate(totales)
    ]


@pytest.fixture
def crear_presupuesto(db, paciente):
    """Factory: ``crear_presupuesto(100, 50)`` creates a two-phase budget."""

    def _crear(*totales, paciente_id=None):
        return presupuesto_service.create_presupuesto(
            db,
            PresupuestoCreate(
                paciente_id=paciente_id or paciente.id,
                especialidad="Rehabilitación Oral",
                fases=fases_con_totales(*totales),
            ),
        )

    return _crear
