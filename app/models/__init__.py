"""SQLAlchemy models package for the clinic billing ledger.

Importing all models here ensures that SQLAlchemy's mapper registry is
populated before ``Base.metadata.create_all()`` or Alembic migrations run.
The import order follows the foreign-key dependency graph so that parent
tables are always registered before their children.

Usage from other modules:
    from app.models import Presupuesto, PagoFase
"""

# Clinical registry (owned by other subsystems, read by the ledger)
from app.models.paciente import Paciente  # noqa: F401
from app.models.plan_tratamiento import ActividadPlan, PlanTratamiento  # noqa: F401

# Budget cost structure
from app.models.presupuesto import Presupuesto  # noqa: F401
from app.models.fase import Fase  # noqa: F401
from app.models.procedimiento import Procedimiento  # noqa: F401

# Transaction log
from app.models.reporte_financiero import ReporteFinanciero  # noqa: F401

# Payment ledger
from app.models.pago_fase import PagoFase  # noqa: F401
from app.models.pago import Pago  # noqa: F401

__all__ = [
    "Paciente",
    "PlanTratamiento",
    "ActividadPlan",
    "Presupuesto",
    "Fase",
    "Procedimiento",
    "ReporteFinanciero",
    "PagoFase",
    "Pago",
]
