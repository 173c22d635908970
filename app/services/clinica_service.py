"""
Lookups into the clinic registry (patients and treatment plans).

Patients and treatment plans are owned by the clinical-records side of the
system; the billing ledger only reads them.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.exceptions import NotFoundError
from app.models.paciente import Paciente
from app.models.plan_tratamiento import PlanTratamiento

logger = logging.getLogger(__name__)


def paciente_existe(db: Session, paciente_id: int) -> bool:
    return db.query(Paciente.id).filter(Paciente.id == paciente_id).first() is not None


def get_plan_tratamiento(db: Session, plan_id: int) -> PlanTratamiento:
    """Return the treatment plan with the given ID.

    Raises:
        NotFoundError: If the plan does not exist.
    """
    plan = db.query(PlanTratamiento).filter(PlanTratamiento.id == plan_id).first()
    if plan is None:
        logger.debug("get_plan_tratamiento: id=%d not found", plan_id)
        raise NotFoundError(f"Plan de tratamiento con ID {plan_id} no encontrado.")
    return plan
