"""Paciente model — read-only view of the clinic's patient registry."""

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Paciente(Base):
    """Patient record owned by the clinical-records subsystem.

    The billing ledger only checks that a patient exists and links budgets
    and income entries to it.

    Attributes:
        id: Primary key.
        nombre_paciente: Full name.
        numero_cedula: National identity document number.
        created_at: Record creation timestamp.
    """

    __tablename__ = "paciente"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nombre_paciente = Column(String(300), nullable=False)
    numero_cedula = Column(String(20), unique=True, nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    # Relationships
    presupuestos = relationship("Presupuesto", back_populates="paciente", lazy="select")
    planes_tratamiento = relationship(
        "PlanTratamiento", back_populates="paciente", lazy="select"
    )
