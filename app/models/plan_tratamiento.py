"""PlanTratamiento and ActividadPlan models — treatment planning owned elsewhere."""

from sqlalchemy import Column, Date, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.database import Base


class PlanTratamiento(Base):
    """Treatment plan for one patient and specialty.

    A plan can be turned into a budget (at most one budget per plan).

    Attributes:
        id: Primary key.
        paciente_id: Foreign key to Paciente.
        especialidad: Clinical specialty, e.g. "Ortodoncia".
    """

    __tablename__ = "plan_tratamiento"

    id = Column(Integer, primary_key=True, autoincrement=True)
    paciente_id = Column(Integer, ForeignKey("paciente.id"), nullable=False)
    especialidad = Column(String(100), nullable=False)

    # Relationships
    paciente = relationship("Paciente", back_populates="planes_tratamiento", lazy="select")
    actividades = relationship(
        "ActividadPlan",
        back_populates="plan_tratamiento",
        order_by="ActividadPlan.id",
        lazy="select",
        cascade="all, delete-orphan",
    )
    presupuesto = relationship(
        "Presupuesto", back_populates="plan_tratamiento", uselist=False, lazy="select"
    )


class ActividadPlan(Base):
    """One scheduled activity of a treatment plan.

    Attributes:
        id: Primary key.
        plan_tratamiento_id: Foreign key to PlanTratamiento.
        cita: Appointment label, e.g. "Cita 1".
        actividad_plan_trat: Description of the clinical activity.
        fecha_plan_trat: Planned date.
        monto_abono: Deposit agreed for the activity (informational).
        estado: "pendiente", "en-proceso" or "completado".
    """

    __tablename__ = "actividad_plan"

    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_tratamiento_id = Column(
        Integer, ForeignKey("plan_tratamiento.id", ondelete="CASCADE"), nullable=False
    )
    cita = Column(String(100), nullable=False)
    actividad_plan_trat = Column(String(500), nullable=False)
    fecha_plan_trat = Column(Date, nullable=False)
    monto_abono = Column(Numeric(12, 2), default=0, nullable=False)
    estado = Column(String(20), default="pendiente", nullable=False)

    # Relationships
    plan_tratamiento = relationship(
        "PlanTratamiento", back_populates="actividades", lazy="select"
    )
