"""Presupuesto model — treatment budget, the aggregate root of the ledger."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class Presupuesto(Base):
    """Multi-phase treatment budget for one patient.

    Cached totals (``total_general``, ``total_pagado``,
    ``saldo_pendiente_total``, ``estado_pago_general``) are written only by
    the service layer and always agree with the phases and their ledgers.

    ``version`` is SQLAlchemy's optimistic-concurrency counter: every UPDATE
    checks and bumps it, so two writers that read the same version cannot
    both commit.

    Attributes:
        id: Primary key.
        paciente_id: Foreign key to Paciente.
        plan_tratamiento_id: Optional FK to PlanTratamiento (one budget per plan).
        fecha: Budget date.
        especialidad: Clinical specialty label.
        total_general: Sum of phase totals.
        total_pagado: Sum of phase paid amounts.
        saldo_pendiente_total: total_general - total_pagado.
        estado_pago_general: "pendiente", "parcial" or "completado".
        version: Optimistic lock counter.
        created_at: Record creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "presupuesto"

    id = Column(Integer, primary_key=True, autoincrement=True)
    paciente_id = Column(Integer, ForeignKey("paciente.id"), nullable=False)
    plan_tratamiento_id = Column(
        Integer, ForeignKey("plan_tratamiento.id"), unique=True, nullable=True
    )
    fecha = Column(DateTime, default=func.now(), nullable=False)
    especialidad = Column(String(100), nullable=False)
    total_general = Column(Numeric(12, 2), default=0, nullable=False)
    total_pagado = Column(Numeric(12, 2), default=0, nullable=False)
    saldo_pendiente_total = Column(Numeric(12, 2), default=0, nullable=False)
    estado_pago_general = Column(String(20), default="pendiente", nullable=False)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    paciente = relationship("Paciente", back_populates="presupuestos", lazy="select")
    plan_tratamiento = relationship(
        "PlanTratamiento", back_populates="presupuesto", lazy="select"
    )
    fases = relationship(
        "Fase",
        back_populates="presupuesto",
        order_by="Fase.indice",
        lazy="select",
        cascade="all, delete-orphan",
    )
    pagos_fase = relationship(
        "PagoFase",
        back_populates="presupuesto",
        order_by="PagoFase.fase_index",
        lazy="select",
        cascade="all, delete-orphan",
    )
    # No delete cascade: income entries outlive the budget (FK set to NULL).
    reportes_financieros = relationship(
        "ReporteFinanciero", back_populates="presupuesto", lazy="select"
    )
