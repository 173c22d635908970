"""Fase model — billable stage of a budget."""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from app.database import Base


class Fase(Base):
    """Phase of a treatment budget, identified by its position ``indice``.

    Attributes:
        id: Primary key.
        presupuesto_id: Foreign key to Presupuesto.
        indice: Zero-based position inside the budget.
        nombre: Phase name.
        descripcion: Optional free-text description.
        total: Sum of procedure totals.
        total_pagado: Sum of non-voided payments in the phase ledger.
        saldo_pendiente: total - total_pagado.
        estado_pago: "pendiente", "parcial" or "completado".
    """

    __tablename__ = "fase"

    id = Column(Integer, primary_key=True, autoincrement=True)
    presupuesto_id = Column(
        Integer, ForeignKey("presupuesto.id", ondelete="CASCADE"), nullable=False, index=True
    )
    indice = Column(Integer, nullable=False)
    nombre = Column(String(200), nullable=False)
    descripcion = Column(Text, nullable=True)
    total = Column(Numeric(12, 2), default=0, nullable=False)
    total_pagado = Column(Numeric(12, 2), default=0, nullable=False)
    saldo_pendiente = Column(Numeric(12, 2), default=0, nullable=False)
    estado_pago = Column(String(20), default="pendiente", nullable=False)

    # Relationships
    presupuesto = relationship("Presupuesto", back_populates="fases", lazy="select")
    procedimientos = relationship(
        "Procedimiento",
        back_populates="fase",
        order_by="Procedimiento.orden",
        lazy="select",
        cascade="all, delete-orphan",
    )
