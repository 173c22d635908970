"""Procedimiento model — one billable line inside a phase."""

from sqlalchemy import Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.database import Base


class Procedimiento(Base):
    """Billable procedure: ``numero_piezas`` units at ``costo_por_unidad`` each.

    Attributes:
        id: Primary key.
        fase_id: Foreign key to Fase.
        orden: Position inside the phase (insertion order).
        nombre: Procedure name.
        numero_piezas: Unit count (teeth, pieces), always > 0.
        costo_por_unidad: Unit cost, never negative.
        costo_total: numero_piezas x costo_por_unidad.
    """

    __tablename__ = "procedimiento"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fase_id = Column(Integer, ForeignKey("fase.id", ondelete="CASCADE"), nullable=False)
    orden = Column(Integer, nullable=False, default=0)
    nombre = Column(String(300), nullable=False)
    numero_piezas = Column(Integer, nullable=False)
    costo_por_unidad = Column(Numeric(12, 2), nullable=False)
    costo_total = Column(Numeric(12, 2), default=0, nullable=False)

    # Relationships
    fase = relationship("Fase", back_populates="procedimientos", lazy="select")
