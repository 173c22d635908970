"""PagoFase model — payment ledger for one (budget, phase) pair."""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class PagoFase(Base):
    """Ledger of payments for a single budget phase.

    ``nombre_fase`` and ``total_fase`` are a snapshot of the phase taken when
    the ledger is created; the budget service re-syncs them whenever the
    phase's procedures change.  Paid and pending amounts are never stored
    here: they are derived from the non-voided ``pagos``.

    Attributes:
        id: Primary key.
        presupuesto_id: Foreign key to Presupuesto.
        fase_index: Phase position the ledger covers.
        nombre_fase: Phase name snapshot.
        total_fase: Phase total snapshot (upper bound for payments).
        created_at: Record creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "pago_fase"
    __table_args__ = (
        UniqueConstraint("presupuesto_id", "fase_index", name="uq_pago_fase_presupuesto_fase"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    presupuesto_id = Column(
        Integer, ForeignKey("presupuesto.id", ondelete="CASCADE"), nullable=False
    )
    fase_index = Column(Integer, nullable=False)
    nombre_fase = Column(String(200), nullable=False)
    total_fase = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    presupuesto = relationship("Presupuesto", back_populates="pagos_fase", lazy="select")
    pagos = relationship(
        "Pago",
        back_populates="pago_fase",
        order_by="Pago.id",
        lazy="select",
        cascade="all, delete-orphan",
    )
