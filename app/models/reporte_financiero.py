"""ReporteFinanciero model — append-only log of money-in events."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class ReporteFinanciero(Base):
    """Income entry used for monthly, annual and date-range reporting.

    Independent of the phase structure.  Rows written by the payment ledger
    are referenced back from ``Pago.reporte_financiero_id``.

    Attributes:
        id: Primary key.
        presupuesto_id: Budget the income belongs to (NULL once it is deleted).
        paciente_id: Paying patient.
        fecha: Income date (indexed for period queries).
        monto: Amount received.
        metodo_pago: Payment method.
        concepto_pago: Free-text concept.
        created_at: Record creation timestamp.
    """

    __tablename__ = "reporte_financiero"

    id = Column(Integer, primary_key=True, autoincrement=True)
    presupuesto_id = Column(
        Integer, ForeignKey("presupuesto.id", ondelete="SET NULL"), nullable=True
    )
    paciente_id = Column(Integer, ForeignKey("paciente.id"), nullable=False)
    fecha = Column(DateTime, default=func.now(), nullable=False, index=True)
    monto = Column(Numeric(12, 2), nullable=False)
    metodo_pago = Column(String(20), nullable=False)
    concepto_pago = Column(String(500), nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    # Relationships
    presupuesto = relationship(
        "Presupuesto", back_populates="reportes_financieros", lazy="select"
    )
    paciente = relationship("Paciente", lazy="select")
