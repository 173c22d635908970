"""Pago model — one payment entry in a phase ledger."""

from sqlalchemy import (
    Boolean,
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


class Pago(Base):
    """Payment entry.  Immutable once written except for the one-way void.

    Attributes:
        id: Primary key.
        pago_fase_id: Foreign key to PagoFase.
        descripcion: Free-text description.
        fecha: Payment date.
        monto: Amount paid (>= 0).
        saldo: Phase balance right after this payment.
        metodo_pago: "efectivo", "transferencia", "tarjeta" or "cheque".
        comprobante_numero: Optional receipt number.
        comprobante_tipo: Optional receipt type ("factura", "recibo", "otro").
        anulado: Void flag.
        fecha_anulacion: When the entry was voided.
        motivo_anulacion: Why the entry was voided.
        reporte_financiero_id: Income entry written together with this payment.
        clave_idempotencia: Client-supplied key; repeats are not re-applied.
        created_at: Record creation timestamp.
    """

    __tablename__ = "pago"
    __table_args__ = (
        UniqueConstraint("pago_fase_id", "clave_idempotencia", name="uq_pago_clave_idempotencia"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    pago_fase_id = Column(
        Integer, ForeignKey("pago_fase.id", ondelete="CASCADE"), nullable=False
    )
    descripcion = Column(String(500), nullable=False)
    fecha = Column(DateTime, default=func.now(), nullable=False)
    monto = Column(Numeric(12, 2), nullable=False)
    saldo = Column(Numeric(12, 2), nullable=False)
    metodo_pago = Column(String(20), nullable=False)
    comprobante_numero = Column(String(50), nullable=True)
    comprobante_tipo = Column(String(20), nullable=True)
    anulado = Column(Boolean, default=False, nullable=False)
    fecha_anulacion = Column(DateTime, nullable=True)
    motivo_anulacion = Column(String(500), nullable=True)
    reporte_financiero_id = Column(
        Integer, ForeignKey("reporte_financiero.id", ondelete="SET NULL"), nullable=True
    )
    clave_idempotencia = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    # Relationships
    pago_fase = relationship("PagoFase", back_populates="pagos", lazy="select")
    reporte_financiero = relationship("ReporteFinanciero", lazy="select")
