"""ledger_inicial

Crea las tablas del registro clínico que lee el ledger (paciente,
plan_tratamiento, actividad_plan) y las del ledger de facturación
(presupuesto, fase, procedimiento, reporte_financiero, pago_fase, pago).

Revision ID: 3c9d1e4a7f20
Revises:
Create Date: 2026-03-02 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c9d1e4a7f20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(12, 2)


def upgrade() -> None:
    op.create_table(
        'paciente',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('nombre_paciente', sa.String(300), nullable=False),
        sa.Column('numero_cedula', sa.String(20), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'plan_tratamiento',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('paciente_id', sa.Integer(), sa.ForeignKey('paciente.id'), nullable=False),
        sa.Column('especialidad', sa.String(100), nullable=False),
    )

    op.create_table(
        'actividad_plan',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'plan_tratamiento_id', sa.Integer(),
            sa.ForeignKey('plan_tratamiento.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('cita', sa.String(100), nullable=False),
        sa.Column('actividad_plan_trat', sa.String(500), nullable=False),
        sa.Column('fecha_plan_trat', sa.Date(), nullable=False),
        sa.Column('monto_abono', MONEY, server_default='0', nullable=False),
        sa.Column('estado', sa.String(20), server_default='pendiente', nullable=False),
    )

    op.create_table(
        'presupuesto',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('paciente_id', sa.Integer(), sa.ForeignKey('paciente.id'), nullable=False),
        sa.Column(
            'plan_tratamiento_id', sa.Integer(),
            sa.ForeignKey('plan_tratamiento.id'), nullable=True, unique=True,
        ),
        sa.Column('fecha', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('especialidad', sa.String(100), nullable=False),
        sa.Column('total_general', MONEY, server_default='0', nullable=False),
        sa.Column('total_pagado', MONEY, server_default='0', nullable=False),
        sa.Column('saldo_pendiente_total', MONEY, server_default='0', nullable=False),
        sa.Column('estado_pago_general', sa.String(20), server_default='pendiente', nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'fase',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'presupuesto_id', sa.Integer(),
            sa.ForeignKey('presupuesto.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('indice', sa.Integer(), nullable=False),
        sa.Column('nombre', sa.String(200), nullable=False),
        sa.Column('descripcion', sa.Text(), nullable=True),
        sa.Column('total', MONEY, server_default='0', nullable=False),
        sa.Column('total_pagado', MONEY, server_default='0', nullable=False),
        sa.Column('saldo_pendiente', MONEY, server_default='0', nullable=False),
        sa.Column('estado_pago', sa.String(20), server_default='pendiente', nullable=False),
    )
    op.create_index('ix_fase_presupuesto_id', 'fase', ['presupuesto_id'])

    op.create_table(
        'procedimiento',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'fase_id', sa.Integer(),
            sa.ForeignKey('fase.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('orden', sa.Integer(), server_default='0', nullable=False),
        sa.Column('nombre', sa.String(300), nullable=False),
        sa.Column('numero_piezas', sa.Integer(), nullable=False),
        sa.Column('costo_por_unidad', MONEY, nullable=False),
        sa.Column('costo_total', MONEY, server_default='0', nullable=False),
    )

    op.create_table(
        'reporte_financiero',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'presupuesto_id', sa.Integer(),
            sa.ForeignKey('presupuesto.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('paciente_id', sa.Integer(), sa.ForeignKey('paciente.id'), nullable=False),
        sa.Column('fecha', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('monto', MONEY, nullable=False),
        sa.Column('metodo_pago', sa.String(20), nullable=False),
        sa.Column('concepto_pago', sa.String(500), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_reporte_financiero_fecha', 'reporte_financiero', ['fecha'])

    op.create_table(
        'pago_fase',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'presupuesto_id', sa.Integer(),
            sa.ForeignKey('presupuesto.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('fase_index', sa.Integer(), nullable=False),
        sa.Column('nombre_fase', sa.String(200), nullable=False),
        sa.Column('total_fase', MONEY, nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('presupuesto_id', 'fase_index', name='uq_pago_fase_presupuesto_fase'),
    )

    op.create_table(
        'pago',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'pago_fase_id', sa.Integer(),
            sa.ForeignKey('pago_fase.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('descripcion', sa.String(500), nullable=False),
        sa.Column('fecha', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('monto', MONEY, nullable=False),
        sa.Column('saldo', MONEY, nullable=False),
        sa.Column('metodo_pago', sa.String(20), nullable=False),
        sa.Column('comprobante_numero', sa.String(50), nullable=True),
        sa.Column('comprobante_tipo', sa.String(20), nullable=True),
        sa.Column('anulado', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('fecha_anulacion', sa.DateTime(), nullable=True),
        sa.Column('motivo_anulacion', sa.String(500), nullable=True),
        sa.Column(
            'reporte_financiero_id', sa.Integer(),
            sa.ForeignKey('reporte_financiero.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('clave_idempotencia', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('pago_fase_id', 'clave_idempotencia', name='uq_pago_clave_idempotencia'),
    )


def downgrade() -> None:
    op.drop_table('pago')
    op.drop_table('pago_fase')
    op.drop_index('ix_reporte_financiero_fecha', table_name='reporte_financiero')
    op.drop_table('reporte_financiero')
    op.drop_table('procedimiento')
    op.drop_index('ix_fase_presupuesto_id', table_name='fase')
    op.drop_table('fase')
    op.drop_table('presupuesto')
    op.drop_table('actividad_plan')
    op.drop_table('plan_tratamiento')
    op.drop_table('paciente')
