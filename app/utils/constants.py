"""
Application-wide constants for the clinic billing ledger.

Defines domain enumerations, money precision, and lookup lists used across
routers, services, and models.
"""

from decimal import Decimal
from typing import Final

# ---------------------------------------------------------------------------
# Roles carried in the JWT ``rol`` claim
# ---------------------------------------------------------------------------

ROLES: Final[list[str]] = [
    "ADMIN",
    "ODONTOLOGO",
    "RECEPCION",
]

# ---------------------------------------------------------------------------
# Payment status (phase and budget)
# ---------------------------------------------------------------------------

ESTADO_PENDIENTE: Final[str] = "pendiente"
ESTADO_PARCIAL: Final[str] = "parcial"
ESTADO_COMPLETADO: Final[str] = "completado"

# ---------------------------------------------------------------------------
# Treatment plan derivation
# ---------------------------------------------------------------------------

FASE_PRINCIPAL_NOMBRE: Final[str] = "Fase Principal"
FASE_PRINCIPAL_DESCRIPCION: Final[str] = "Actividades de la planificación"

# ---------------------------------------------------------------------------
# Money precision
# ---------------------------------------------------------------------------

DEC_0: Final[Decimal] = Decimal("0.00")
MONEY_Q: Final[Decimal] = Decimal("0.01")
# Largest value a Numeric(12, 2) column holds
MONTO_MAXIMO: Final[Decimal] = Decimal("9999999999.99")
