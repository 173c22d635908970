"""
Money helpers shared by the budget, ledger and report services.

Amounts are handled as ``Decimal`` quantized to cents everywhere in the
service layer; conversion to ``float`` happens only when building response
schemas.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable

from app.utils.constants import (
    DEC_0,
    ESTADO_COMPLETADO,
    ESTADO_PARCIAL,
    ESTADO_PENDIENTE,
    MONEY_Q,
)


def q2(x: Any) -> Decimal:
    """Normalise *x* to a two-decimal ``Decimal`` (``None`` counts as zero).

    Floats go through ``str`` first so that ``0.1`` becomes ``Decimal("0.10")``
    and not its binary expansion.

    Raises:
        ValueError: If *x* cannot be interpreted as a number.
    """
    if x is None:
        return DEC_0
    if not isinstance(x, Decimal):
        try:
            x = Decimal(str(x))
        except InvalidOperation as exc:
            raise ValueError(f"Monto inválido: {x!r}") from exc
    return x.quantize(MONEY_Q, rounding=ROUND_HALF_UP)


def suma(valores: Iterable[Any]) -> Decimal:
    """Exact sum of monetary values, quantized to cents."""
    total = DEC_0
    for v in valores:
        total += q2(v)
    return q2(total)


def calcular_estado_pago(total: Any, pagado: Any) -> str:
    """Derive the payment status from the amount due and the amount paid.

    ``pendiente`` when nothing is paid, ``completado`` once the paid amount
    reaches the total (boundary included), ``parcial`` otherwise.  A zero
    total with nothing paid is ``pendiente``.
    """
    pagado = q2(pagado)
    if pagado == DEC_0:
        return ESTADO_PENDIENTE
    if pagado >= q2(total):
        return ESTADO_COMPLETADO
    return ESTADO_PARCIAL


def porcentaje(numerador: Any, denominador: Any) -> float:
    """Return numerador / denominador × 100 rounded to 2 dp; 0.0 if denominador is zero."""
    denominador = q2(denominador)
    if denominador == DEC_0:
        return 0.0
    return round(float(q2(numerador) / denominador * 100), 2)
