"""
Bearer-token guard for every ledger endpoint.

Provides:
- ``get_current_user`` — FastAPI dependency that extracts and validates
  the Bearer JWT from the ``Authorization`` header.
- ``require_role`` — dependency factory that enforces role-based access
  control on top of ``get_current_user``.

Users live in the clinic's authentication service, so the identity is built
from the token claims alone; no database lookup happens here.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.schemas.auth import UsuarioToken
from app.utils.constants import ROLES
from app.utils.security import verify_token

logger = logging.getLogger(__name__)

# ``auto_error=False`` so that a missing header produces our own 401 body
# instead of FastAPI's default 403.
bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
) -> UsuarioToken:
    """FastAPI dependency that resolves the caller's identity from a JWT.

    Args:
        credentials: Scheme and token parsed by ``HTTPBearer``; ``None`` when
                     the header is absent or not of the ``Bearer`` form.

    Returns:
        The ``UsuarioToken`` built from the verified claims.

    Raises:
        HTTPException 401: If the header is missing or malformed, the token is
                           invalid or expired, or it carries no ``sub`` claim.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Encabezado Authorization ausente o mal formado",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = verify_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        )

    sub = payload.get("sub")
    if sub is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No se pudo validar las credenciales",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return UsuarioToken(
        id=str(sub),
        username=payload.get("username"),
        rol=payload.get("rol"),
    )


def require_role(*roles: str):
    """Return a FastAPI dependency that restricts access to the given roles.

    .. code-block:: python

        @router.delete("/deleteAll")
        def delete_all(
            current_user: UsuarioToken = Depends(require_role("ADMIN")),
        ):
            ...

    Args:
        *roles: One or more role codes from ``constants.ROLES``.

    Returns:
        A callable FastAPI dependency that resolves to the authenticated
        ``UsuarioToken`` if their role is in *roles*, or raises HTTP 403.

    Raises:
        ValueError: If a role code is not one of ``constants.ROLES``.
    """
    desconocidos = set(roles) - set(ROLES)
    if desconocidos:
        raise ValueError(f"Roles desconocidos: {sorted(desconocidos)}")
    allowed = frozenset(roles)

    def _check_role(
        current_user: Annotated[UsuarioToken, Depends(get_current_user)],
    ) -> UsuarioToken:
        if current_user.rol not in allowed:
            logger.warning(
                "require_role: user=%s rol=%s denied (allowed=%s)",
                current_user.id, current_user.rol, sorted(allowed),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=(
                    f"Acceso denegado. Se requiere uno de los roles: "
                    f"{sorted(allowed)}"
                ),
            )
        return current_user

    return _check_role
