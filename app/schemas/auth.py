"""
Pydantic v2 schema for the identity extracted from a verified JWT.

The clinic's authentication service owns users and passwords; this API only
needs to know who is calling and with which role.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UsuarioToken(BaseModel):
    """Caller identity resolved from the ``Authorization: Bearer`` header.

    Attributes:
        id: Value of the ``sub`` claim (user primary key in the auth service).
        username: Optional login name, used only for log lines.
        rol: Role code; one of ``constants.ROLES``.
    """

    id: str = Field(..., description="Claim 'sub' del token")
    username: str | None = Field(default=None, description="Nombre de usuario")
    rol: str | None = Field(default=None, description="Rol del usuario")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"id": "12", "username": "recepcion1", "rol": "RECEPCION"}
        }
    )
