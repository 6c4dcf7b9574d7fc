"""Bearer-token authentication for the robot and AI routes.

With API_TOKEN unset the API runs in development mode and every request is
treated as the configured default user.
"""
from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass

from fastapi import Header, HTTPException

from .settings import settings

log = logging.getLogger("auth")


@dataclass(frozen=True)
class CurrentUser:
    id: int
    rol: str

    @property
    def is_admin(self) -> bool:
        return self.rol == "admin"


def require_user(authorization: str | None = Header(default=None)) -> CurrentUser:
    user = CurrentUser(id=settings.api_user_id, rol=settings.api_user_role)
    expected = settings.api_token
    if not expected:
        return user

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Token requerido")
    if not hmac.compare_digest(token.strip(), expected):
        log.warning("Invalid bearer token attempt")
        raise HTTPException(status_code=401, detail="Token inválido")
    return user
