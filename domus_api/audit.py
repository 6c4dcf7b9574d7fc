"""Best-effort action log and operator alerts.

Writes here happen after the device state and the MQTT command have been
handled. A failure is logged and reported back as a SideEffect; it never
changes the HTTP outcome.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .db import SessionFactory
from .models import ActionLog, Alert

log = logging.getLogger("audit")


@dataclass(frozen=True)
class SideEffect:
    attempted: bool
    ok: bool = False
    error: Optional[str] = None


SKIPPED = SideEffect(attempted=False)


class AuditEmitter:
    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    def record_log(
        self,
        user_id: Optional[int],
        action: str,
        description: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SideEffect:
        return self._write("log", ActionLog(
            user_id=user_id,
            accion=action,
            descripcion=description,
            ip_address=ip_address,
            user_agent=user_agent,
        ))

    def record_alert(
        self,
        user_id: Optional[int],
        device_id: int,
        alert_type: str,
        description: str,
        severity: str = "baja",
    ) -> SideEffect:
        return self._write("alerta", Alert(
            user_id=user_id,
            dispositivo_id=device_id,
            tipo_alerta=alert_type,
            descripcion=description,
            severidad=severity,
            leida=False,
        ))

    def _write(self, kind: str, row) -> SideEffect:
        try:
            with self._sessions() as s:
                s.add(row)
                s.commit()
        except Exception as e:  # never propagates into the request
            log.warning("No se pudo guardar %s: %s", kind, e)
            return SideEffect(attempted=True, ok=False, error=str(e))
        return SideEffect(attempted=True, ok=True)
