"""
Robot command orchestration.

Power transitions run: existence check -> state write -> MQTT command ->
best-effort log and alert. Power-off sends an unconditional ``parar`` before
anything else so the robot is never left moving. Motion commands are
validated and published without looking at the stored device state.

``command_accepted`` only says the MQTT client took the message. Nothing in
this module knows whether the robot actually moved.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from . import commands as cmd
from .audit import AuditEmitter, SideEffect, SKIPPED
from .commands import Command
from .errors import DeviceNotFoundError
from .models import Device, DeviceState, PositionSample, Detection, utcnow
from .publisher import CommandPublisher
from .stores import DeviceStore, TelemetryStore, TelemetrySummary

log = logging.getLogger("robot")


@dataclass(frozen=True)
class Actor:
    user_id: Optional[int] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class _PowerSpec:
    state: DeviceState
    event: str
    past: str
    alert_text: str


_POWER = {
    cmd.ENCENDER: _PowerSpec(DeviceState.ACTIVE, "robot_encendido", "encendido", "Robot activado correctamente"),
    cmd.APAGAR: _PowerSpec(DeviceState.INACTIVE, "robot_apagado", "apagado", "Robot desactivado correctamente"),
}


@dataclass
class PowerTransitionResult:
    action: str
    device_id: int
    state: DeviceState
    command_accepted: bool
    stop_accepted: Optional[bool] = None
    log_entry: SideEffect = SKIPPED
    alert: SideEffect = SKIPPED
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def message(self) -> str:
        return f"✅ Robot {_POWER[self.action].past} correctamente"


@dataclass
class CommandOutcome:
    action: str
    accepted: bool
    message: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StatusOverview:
    device_name: str
    state: str
    battery: float
    x: float
    y: float
    angle: float
    timestamp: Optional[datetime]


# (ok, failed) messages per parameterless or parameterized command
_MESSAGES = {
    cmd.MOVER: ("✅ Comando enviado", "❌ Error enviando comando"),
    cmd.ROTAR: ("✅ Comando enviado", "❌ Error enviando comando"),
    cmd.BUSCAR: ("✅ Búsqueda iniciada", "❌ Error iniciando búsqueda"),
    cmd.PARAR: ("✅ Robot detenido", "❌ Error deteniendo robot"),
    cmd.INICIO: ("✅ Robot retornando al inicio", "❌ Error en comando"),
    cmd.CALIBRAR: ("✅ Calibración iniciada", "❌ Error en calibración"),
}


class RobotService:
    def __init__(
        self,
        devices: DeviceStore,
        telemetry: TelemetryStore,
        publisher: CommandPublisher,
        audit: AuditEmitter,
    ):
        self.devices = devices
        self.telemetry = telemetry
        self.publisher = publisher
        self.audit = audit

    # ---------------- power ----------------
    def power_on(self, device_id: int, actor: Actor) -> PowerTransitionResult:
        return self.set_power(cmd.ENCENDER, device_id, actor)

    def power_off(self, device_id: int, actor: Actor) -> PowerTransitionResult:
        return self.set_power(cmd.APAGAR, device_id, actor)

    def set_power(self, accion: str, device_id: int, actor: Actor) -> PowerTransitionResult:
        """Single path for every power transition, dedicated or unified endpoint."""
        accion = cmd.validate_power_action(accion)
        spec = _POWER[accion]

        if self.devices.get(device_id) is None:
            raise DeviceNotFoundError(device_id)

        stop_accepted = None
        if accion == cmd.APAGAR:
            stop_accepted = self.publisher.publish(Command(cmd.PARAR))

        # PersistenceError here ends the request: no command, no log, no alert
        self.devices.set_state(device_id, spec.state)

        accepted = self.publisher.publish(Command(accion, {"estado": spec.state.value}))
        if not accepted:
            log.warning("robot %s %s persisted but MQTT command not accepted", device_id, spec.past)

        log_entry = self.audit.record_log(
            actor.user_id,
            spec.event,
            f"Robot {device_id} {spec.past}",
            ip_address=actor.ip_address,
            user_agent=actor.user_agent,
        )
        alert = self.audit.record_alert(actor.user_id, device_id, spec.event, spec.alert_text, severity="baja")

        return PowerTransitionResult(
            action=accion,
            device_id=device_id,
            state=spec.state,
            command_accepted=accepted,
            stop_accepted=stop_accepted,
            log_entry=log_entry,
            alert=alert,
        )

    # ---------------- motion ----------------
    def move(self, velocidad: Any, direccion: Any) -> CommandOutcome:
        return self._dispatch(cmd.MOVER, cmd.validate_move(velocidad, direccion))

    def rotate(self, angulo: Any) -> CommandOutcome:
        return self._dispatch(cmd.ROTAR, cmd.validate_rotate(angulo))

    def search(self, objeto: Any, distancia_max: Any = None) -> CommandOutcome:
        return self._dispatch(cmd.BUSCAR, cmd.validate_search(objeto, distancia_max))

    def stop(self) -> CommandOutcome:
        return self._dispatch(cmd.PARAR)

    def return_home(self) -> CommandOutcome:
        return self._dispatch(cmd.INICIO)

    def calibrate(self) -> CommandOutcome:
        return self._dispatch(cmd.CALIBRAR)

    def _dispatch(self, accion: str, params: Optional[Dict[str, Any]] = None) -> CommandOutcome:
        params = params or {}
        accepted = self.publisher.publish(Command(accion, params))
        ok_msg, fail_msg = _MESSAGES[accion]
        return CommandOutcome(accion, accepted, ok_msg if accepted else fail_msg, params)

    # ---------------- queries ----------------
    def current_state(self, device_id: int) -> Device:
        device = self.devices.get(device_id)
        if device is None:
            raise DeviceNotFoundError(device_id)
        return device

    def positions(self, device_id: int, limit: int = 1) -> List[PositionSample]:
        return self.telemetry.query_positions(device_id, limit)

    def movement_history(self, device_id: int, limit: int = 100) -> List[PositionSample]:
        return self.telemetry.query_positions(device_id, limit, chronological=True)

    def detections(self, device_id: int, objeto: Optional[str] = None, limit: int = 50) -> List[Detection]:
        return self.telemetry.query_detections(device_id, objeto, limit)

    def overview(self, device_id: int) -> StatusOverview:
        device = self.devices.get(device_id)
        last = self.telemetry.latest_position(device_id)
        return StatusOverview(
            device_name=device.nombre if device and device.nombre else f"Robot {device_id}",
            state=device.estado if device and device.estado else DeviceState.UNKNOWN.value,
            battery=last.bateria if last else 0,
            x=last.x if last else 0,
            y=last.y if last else 0,
            angle=last.angulo if last else 0,
            timestamp=last.fecha if last else None,
        )

    def summary(self, device_id: int) -> TelemetrySummary:
        return self.telemetry.summarize(device_id)
