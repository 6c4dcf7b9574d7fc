import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select, func

from .db import SessionFactory
from .errors import PersistenceError
from .models import Device, DeviceState, PositionSample, Detection, utcnow

log = logging.getLogger("robot.store")


class DeviceStore:
    """Authoritative record of each device's operational state."""

    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    def get(self, device_id: int) -> Optional[Device]:
        try:
            with self._sessions() as s:
                return s.get(Device, device_id)
        except SQLAlchemyError as e:
            log.error("device %s read failed: %s", device_id, e)
            raise PersistenceError(f"Error leyendo dispositivo {device_id}") from e

    def set_state(self, device_id: int, state: DeviceState) -> Device:
        try:
            with self._sessions() as s:
                d = s.get(Device, device_id)
                if d is None:
                    raise PersistenceError(f"Dispositivo {device_id} no existe")
                d.estado = DeviceState(state).value
                d.updated_at = utcnow()
                s.add(d)
                s.commit()
                s.refresh(d)
                return d
        except SQLAlchemyError as e:
            log.error("device %s state write failed: %s", device_id, e)
            raise PersistenceError(f"Error actualizando estado del dispositivo {device_id}") from e


@dataclass
class TelemetrySummary:
    total_movements: int = 0
    total_detections: int = 0
    unique_object_labels: List[str] = field(default_factory=list)
    last_activity: Optional[datetime] = None


class TelemetryStore:
    """Append-only position and detection logs, one stream per device.

    Appends belong to the MQTT telemetry path; the HTTP side only reads.
    """

    def __init__(self, sessions: SessionFactory):
        self._sessions = sessions

    def query_positions(self, device_id: int, limit: int, chronological: bool = False) -> List[PositionSample]:
        order = PositionSample.fecha.asc() if chronological else PositionSample.fecha.desc()
        stmt = (
            select(PositionSample)
            .where(PositionSample.dispositivo_id == device_id)
            .order_by(order, PositionSample.id.asc() if chronological else PositionSample.id.desc())
            .limit(limit)
        )
        return self._all(stmt, "posiciones")

    def latest_position(self, device_id: int) -> Optional[PositionSample]:
        rows = self.query_positions(device_id, 1)
        return rows[0] if rows else None

    def query_detections(self, device_id: int, object_label: Optional[str] = None, limit: int = 50) -> List[Detection]:
        stmt = select(Detection).where(Detection.dispositivo_id == device_id)
        if object_label:
            stmt = stmt.where(Detection.objeto_detectado == object_label)
        stmt = stmt.order_by(Detection.fecha.desc(), Detection.id.desc()).limit(limit)
        return self._all(stmt, "detecciones")

    def summarize(self, device_id: int) -> TelemetrySummary:
        try:
            with self._sessions() as s:
                total_pos, last_pos = s.exec(
                    select(func.count(PositionSample.id), func.max(PositionSample.fecha))
                    .where(PositionSample.dispositivo_id == device_id)
                ).one()
                total_det, last_det = s.exec(
                    select(func.count(Detection.id), func.max(Detection.fecha))
                    .where(Detection.dispositivo_id == device_id)
                ).one()
                labels = s.exec(
                    select(Detection.objeto_detectado)
                    .where(Detection.dispositivo_id == device_id)
                    .distinct()
                    .order_by(Detection.objeto_detectado)
                ).all()
        except SQLAlchemyError as e:
            log.error("telemetry summary for %s failed: %s", device_id, e)
            raise PersistenceError("Error al obtener resumen") from e

        stamps = [t for t in (last_pos, last_det) if t is not None]
        return TelemetrySummary(
            total_movements=total_pos or 0,
            total_detections=total_det or 0,
            unique_object_labels=list(labels),
            last_activity=max(stamps) if stamps else None,
        )

    def add_position(self, sample: PositionSample) -> PositionSample:
        return self._add(sample)

    def add_detection(self, detection: Detection) -> Detection:
        return self._add(detection)

    def _add(self, row):
        try:
            with self._sessions() as s:
                s.add(row)
                s.commit()
                s.refresh(row)
                return row
        except SQLAlchemyError as e:
            log.error("telemetry append failed: %s", e)
            raise PersistenceError("Error guardando telemetría") from e

    def _all(self, stmt, what: str):
        try:
            with self._sessions() as s:
                return list(s.exec(stmt).all())
        except SQLAlchemyError as e:
            log.error("telemetry %s query failed: %s", what, e)
            raise PersistenceError(f"Error al obtener {what}") from e
