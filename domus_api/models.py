from enum import Enum
from typing import Optional
from datetime import datetime, timezone
from sqlmodel import SQLModel, Field, Column, JSON


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeviceState(str, Enum):
    ACTIVE = "activo"
    INACTIVE = "inactivo"
    UNKNOWN = "desconocido"


class Device(SQLModel, table=True):
    __tablename__ = "dispositivos"

    id: int = Field(primary_key=True)
    nombre: str
    tipo: str = "robot"
    ubicacion: Optional[str] = None
    estado: str = Field(default=DeviceState.UNKNOWN.value)
    # "metadata" is reserved on SQLModel classes
    meta: dict = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    updated_at: datetime = Field(default_factory=utcnow)


class PositionSample(SQLModel, table=True):
    __tablename__ = "posicion_robot"

    id: Optional[int] = Field(default=None, primary_key=True)
    dispositivo_id: int = Field(index=True)
    x: float = 0
    y: float = 0
    angulo: float = 0
    bateria: float = 0
    fecha: datetime = Field(default_factory=utcnow, index=True)


class Detection(SQLModel, table=True):
    __tablename__ = "detecciones_objeto"

    id: Optional[int] = Field(default=None, primary_key=True)
    dispositivo_id: int = Field(index=True)
    objeto_detectado: str = Field(index=True)
    confianza: Optional[float] = None
    distancia: Optional[float] = None
    fecha: datetime = Field(default_factory=utcnow, index=True)


class ActionLog(SQLModel, table=True):
    __tablename__ = "logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = None
    accion: str
    descripcion: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class Alert(SQLModel, table=True):
    __tablename__ = "alertas"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = None
    dispositivo_id: Optional[int] = None
    tipo_alerta: str
    descripcion: str
    severidad: str = "baja"
    leida: bool = False
    created_at: datetime = Field(default_factory=utcnow)


class SensorReading(SQLModel, table=True):
    __tablename__ = "sensor_data"

    id: Optional[int] = Field(default=None, primary_key=True)
    dispositivo_id: int = Field(index=True)
    data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, index=True)


class AIInteraction(SQLModel, table=True):
    __tablename__ = "ai_interactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, index=True)
    prompt: str
    response: str
    model: str
    tokens_used: Optional[int] = None
    costo: Optional[float] = None
    meta: dict = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    created_at: datetime = Field(default_factory=utcnow, index=True)
