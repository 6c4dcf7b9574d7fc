from datetime import datetime
from pydantic import BaseModel, ConfigDict
from typing import Any, Optional


class PowerRequest(BaseModel):
    dispositivo_id: Optional[int] = None


class PowerResponse(BaseModel):
    exito: bool
    mensaje: str
    estado: str
    dispositivo_id: int
    comando_mqtt: str
    timestamp: datetime


class DeviceStateOut(BaseModel):
    dispositivo_id: int
    nombre: str
    tipo: str
    estado: str
    encendido: bool
    ubicacion: Optional[str] = None
    ultima_actualizacion: Optional[datetime] = None
    metadata: dict[str, Any] = {}


# Motion bodies accept anything; range and type checks live in commands.py
class MoveRequest(BaseModel):
    velocidad: Any = None
    direccion: Any = None


class RotateRequest(BaseModel):
    angulo: Any = None


class SearchRequest(BaseModel):
    objeto: Any = None
    distancia_max: Any = None


class CommandResponse(BaseModel):
    exito: bool
    mensaje: str
    comando: Optional[dict[str, Any]] = None


class SimpleCommandResponse(BaseModel):
    exito: bool
    mensaje: str


class PositionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    dispositivo_id: int
    x: float
    y: float
    angulo: float
    bateria: float
    fecha: datetime


class DetectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    dispositivo_id: int
    objeto_detectado: str
    confianza: Optional[float] = None
    distancia: Optional[float] = None
    fecha: datetime


class PositionList(BaseModel):
    total: int
    data: list[PositionOut]


class DetectionList(BaseModel):
    objeto: Optional[str] = None
    total: int
    data: list[DetectionOut]


class Coordinates(BaseModel):
    x: float = 0
    y: float = 0
    angulo: float = 0


class RobotStatus(BaseModel):
    dispositivo: str
    estado: str
    bateria: float
    posicion: Coordinates
    timestamp: Optional[datetime] = None


class ActivitySummary(BaseModel):
    totalMovimientos: int
    totalDetecciones: int
    objetosDetectados: list[str]
    ultimaActividad: Optional[datetime] = None


class AnalysisOut(BaseModel):
    respuesta: str
    modelo: str


class InteractionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    user_id: Optional[int] = None
    prompt: str
    response: str
    model: str
    tokens_used: Optional[int] = None
    costo: Optional[float] = None
    created_at: datetime


class InteractionList(BaseModel):
    total: int
    data: list[InteractionOut]


class AIStats(BaseModel):
    totalInteracciones: int
    totalTokens: int
    totalCosto: str
    promedioTokensPorInteraccion: str
    modelos: list[str]
