"""
Robot commands and their parameter checks.

Every check here is pure: it either returns the normalized parameters or
raises CommandValidationError naming the offending field. Orchestrators call
these before touching the database or the MQTT client.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict

from .errors import CommandValidationError

ENCENDER = "encender"
APAGAR = "apagar"
MOVER = "mover"
ROTAR = "rotar"
BUSCAR = "buscar"
PARAR = "parar"
INICIO = "inicio"
CALIBRAR = "calibrar"

ACTIONS = frozenset({ENCENDER, APAGAR, MOVER, ROTAR, BUSCAR, PARAR, INICIO, CALIBRAR})
POWER_ACTIONS = (ENCENDER, APAGAR)
DIRECTIONS = ("adelante", "atras", "izquierda", "derecha")

SPEED_MIN, SPEED_MAX = 0, 255
ANGLE_MIN, ANGLE_MAX = -360, 360
DEFAULT_SEARCH_DISTANCE = 500


@dataclass(frozen=True)
class Command:
    accion: str
    datos: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.accion not in ACTIONS:
            raise ValueError(f"unknown robot action: {self.accion}")

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"accion": self.accion}
        if self.datos:
            payload["datos"] = dict(self.datos)
        return payload


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def validate_move(velocidad: Any, direccion: Any) -> Dict[str, Any]:
    if velocidad is None or not direccion:
        raise CommandValidationError(
            "velocidad" if velocidad is None else "direccion",
            "Faltan velocidad y dirección",
        )
    if direccion not in DIRECTIONS:
        raise CommandValidationError(
            "direccion", "Dirección no válida: " + ", ".join(DIRECTIONS)
        )
    if not _is_number(velocidad) or not SPEED_MIN <= velocidad <= SPEED_MAX:
        raise CommandValidationError(
            "velocidad", f"Velocidad debe estar entre {SPEED_MIN} y {SPEED_MAX}"
        )
    return {"velocidad": velocidad, "direccion": direccion}


def validate_rotate(angulo: Any) -> Dict[str, Any]:
    if angulo is None:
        raise CommandValidationError("angulo", "Ángulo requerido")
    if not _is_number(angulo) or not ANGLE_MIN <= angulo <= ANGLE_MAX:
        raise CommandValidationError(
            "angulo", f"Ángulo debe estar entre {ANGLE_MIN} y {ANGLE_MAX}"
        )
    return {"angulo": angulo}


def validate_search(objeto: Any, distancia_max: Any = None) -> Dict[str, Any]:
    if not objeto or not isinstance(objeto, str) or not objeto.strip():
        raise CommandValidationError("objeto", "Objeto a buscar requerido")
    if distancia_max is not None and not _is_number(distancia_max):
        raise CommandValidationError("distancia_max", "distancia_max debe ser numérica")
    # 0 and null both fall back to the default range
    return {"objeto": objeto, "distancia_max": distancia_max or DEFAULT_SEARCH_DISTANCE}


def validate_power_action(accion: Any) -> str:
    if accion not in POWER_ACTIONS:
        raise CommandValidationError("accion", "Acción inválida. Use: encender o apagar")
    return accion
