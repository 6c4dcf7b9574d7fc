# domus_api/mqtt_handler.py
import json, time, logging
from datetime import datetime
from typing import Any
from dateutil import parser as dtparser
import paho.mqtt.client as mqtt

from .models import PositionSample, Detection, utcnow
from .settings import Settings
from .stores import TelemetryStore
from .errors import PersistenceError

log = logging.getLogger("mqtt")


def _parse_ts(ts: Any) -> datetime:
    if not ts:
        return utcnow()
    try:
        return dtparser.isoparse(str(ts))
    except (ValueError, OverflowError):
        return utcnow()


def _rc_int(rc) -> int:
    # Handles paho v2.x ReasonCode objects or plain ints
    try:
        return int(getattr(rc, "value", rc))
    except (TypeError, ValueError):
        return -1


def _num(payload: dict, key: str, default: float = 0.0) -> float:
    value = payload.get(key, default)
    if value is None:
        return default
    return float(value)


def handle_telemetry(topic: str, payload: dict, store: TelemetryStore, default_device_id: int):
    """Persist one telemetry message. Returns the stored row or None if the topic is not telemetry."""
    suffix = topic.rstrip("/").rsplit("/", 1)[-1]
    device_id = int(payload.get("dispositivo_id") or default_device_id)
    ts = _parse_ts(payload.get("fecha") or payload.get("ts"))

    if suffix == "posicion":
        return store.add_position(PositionSample(
            dispositivo_id=device_id,
            x=_num(payload, "x"),
            y=_num(payload, "y"),
            angulo=_num(payload, "angulo"),
            bateria=_num(payload, "bateria"),
            fecha=ts,
        ))

    if suffix == "deteccion":
        label = payload.get("objeto") or payload.get("objeto_detectado")
        if not label:
            raise ValueError("detection without objeto")
        return store.add_detection(Detection(
            dispositivo_id=device_id,
            objeto_detectado=str(label),
            confianza=payload.get("confianza"),
            distancia=payload.get("distancia"),
            fecha=ts,
        ))

    return None


def start_mqtt(settings: Settings, store: TelemetryStore) -> mqtt.Client:
    client = mqtt.Client(
        client_id=f"domus-api-{int(time.time())}",
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,  # paho 2.x
    )
    client.enable_logger(log)

    if settings.mqtt_username and settings.mqtt_password:
        client.username_pw_set(settings.mqtt_username, settings.mqtt_password)

    client.reconnect_delay_set(min_delay=1, max_delay=30)

    stats = {"rx_total": 0, "rx_dropped": 0}

    def on_connect(client, userdata, flags, reason_code, properties):
        rc = _rc_int(reason_code)
        if rc != mqtt.CONNACK_ACCEPTED:
            log.warning("[MQTT] Connect failed rc=%s (5=Not authorized). Retrying…", rc)
            return
        res, mid = client.subscribe(settings.mqtt_telemetry_topic, qos=0)
        log.info("[MQTT] Connected. SUB %s res=%s mid=%s", settings.mqtt_telemetry_topic, res, mid)

    def on_disconnect(client, userdata, flags, reason_code, properties):
        log.warning("[MQTT] Disconnected rc=%s. Reconnecting…", _rc_int(reason_code))

    def on_message(client, userdata, msg):
        stats["rx_total"] += 1
        try:
            payload = json.loads(msg.payload.decode("utf-8")) if msg.payload else {}
            if not isinstance(payload, dict):
                raise ValueError("payload is not an object")
            handle_telemetry(msg.topic, payload, store, settings.default_device_id)
        except (ValueError, TypeError, UnicodeDecodeError, PersistenceError) as e:
            stats["rx_dropped"] += 1
            log.warning("[MQTT] dropped message on %s: %s", msg.topic, e)

        if stats["rx_total"] % 100 == 1:
            log.info("[MQTT] msg counts: total=%s dropped=%s", stats["rx_total"], stats["rx_dropped"])

    client.on_connect = on_connect
    client.on_disconnect = on_disconnect
    client.on_message = on_message

    log.info(
        "[MQTT] Bootstrapping host=%s port=%s user=%s commands=%s telemetry=%s",
        settings.mqtt_host, settings.mqtt_port,
        "<set>" if settings.mqtt_username else "<none>",
        settings.mqtt_command_topic, settings.mqtt_telemetry_topic,
    )

    client.connect_async(settings.mqtt_host, settings.mqtt_port, keepalive=30)
    client.loop_start()
    return client
