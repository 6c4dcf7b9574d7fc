import json
import logging
from typing import Protocol

import paho.mqtt.client as mqtt

from .commands import Command
from .errors import PublishError

log = logging.getLogger("mqtt")


class CommandPublisher(Protocol):
    def publish(self, command: Command) -> bool: ...


class MqttCommandPublisher:
    """Fire-and-forget command hand-off to the robot.

    ``publish`` returning True only means paho queued the message locally.
    QoS 0, so there is no broker or device acknowledgment to wait for.
    """

    def __init__(self, client: mqtt.Client | None, topic: str):
        self._client = client
        self._topic = topic

    def publish(self, command: Command) -> bool:
        try:
            self._send(command)
        except PublishError as e:
            log.warning("[MQTT] command %s not sent: %s", command.accion, e)
            return False
        log.info("[MQTT] command %s -> %s", command.accion, self._topic)
        return True

    def _send(self, command: Command) -> None:
        if self._client is None or not self._client.is_connected():
            raise PublishError("MQTT client not connected")
        payload = json.dumps(command.to_payload(), ensure_ascii=False)
        try:
            info = self._client.publish(self._topic, payload, qos=0, retain=False)
        except (ValueError, OSError) as e:
            raise PublishError(str(e)) from e
        # paho v2: info.rc == MQTT_ERR_SUCCESS (0) when queued
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise PublishError(f"publish rc={info.rc}")
