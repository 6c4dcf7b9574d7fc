"""Tests for the MQTT side: command publishing and telemetry ingestion."""
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import paho.mqtt.client as mqtt
import pytest

from domus_api.commands import Command
from domus_api.mqtt_handler import handle_telemetry
from domus_api.publisher import MqttCommandPublisher
from domus_api.stores import TelemetryStore


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def mock_client():
    client = MagicMock()
    client.is_connected = MagicMock(return_value=True)
    client.publish = MagicMock(return_value=SimpleNamespace(rc=mqtt.MQTT_ERR_SUCCESS))
    return client


@pytest.fixture
def store(sessions):
    return TelemetryStore(sessions)


# =============================================================================
# PUBLISHER
# =============================================================================

class TestMqttCommandPublisher:

    def test_publish_accepted(self, mock_client):
        pub = MqttCommandPublisher(mock_client, "robot/comandos")
        assert pub.publish(Command("mover", {"velocidad": 10, "direccion": "adelante"})) is True

        topic, payload = mock_client.publish.call_args.args
        assert topic == "robot/comandos"
        assert json.loads(payload) == {"accion": "mover", "datos": {"velocidad": 10, "direccion": "adelante"}}
        assert mock_client.publish.call_args.kwargs == {"qos": 0, "retain": False}

    def test_rc_error_is_not_accepted(self, mock_client):
        mock_client.publish.return_value = SimpleNamespace(rc=mqtt.MQTT_ERR_NO_CONN)
        assert MqttCommandPublisher(mock_client, "t").publish(Command("parar")) is False

    def test_disconnected_client(self, mock_client):
        mock_client.is_connected.return_value = False
        assert MqttCommandPublisher(mock_client, "t").publish(Command("parar")) is False
        mock_client.publish.assert_not_called()

    def test_no_client(self):
        assert MqttCommandPublisher(None, "t").publish(Command("parar")) is False

    def test_client_exception_reported_as_false(self, mock_client):
        mock_client.publish.side_effect = ValueError("Invalid topic.")
        assert MqttCommandPublisher(mock_client, "t").publish(Command("calibrar")) is False


# =============================================================================
# TELEMETRY INGESTION
# =============================================================================

class TestHandleTelemetry:

    def test_position_message(self, store):
        row = handle_telemetry(
            "robot/telemetria/posicion",
            {"dispositivo_id": 1, "x": 1.5, "y": -2, "angulo": 45, "bateria": 87, "fecha": "2026-01-01T10:00:00Z"},
            store,
            default_device_id=1,
        )
        assert row.id is not None
        latest = store.latest_position(1)
        assert (latest.x, latest.y, latest.angulo, latest.bateria) == (1.5, -2.0, 45.0, 87.0)
        assert latest.fecha.hour == 10

    def test_position_defaults_device_and_time(self, store):
        handle_telemetry("robot/telemetria/posicion", {"x": 3}, store, default_device_id=4)
        latest = store.latest_position(4)
        assert latest.x == 3.0
        assert latest.bateria == 0.0
        assert latest.fecha is not None

    def test_invalid_timestamp_falls_back_to_now(self, store):
        handle_telemetry("robot/telemetria/posicion", {"x": 1, "fecha": "ayer"}, store, default_device_id=1)
        assert store.latest_position(1).fecha is not None

    def test_detection_message(self, store):
        handle_telemetry(
            "robot/telemetria/deteccion",
            {"objeto": "pelota", "confianza": 0.93, "distancia": 120},
            store,
            default_device_id=1,
        )
        rows = store.query_detections(1, "pelota")
        assert len(rows) == 1
        assert rows[0].confianza == pytest.approx(0.93)

    def test_detection_without_label_rejected(self, store):
        with pytest.raises(ValueError):
            handle_telemetry("robot/telemetria/deteccion", {"confianza": 0.5}, store, default_device_id=1)

    def test_non_numeric_position_rejected(self, store):
        with pytest.raises(ValueError):
            handle_telemetry("robot/telemetria/posicion", {"x": "lejos"}, store, default_device_id=1)

    def test_other_topics_ignored(self, store):
        assert handle_telemetry("robot/telemetria/estado", {"x": 1}, store, default_device_id=1) is None
        assert store.query_positions(1, 10) == []
