import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from domus_api.audit import AuditEmitter
from domus_api.errors import DeviceNotFoundError, PersistenceError
from domus_api.main import app, get_robot_service
from domus_api.models import ActionLog, Alert, DeviceState
from domus_api.robot import Actor, RobotService
from domus_api.stores import DeviceStore, TelemetryStore


class FailingDeviceStore(DeviceStore):
    def set_state(self, device_id, state):
        raise PersistenceError("Error actualizando estado del dispositivo")


def _broken_sessions():
    raise OperationalError("INSERT", {}, Exception("database is locked"))


@pytest.fixture
def failing_write_service(sessions, publisher):
    return RobotService(
        devices=FailingDeviceStore(sessions),
        telemetry=TelemetryStore(sessions),
        publisher=publisher,
        audit=AuditEmitter(sessions),
    )


class TestPowerTransitionResult:

    def test_encender_result(self, service, robot_device):
        result = service.power_on(1, Actor(user_id=5))
        assert result.state is DeviceState.ACTIVE
        assert result.command_accepted is True
        assert result.stop_accepted is None
        assert result.log_entry.ok and result.alert.ok
        assert result.message == "✅ Robot encendido correctamente"

    def test_apagar_reports_stop(self, service, robot_device, publisher):
        publisher.accept = False
        result = service.power_off(1, Actor(user_id=5))
        assert result.state is DeviceState.INACTIVE
        assert result.stop_accepted is False
        assert result.command_accepted is False
        assert publisher.actions == ["parar", "apagar"]

    def test_not_found(self, service, publisher):
        with pytest.raises(DeviceNotFoundError):
            service.power_on(999999, Actor())
        assert publisher.sent == []


class TestStateWriteFailure:

    def test_encender_write_failure_is_terminal(self, failing_write_service, robot_device, publisher, sessions):
        with pytest.raises(PersistenceError):
            failing_write_service.power_on(1, Actor(user_id=1))
        assert publisher.sent == []
        with sessions() as s:
            assert s.exec(select(ActionLog)).all() == []
            assert s.exec(select(Alert)).all() == []

    def test_apagar_write_failure_sends_only_stop(self, failing_write_service, robot_device, publisher):
        with pytest.raises(PersistenceError):
            failing_write_service.power_off(1, Actor(user_id=1))
        assert publisher.actions == ["parar"]

    def test_http_maps_to_500(self, client, failing_write_service, robot_device):
        app.dependency_overrides[get_robot_service] = lambda: failing_write_service
        r = client.post("/api/robot/encender", json={"dispositivo_id": 1})
        assert r.status_code == 500
        assert "error" in r.json()


class TestBestEffortAudit:

    def test_audit_failure_does_not_change_outcome(self, sessions, publisher, robot_device):
        service = RobotService(
            devices=DeviceStore(sessions),
            telemetry=TelemetryStore(sessions),
            publisher=publisher,
            audit=AuditEmitter(_broken_sessions),
        )
        result = service.power_on(1, Actor(user_id=1))
        assert result.state is DeviceState.ACTIVE
        assert result.command_accepted is True
        assert result.log_entry.attempted and not result.log_entry.ok
        assert result.alert.attempted and not result.alert.ok
        assert "database is locked" in result.log_entry.error

    def test_audit_failure_over_http(self, client, sessions, publisher, robot_device):
        service = RobotService(
            devices=DeviceStore(sessions),
            telemetry=TelemetryStore(sessions),
            publisher=publisher,
            audit=AuditEmitter(_broken_sessions),
        )
        app.dependency_overrides[get_robot_service] = lambda: service
        r = client.post("/api/robot/apagar", json={"dispositivo_id": 1})
        assert r.status_code == 200
        assert r.json()["exito"] is True
