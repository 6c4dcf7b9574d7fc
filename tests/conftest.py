from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from domus_api.ai import RiskAnalyzer
from domus_api.audit import AuditEmitter
from domus_api.db import session_factory
from domus_api.main import app, get_analyzer, get_robot_service
from domus_api.models import Device, Detection, PositionSample
from domus_api.robot import RobotService
from domus_api.settings import settings
from domus_api.stores import DeviceStore, TelemetryStore


class FakePublisher:
    """Records every command instead of talking to a broker."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.sent = []

    def publish(self, command) -> bool:
        self.sent.append(command)
        return self.accept

    @property
    def actions(self):
        return [c.accion for c in self.sent]


def ts(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, 1, hour, minute, tzinfo=timezone.utc)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sessions(engine):
    return session_factory(engine)


@pytest.fixture
def robot_device(sessions):
    with sessions() as s:
        d = Device(id=1, nombre="Robot 1", tipo="robot", ubicacion="salon", estado="inactivo", meta={"modelo": "v1"})
        s.add(d)
        s.commit()
    return d


@pytest.fixture
def add_positions(sessions):
    def _add(*samples):
        with sessions() as s:
            for hour, x in samples:
                s.add(PositionSample(dispositivo_id=1, x=x, y=x * 2, angulo=90, bateria=80 - hour, fecha=ts(hour)))
            s.commit()
    return _add


@pytest.fixture
def add_detections(sessions):
    def _add(*items):
        with sessions() as s:
            for hour, label in items:
                s.add(Detection(dispositivo_id=1, objeto_detectado=label, confianza=0.9, fecha=ts(hour)))
            s.commit()
    return _add


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def service(sessions, publisher):
    return RobotService(
        devices=DeviceStore(sessions),
        telemetry=TelemetryStore(sessions),
        publisher=publisher,
        audit=AuditEmitter(sessions),
    )


@pytest.fixture
def analyzer(sessions):
    return RiskAnalyzer(sessions, api_key=None, model="gpt-4o-mini", sensor_devices=[2, 3])


@pytest.fixture
def client(service, analyzer, monkeypatch):
    monkeypatch.setattr(settings, "api_token", None)
    monkeypatch.setattr(settings, "default_device_id", 1)
    app.dependency_overrides[get_robot_service] = lambda: service
    app.dependency_overrides[get_analyzer] = lambda: analyzer
    yield TestClient(app)
    app.dependency_overrides.clear()
