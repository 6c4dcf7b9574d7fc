import pytest
from sqlalchemy.exc import OperationalError

from domus_api.errors import PersistenceError
from domus_api.models import Device, DeviceState
from domus_api.stores import DeviceStore, TelemetryStore


def _broken_sessions():
    raise OperationalError("SELECT", {}, Exception("connection refused"))


class TestDeviceStore:

    def test_get_missing(self, sessions):
        assert DeviceStore(sessions).get(1) is None

    def test_set_state_stamps_updated_at(self, sessions, robot_device):
        before = robot_device.updated_at
        d = DeviceStore(sessions).set_state(1, DeviceState.ACTIVE)
        assert d.estado == "activo"
        # sqlite hands datetimes back naive
        assert d.updated_at.replace(tzinfo=None) >= before.replace(tzinfo=None)

    def test_set_state_rejects_values_outside_enum(self, sessions, robot_device):
        with pytest.raises(ValueError):
            DeviceStore(sessions).set_state(1, "encendido")

    def test_set_state_on_vanished_device(self, sessions):
        with pytest.raises(PersistenceError):
            DeviceStore(sessions).set_state(5, DeviceState.INACTIVE)

    def test_storage_failure_raises_persistence_error(self):
        with pytest.raises(PersistenceError):
            DeviceStore(_broken_sessions).get(1)


class TestTelemetryStore:

    def test_duplicates_are_distinct_samples(self, sessions, add_positions):
        add_positions((9, 1.0), (9, 1.0))
        assert len(TelemetryStore(sessions).query_positions(1, 10)) == 2

    def test_other_devices_are_ignored(self, sessions, add_positions):
        add_positions((9, 1.0))
        store = TelemetryStore(sessions)
        assert store.query_positions(2, 10) == []
        assert store.summarize(2).total_movements == 0

    def test_latest_position(self, sessions, add_positions):
        add_positions((7, 1.0), (11, 5.0), (9, 2.0))
        assert TelemetryStore(sessions).latest_position(1).x == 5.0

    def test_summary_last_activity_spans_both_streams(self, sessions, add_positions, add_detections):
        add_positions((7, 1.0))
        add_detections((9, "gato"))
        summary = TelemetryStore(sessions).summarize(1)
        assert summary.total_movements == 1
        assert summary.total_detections == 1
        assert summary.unique_object_labels == ["gato"]
        assert summary.last_activity.hour == 9

    def test_summary_empty(self, sessions):
        summary = TelemetryStore(sessions).summarize(1)
        assert summary.total_movements == 0
        assert summary.total_detections == 0
        assert summary.unique_object_labels == []
        assert summary.last_activity is None

    def test_read_failure(self):
        with pytest.raises(PersistenceError):
            TelemetryStore(_broken_sessions).query_detections(1)
