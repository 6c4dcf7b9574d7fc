class DomusError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CommandValidationError(DomusError):
    """Malformed or out-of-range command input. Raised before any I/O."""

    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class DeviceNotFoundError(DomusError):
    status_code = 404

    def __init__(self, device_id: int):
        super().__init__("Dispositivo no encontrado")
        self.device_id = device_id


class PersistenceError(DomusError):
    """The device or telemetry store failed on the primary path."""


class PublishError(DomusError):
    """Hand-off to the MQTT client failed. Callers of publish() only see False."""


class AnalysisUnavailable(DomusError):
    pass
