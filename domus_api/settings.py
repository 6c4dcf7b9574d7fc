from pydantic import BaseModel
import os


def _int_list(raw: str) -> list[int]:
    return [int(part) for part in raw.split(",") if part.strip()]


class Settings(BaseModel):
    database_url: str = os.getenv("DATABASE_URL", "postgresql://domus:domus_pw@db:5432/domus")
    cors_origins: list[str] = os.getenv("CORS_ORIGINS", "http://localhost:4173,http://localhost:5173").split(",")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    mqtt_host: str = os.getenv("MQTT_HOST", "mqtt")
    mqtt_port: int = int(os.getenv("MQTT_PORT", "1883"))
    mqtt_username: str | None = os.getenv("MQTT_USERNAME") or None
    mqtt_password: str | None = os.getenv("MQTT_PASSWORD") or None
    mqtt_command_topic: str = os.getenv("MQTT_COMMAND_TOPIC", "robot/comandos")
    mqtt_telemetry_topic: str = os.getenv("MQTT_TELEMETRY_TOPIC", "robot/telemetria/#")

    # Bearer auth; empty token means development mode (no auth)
    api_token: str | None = os.getenv("API_TOKEN") or None
    api_user_id: int = int(os.getenv("API_USER_ID", "1"))
    api_user_role: str = os.getenv("API_USER_ROLE", "admin")

    default_device_id: int = int(os.getenv("DEFAULT_DEVICE_ID", "1"))

    openai_api_key: str | None = os.getenv("OPENAI_API_KEY") or None
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    ai_analysis_interval_seconds: int = int(os.getenv("AI_ANALYSIS_INTERVAL_SECONDS", "3600"))
    # ambient sensors fed into the risk analysis prompt
    ai_sensor_devices: list[int] = _int_list(os.getenv("AI_SENSOR_DEVICES", "2,3"))


settings = Settings()
