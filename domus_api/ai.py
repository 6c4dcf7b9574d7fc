"""
Environmental risk analysis over the latest ambient sensor readings.

Pipeline: latest reading per configured sensor -> Spanish prompt -> OpenAI
Responses API -> persisted ai_interactions row.

Env:
  OPENAI_API_KEY=...                  # required; without it analysis is unavailable
  OPENAI_MODEL=gpt-4o-mini            # default below
  AI_SENSOR_DEVICES=2,3               # sensor_data device ids used as context
  AI_ANALYSIS_INTERVAL_SECONDS=3600   # periodic run, 0 disables
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from .db import SessionFactory
from .errors import AnalysisUnavailable, DomusError, PersistenceError
from .models import AIInteraction, Device, SensorReading

# OpenAI Responses API
from openai import OpenAI, OpenAIError

log = logging.getLogger("ia")

DEFAULT_SENSOR_NAMES = {2: "Sensor de temperatura", 3: "Sensor de humedad"}

PROMPT_TEMPLATE = (
    "Eres un asistente experto en análisis de datos ambientales y robótica.\n"
    "Analiza la siguiente pregunta y proporciona recomendaciones basadas en buenas prácticas.\n\n"
    "¿Deberia tomar precauciones en base a estos datos de mi hogar o no hace falta?: {context}\n\n"
    "Proporciona respuestas claras, concisas y accionables. "
    "En la respuesta no incluyas asteriscos, ni numerales, ni guiones"
)


def _response_text(resp: Any) -> str:
    text = getattr(resp, "output_text", None) or ""
    if text:
        return text
    parts: List[str] = []
    for block in getattr(resp, "output", None) or []:
        for c in getattr(block, "content", None) or []:
            if getattr(c, "type", None) == "output_text":
                parts.append(getattr(c, "text", "") or "")
    return "\n".join(parts).strip()


def _total_tokens(resp: Any) -> Optional[int]:
    usage = getattr(resp, "usage", None)
    total = getattr(usage, "total_tokens", None)
    return int(total) if isinstance(total, int) else None


class RiskAnalyzer:
    def __init__(
        self,
        sessions: SessionFactory,
        api_key: Optional[str],
        model: str,
        sensor_devices: List[int],
        client_factory: Optional[Callable[[str], Any]] = None,
    ):
        self._sessions = sessions
        self._api_key = api_key
        self.model = model
        self._sensor_devices = sensor_devices
        self._client_factory = client_factory or (lambda key: OpenAI(api_key=key, max_retries=0))

    def build_sensor_context(self) -> str:
        context = "Datos más recientes de los sensores:\n\n"
        try:
            with self._sessions() as s:
                for device_id in self._sensor_devices:
                    device = s.get(Device, device_id)
                    name = device.nombre if device else DEFAULT_SENSOR_NAMES.get(device_id, f"Sensor {device_id}")
                    latest = s.exec(
                        select(SensorReading)
                        .where(SensorReading.dispositivo_id == device_id)
                        .order_by(SensorReading.created_at.desc(), SensorReading.id.desc())
                        .limit(1)
                    ).first()
                    if latest is None:
                        context += f"{name}: sin datos disponibles.\n\n"
                        continue
                    row = {
                        "dispositivo_id": latest.dispositivo_id,
                        "data": latest.data,
                        "created_at": latest.created_at.isoformat(),
                    }
                    context += f"{name}:\n{json.dumps(row, indent=2, ensure_ascii=False)}\n\n"
        except SQLAlchemyError as e:
            log.error("Error al construir contexto de sensores: %s", e)
            return "Error al obtener datos de sensores."
        return context

    def analyze(self, user_id: Optional[int] = None) -> Dict[str, str]:
        if not self._api_key:
            raise AnalysisUnavailable("OpenAI API Key no configurada")

        prompt = PROMPT_TEMPLATE.format(context=self.build_sensor_context())
        client = self._client_factory(self._api_key)
        try:
            resp = client.responses.create(model=self.model, input=prompt)
        except OpenAIError as e:
            log.error("Error en análisis IA: %s", e)
            raise DomusError("Error al procesar análisis con IA") from e

        text = _response_text(resp)
        if not text:
            raise DomusError("Error al procesar análisis con IA")

        try:
            with self._sessions() as s:
                s.add(AIInteraction(
                    user_id=user_id,
                    prompt=prompt,
                    response=text,
                    model=self.model,
                    tokens_used=_total_tokens(resp),
                    meta={"tipo_analisis": "general"},
                ))
                s.commit()
        except SQLAlchemyError as e:
            log.error("No se pudo guardar la interacción IA: %s", e)
            raise PersistenceError("Error al procesar análisis con IA") from e

        return {"respuesta": text, "modelo": self.model}

    def history(self, user_id: Optional[int], limit: int = 50) -> List[AIInteraction]:
        """Latest interactions first. ``user_id=None`` means all users (admin view)."""
        stmt = select(AIInteraction)
        if user_id is not None:
            stmt = stmt.where(AIInteraction.user_id == user_id)
        stmt = stmt.order_by(AIInteraction.created_at.desc(), AIInteraction.id.desc()).limit(limit)
        return self._all(stmt)

    def stats(self, user_id: Optional[int]) -> Dict[str, Any]:
        stmt = select(AIInteraction)
        if user_id is not None:
            stmt = stmt.where(AIInteraction.user_id == user_id)
        rows = self._all(stmt)
        total_tokens = sum(r.tokens_used or 0 for r in rows)
        total_cost = sum(r.costo or 0 for r in rows)
        return {
            "totalInteracciones": len(rows),
            "totalTokens": total_tokens,
            "totalCosto": f"{total_cost:.4f}",
            "promedioTokensPorInteraccion": f"{(total_tokens / len(rows)) if rows else 0:.0f}",
            "modelos": sorted({r.model for r in rows}),
        }

    def _all(self, stmt) -> List[AIInteraction]:
        try:
            with self._sessions() as s:
                return list(s.exec(stmt).all())
        except SQLAlchemyError as e:
            log.error("ai_interactions query failed: %s", e)
            raise PersistenceError("Error al obtener historial") from e


async def run_periodic_analysis(analyzer: RiskAnalyzer, interval_seconds: int, user_id: Optional[int]):
    while True:
        await asyncio.sleep(interval_seconds)
        log.info("⏰ Ejecutando análisis IA automático...")
        try:
            await asyncio.to_thread(analyzer.analyze, user_id)
        except DomusError as e:
            log.warning("Análisis IA automático falló: %s", e.message)
        except Exception:
            log.exception("Análisis IA automático terminó con error inesperado")
