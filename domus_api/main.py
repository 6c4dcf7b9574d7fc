import asyncio
import logging
from typing import Optional

import paho.mqtt.client as mqtt
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .ai import RiskAnalyzer, run_periodic_analysis
from .audit import AuditEmitter
from .auth import CurrentUser, require_user
from .db import SessionFactory, get_engine, init_db, session_factory
from .errors import CommandValidationError, DomusError
from .models import DeviceState
from .mqtt_handler import start_mqtt
from .publisher import MqttCommandPublisher
from .robot import Actor, PowerTransitionResult, RobotService
from .schemas import (
    PowerRequest, PowerResponse, DeviceStateOut, MoveRequest, RotateRequest, SearchRequest,
    CommandResponse, SimpleCommandResponse, PositionOut, DetectionOut, PositionList, DetectionList,
    Coordinates, RobotStatus, ActivitySummary, AnalysisOut, InteractionOut, InteractionList, AIStats,
)
from .stores import DeviceStore, TelemetryStore
from .utils import add_cors
from .settings import settings

logging.basicConfig(level=settings.log_level)
log = logging.getLogger("api")

app = FastAPI(title="Domus Robot API", version="0.1.0")
add_cors(app)


def build_robot_service(sessions: SessionFactory, mqtt_client: Optional[mqtt.Client]) -> RobotService:
    return RobotService(
        devices=DeviceStore(sessions),
        telemetry=TelemetryStore(sessions),
        publisher=MqttCommandPublisher(mqtt_client, settings.mqtt_command_topic),
        audit=AuditEmitter(sessions),
    )


def build_analyzer(sessions: SessionFactory) -> RiskAnalyzer:
    return RiskAnalyzer(
        sessions,
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        sensor_devices=settings.ai_sensor_devices,
    )


@app.on_event("startup")
async def on_startup():
    engine = get_engine()
    init_db(engine)
    sessions = session_factory(engine)

    try:
        app.state.mqtt_client = start_mqtt(settings, TelemetryStore(sessions))
    except (OSError, ValueError) as e:
        log.error("[MQTT] failed to start: %s", e)
        app.state.mqtt_client = None

    app.state.robot = build_robot_service(sessions, app.state.mqtt_client)
    app.state.analyzer = build_analyzer(sessions)

    if settings.ai_analysis_interval_seconds > 0:
        app.state.ai_task = asyncio.create_task(run_periodic_analysis(
            app.state.analyzer, settings.ai_analysis_interval_seconds, settings.api_user_id,
        ))


@app.on_event("shutdown")
async def on_shutdown():
    client = getattr(app.state, "mqtt_client", None)
    if client is not None:
        client.disconnect()
        client.loop_stop()
    task = getattr(app.state, "ai_task", None)
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


def get_robot_service(request: Request) -> RobotService:
    return request.app.state.robot


def get_analyzer(request: Request) -> RiskAnalyzer:
    return request.app.state.analyzer


# ---------------- error mapping ----------------
@app.exception_handler(DomusError)
async def domus_error_handler(request: Request, exc: DomusError):
    body = {"error": exc.message}
    if isinstance(exc, CommandValidationError):
        body["campo"] = exc.field
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    field = errors[0]["loc"][-1] if errors and errors[0].get("loc") else None
    return JSONResponse(
        status_code=400,
        content={"error": "Solicitud inválida", "campo": field, "detalle": str(errors[0].get("msg")) if errors else None},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Error interno", "detalle": str(exc)})


@app.get("/health")
def health(request: Request):
    client = getattr(request.app.state, "mqtt_client", None)
    return {"status": "ok", "mqtt": bool(client is not None and client.is_connected())}


# ---------------- robot ----------------
robot_router = APIRouter(prefix="/api/robot", tags=["robot"])


def _actor(request: Request, user: CurrentUser) -> Actor:
    return Actor(
        user_id=user.id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def _device_id(raw: Optional[int]) -> int:
    return settings.default_device_id if raw is None else raw


def _power_response(r: PowerTransitionResult) -> PowerResponse:
    return PowerResponse(
        exito=True,
        mensaje=r.message,
        estado=r.state.value,
        dispositivo_id=r.device_id,
        comando_mqtt="enviado" if r.command_accepted else "no_disponible",
        timestamp=r.timestamp,
    )


@robot_router.post("/encender", response_model=PowerResponse)
def encender(request: Request, body: Optional[PowerRequest] = None,
             user: CurrentUser = Depends(require_user), robot: RobotService = Depends(get_robot_service)):
    return _power_response(robot.power_on(_device_id(body.dispositivo_id if body else None), _actor(request, user)))


@robot_router.post("/apagar", response_model=PowerResponse)
def apagar(request: Request, body: Optional[PowerRequest] = None,
           user: CurrentUser = Depends(require_user), robot: RobotService = Depends(get_robot_service)):
    return _power_response(robot.power_off(_device_id(body.dispositivo_id if body else None), _actor(request, user)))


@robot_router.put("/estado/{accion}", response_model=PowerResponse)
def cambiar_estado(accion: str, request: Request, body: Optional[PowerRequest] = None,
                   user: CurrentUser = Depends(require_user), robot: RobotService = Depends(get_robot_service)):
    return _power_response(robot.set_power(accion, _device_id(body.dispositivo_id if body else None), _actor(request, user)))


@robot_router.get("/estado-actual", response_model=DeviceStateOut, dependencies=[Depends(require_user)])
def estado_actual(dispositivo_id: Optional[int] = None, robot: RobotService = Depends(get_robot_service)):
    d = robot.current_state(_device_id(dispositivo_id))
    return DeviceStateOut(
        dispositivo_id=d.id,
        nombre=d.nombre,
        tipo=d.tipo,
        estado=d.estado,
        encendido=d.estado == DeviceState.ACTIVE.value,
        ubicacion=d.ubicacion,
        ultima_actualizacion=d.updated_at,
        metadata=d.meta or {},
    )


def _command_response(outcome) -> CommandResponse:
    return CommandResponse(exito=outcome.accepted, mensaje=outcome.message, comando=outcome.params)


def _simple_response(outcome) -> SimpleCommandResponse:
    return SimpleCommandResponse(exito=outcome.accepted, mensaje=outcome.message)


@robot_router.post("/mover", response_model=CommandResponse, dependencies=[Depends(require_user)])
def mover(body: MoveRequest, robot: RobotService = Depends(get_robot_service)):
    return _command_response(robot.move(body.velocidad, body.direccion))


@robot_router.post("/rotar", response_model=CommandResponse, dependencies=[Depends(require_user)])
def rotar(body: RotateRequest, robot: RobotService = Depends(get_robot_service)):
    return _command_response(robot.rotate(body.angulo))


@robot_router.post("/buscar", response_model=CommandResponse, dependencies=[Depends(require_user)])
def buscar(body: SearchRequest, robot: RobotService = Depends(get_robot_service)):
    return _command_response(robot.search(body.objeto, body.distancia_max))


@robot_router.post("/parar", response_model=SimpleCommandResponse, dependencies=[Depends(require_user)])
def parar(robot: RobotService = Depends(get_robot_service)):
    return _simple_response(robot.stop())


@robot_router.post("/volver_inicio", response_model=SimpleCommandResponse, dependencies=[Depends(require_user)])
def volver_inicio(robot: RobotService = Depends(get_robot_service)):
    return _simple_response(robot.return_home())


@robot_router.post("/calibrar", response_model=SimpleCommandResponse, dependencies=[Depends(require_user)])
def calibrar(robot: RobotService = Depends(get_robot_service)):
    return _simple_response(robot.calibrate())


@robot_router.get("/posicion", response_model=PositionList, dependencies=[Depends(require_user)])
def posicion(limit: int = Query(1, ge=1), dispositivo_id: Optional[int] = None,
             robot: RobotService = Depends(get_robot_service)):
    rows = robot.positions(_device_id(dispositivo_id), limit)
    return PositionList(total=len(rows), data=[PositionOut.model_validate(r) for r in rows])


@robot_router.get("/detecciones", response_model=DetectionList, dependencies=[Depends(require_user)])
def detecciones(limite: int = Query(50, ge=1), objeto: Optional[str] = None, dispositivo_id: Optional[int] = None,
                robot: RobotService = Depends(get_robot_service)):
    rows = robot.detections(_device_id(dispositivo_id), objeto, limite)
    return DetectionList(total=len(rows), data=[DetectionOut.model_validate(r) for r in rows])


@robot_router.get("/detecciones/{objeto}", response_model=DetectionList, dependencies=[Depends(require_user)])
def detecciones_objeto(objeto: str, limite: int = Query(50, ge=1), dispositivo_id: Optional[int] = None,
                       robot: RobotService = Depends(get_robot_service)):
    rows = robot.detections(_device_id(dispositivo_id), objeto, limite)
    return DetectionList(objeto=objeto, total=len(rows), data=[DetectionOut.model_validate(r) for r in rows])


@robot_router.get("/estado", response_model=RobotStatus, dependencies=[Depends(require_user)])
def estado(dispositivo_id: Optional[int] = None, robot: RobotService = Depends(get_robot_service)):
    o = robot.overview(_device_id(dispositivo_id))
    return RobotStatus(
        dispositivo=o.device_name,
        estado=o.state,
        bateria=o.battery,
        posicion=Coordinates(x=o.x, y=o.y, angulo=o.angle),
        timestamp=o.timestamp,
    )


@robot_router.get("/historial-movimientos", response_model=PositionList, dependencies=[Depends(require_user)])
def historial_movimientos(limite: int = Query(100, ge=1), dispositivo_id: Optional[int] = None,
                          robot: RobotService = Depends(get_robot_service)):
    rows = robot.movement_history(_device_id(dispositivo_id), limite)
    return PositionList(total=len(rows), data=[PositionOut.model_validate(r) for r in rows])


@robot_router.get("/resumen", response_model=ActivitySummary, dependencies=[Depends(require_user)])
def resumen(dispositivo_id: Optional[int] = None, robot: RobotService = Depends(get_robot_service)):
    s = robot.summary(_device_id(dispositivo_id))
    return ActivitySummary(
        totalMovimientos=s.total_movements,
        totalDetecciones=s.total_detections,
        objetosDetectados=s.unique_object_labels,
        ultimaActividad=s.last_activity,
    )


# ---------------- ia ----------------
ia_router = APIRouter(prefix="/api/ia", tags=["ia"])


@ia_router.post("/analizar", response_model=AnalysisOut)
def analizar(user: CurrentUser = Depends(require_user), analyzer: RiskAnalyzer = Depends(get_analyzer)):
    return AnalysisOut(**analyzer.analyze(user.id))


@ia_router.get("/historial", response_model=InteractionList)
def historial_ia(limite: int = Query(50, ge=1), user: CurrentUser = Depends(require_user),
                 analyzer: RiskAnalyzer = Depends(get_analyzer)):
    rows = analyzer.history(None if user.is_admin else user.id, limite)
    return InteractionList(total=len(rows), data=[InteractionOut.model_validate(r) for r in rows])


@ia_router.get("/stats", response_model=AIStats)
def stats_ia(user: CurrentUser = Depends(require_user), analyzer: RiskAnalyzer = Depends(get_analyzer)):
    return AIStats(**analyzer.stats(None if user.is_admin else user.id))


app.include_router(robot_router)
app.include_router(ia_router)
