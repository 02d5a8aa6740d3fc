"""Database service: FastAPI front for the request outcome simulator."""

import logging
import random
import time
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from opentelemetry import metrics, trace
from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel

from .clock import IncidentClock
from .simulator import OperationRequest, check_health, simulate
from .state import IncidentState
from .telemetry import DatabaseInstruments

SERVICE_NAME = "database-service"

log = logging.getLogger(__name__)
router = APIRouter(prefix="/db", tags=["database"])
tracer = trace.get_tracer(SERVICE_NAME)


class QueryRequest(BaseModel):
    user_id: str = ""
    amount: float | None = None
    operation: str = ""


class DatabaseEngine:
    """Everything one database-service process shares across requests."""

    def __init__(self, state: IncidentState = None, clock: IncidentClock = None,
                 rng: random.Random = None, sleep=time.sleep, meter=None):
        self.state = state or IncidentState()
        self.clock = clock or IncidentClock(self.state)
        self.rng = rng
        self.sleep = sleep
        self.instruments = DatabaseInstruments(meter or metrics.get_meter(SERVICE_NAME), self.state)
        self.clock.add_listener(self.instruments.on_transition)


def _engine(request: Request) -> DatabaseEngine:
    return request.app.state.engine


@router.post("/query")
def query(body: QueryRequest, request: Request):
    engine = _engine(request)
    snapshot = engine.state.snapshot()
    op_request = OperationRequest(user_id=body.user_id, operation=body.operation, amount=body.amount)

    with tracer.start_as_current_span("Database Query") as span, engine.instruments.connection():
        span.set_attribute("db.system",       "postgresql")
        span.set_attribute("db.operation",    body.operation)
        span.set_attribute("db.user_id",      body.user_id)
        span.set_attribute("incident.active", snapshot.active)
        span.set_attribute("incident.type",   snapshot.kind.value)

        outcome = simulate(op_request, snapshot, rng=engine.rng, sleep=engine.sleep)
        engine.instruments.record(outcome)
        span.set_attribute("db.query_time_ms", outcome.elapsed_ms)

        if not outcome.success:
            span.record_exception(RuntimeError(outcome.error_message))
            span.set_status(Status(StatusCode.ERROR, outcome.error_message))
            log.error("Database query failed: %s - %s", body.operation, outcome.error_message)
            return JSONResponse(status_code=500, content=outcome.to_response())

        log.info("Database query successful: %s - %s", body.operation, outcome.payload)
        return outcome.to_response()


@router.get("/health")
def health(request: Request):
    engine = _engine(request)
    with tracer.start_as_current_span("Database Health Check") as span:
        report = check_health(engine.state.snapshot(), rng=engine.rng)
        span.set_attribute("db.healthy",    report.healthy)
        span.set_attribute("incident.type", report.snapshot.kind.value)

        if report.healthy:
            return {
                "status": "healthy",
                "connections": report.connections,
                "uptime": int(time.time() - request.app.state.started_at),
            }

        span.set_status(Status(StatusCode.ERROR, "database unhealthy"))
        return JSONResponse(status_code=503, content={
            "status": "unhealthy",
            "incident_type": report.snapshot.kind.value,
            "error": "database service degraded",
        })


@router.get("/metrics")
def incident_metrics(request: Request):
    engine = _engine(request)
    snapshot = engine.state.snapshot()
    r = engine.rng or random
    return {
        "incident_active": snapshot.active,
        "incident_type": snapshot.kind.value,
        "active_connections": r.randint(1, 20),
        "timestamp": int(time.time()),
    }


async def _invalid_body(request: Request, exc: RequestValidationError):
    log.warning("Rejected malformed query body: %s", exc.errors())
    return JSONResponse(status_code=400, content={"status": "error", "error": "invalid request body"})


def create_app(engine: DatabaseEngine = None) -> FastAPI:
    engine = engine or DatabaseEngine()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine.clock.start()
        try:
            yield
        finally:
            engine.clock.stop()

    app = FastAPI(title="Database Service", version="1.0.0", lifespan=lifespan)
    app.state.engine = engine
    app.state.started_at = time.time()
    app.include_router(router)
    app.add_exception_handler(RequestValidationError, _invalid_body)
    return app
