"""Core API service: accepts transactions and forwards them to the database service."""

import logging
import random
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from opentelemetry import metrics, propagate, trace
from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel

from . import config
from .telemetry import CoreInstruments

SERVICE_NAME = "core-api-service"

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["core"])
tracer = trace.get_tracer(SERVICE_NAME)


class DatabaseServiceError(Exception):
    """The database service could not be reached or answered with an error."""


class TransactionRequest(BaseModel):
    user_id: str = ""
    amount: float | None = None
    operation: str = ""


class DatabaseClient:
    """Thin httpx client for the database service."""

    def __init__(self, base_url: str = config.DB_SERVICE_URL,
                 timeout: float = config.DB_CLIENT_TIMEOUT,
                 transport: httpx.BaseTransport = None):
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def query(self, req: TransactionRequest) -> dict:
        with tracer.start_as_current_span("Database Service Call") as span:
            span.set_attribute("db.operation", req.operation)
            span.set_attribute("db.user_id",   req.user_id)

            headers = {}
            propagate.inject(headers)
            try:
                resp = self._client.post("/db/query", json=req.model_dump(), headers=headers)
            except httpx.HTTPError as e:
                raise DatabaseServiceError(f"database service call failed: {e}") from e

            if resp.status_code != 200:
                raise DatabaseServiceError(f"database service returned error: {resp.text.strip()}")
            try:
                return resp.json()
            except ValueError as e:
                raise DatabaseServiceError(f"failed to unmarshal response: {e}") from e

    def health(self) -> bool:
        headers = {}
        propagate.inject(headers)
        try:
            resp = self._client.get("/db/health", headers=headers)
        except httpx.HTTPError as e:
            log.warning("Database health probe failed: %s", e)
            return False
        return resp.status_code == 200

    def close(self):
        self._client.close()


class CoreService:
    def __init__(self, db_client: DatabaseClient = None, meter=None, rng: random.Random = None):
        self.db = db_client or DatabaseClient()
        self.instruments = CoreInstruments(meter or metrics.get_meter(SERVICE_NAME))
        self.rng = rng or random.Random()


def _service(request: Request) -> CoreService:
    return request.app.state.service


def _new_transaction_id(rng: random.Random) -> str:
    return f"txn_{int(time.time())}_{rng.randint(0, 9999)}"


@router.api_route("/transaction", methods=["GET", "POST"])
def transaction(request: Request, body: TransactionRequest | None = None):
    service = _service(request)
    ins = service.instruments
    start = time.perf_counter()

    with tracer.start_as_current_span("Process Transaction") as span:
        try:
            if body is None and request.method != "GET":
                span.set_status(Status(StatusCode.ERROR, "invalid request body"))
                return _reject_body(service, "missing transaction body")
            if body is None:
                body = TransactionRequest(
                    user_id=f"user_{service.rng.randint(0, 999)}",
                    amount=service.rng.random() * 1000,
                    operation="balance_check",
                )

            txn_id = _new_transaction_id(service.rng)
            span.set_attribute("transaction.id",        txn_id)
            span.set_attribute("user.id",               body.user_id)
            span.set_attribute("transaction.operation", body.operation)
            if body.amount is not None:
                span.set_attribute("transaction.amount", body.amount)

            log.info("Processing transaction: %s for user: %s", txn_id, body.user_id)

            if body.amount is not None and body.amount <= 0:
                span.set_status(Status(StatusCode.ERROR, "invalid amount"))
                ins.errors.add(1, {"error_type": "validation_error"})
                return JSONResponse(status_code=400, content={
                    "transaction_id": txn_id,
                    "status": "error",
                    "error": "amount must be positive",
                    "timestamp": int(time.time()),
                })

            db_start = time.perf_counter()
            try:
                data = service.db.query(body)
            except DatabaseServiceError as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, "database service call failed"))
                ins.transactions.add(1, {"status": "failed", "error_type": "database_error"})
                ins.errors.add(1, {"error_type": "database_error"})
                log.error("Transaction failed: %s - Database error: %s", txn_id, e)
                return JSONResponse(status_code=500, content={
                    "transaction_id": txn_id,
                    "status": "failed",
                    "error": f"database service error: {e}",
                    "timestamp": int(time.time()),
                })
            finally:
                ins.db_call_duration.record(time.perf_counter() - db_start,
                                            {"db_operation": body.operation})

            ins.transactions.add(1, {"status": "success", "operation": body.operation})
            log.info("Transaction successful: %s", txn_id)
            return {
                "transaction_id": txn_id,
                "status": "success",
                "timestamp": int(time.time()),
                "data": data,
            }
        finally:
            ins.response_time.record(time.perf_counter() - start, {
                "service": "core-api",
                "operation": "transaction",
                "method": request.method,
            })


@router.get("/user/{user_id}/balance")
def user_balance(user_id: str, request: Request):
    service = _service(request)
    with tracer.start_as_current_span("Get User Balance") as span:
        user_id = user_id or "user_default"
        span.set_attribute("user.id", user_id)
        try:
            return service.db.query(TransactionRequest(user_id=user_id, operation="get_balance"))
        except DatabaseServiceError as e:
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, "failed to get balance"))
            log.error("Balance lookup failed for %s: %s", user_id, e)
            return JSONResponse(status_code=500, content={"error": "failed to get balance"})


@router.get("/health")
def health(request: Request):
    service = _service(request)
    with tracer.start_as_current_span("Health Check") as span:
        db_healthy = service.db.health()
        if not db_healthy:
            span.set_status(Status(StatusCode.ERROR, "database service unhealthy"))
        return {
            "status": "healthy" if db_healthy else "degraded",
            "database_healthy": db_healthy,
            "timestamp": int(time.time()),
        }


def _reject_body(service: CoreService, reason) -> JSONResponse:
    service.instruments.errors.add(1, {"error_type": "invalid_request"})
    log.warning("Rejected transaction body: %s", reason)
    return JSONResponse(status_code=400, content={"status": "error", "error": "invalid request body"})


async def _invalid_body(request: Request, exc: RequestValidationError):
    with tracer.start_as_current_span("Process Transaction") as span:
        span.set_status(Status(StatusCode.ERROR, "invalid request body"))
        return _reject_body(_service(request), exc.errors())


def create_app(service: CoreService = None) -> FastAPI:
    service = service or CoreService()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            service.db.close()

    app = FastAPI(title="Core API Service", version="1.0.0", lifespan=lifespan)
    app.state.service = service
    app.include_router(router)
    app.add_exception_handler(RequestValidationError, _invalid_body)
    return app
