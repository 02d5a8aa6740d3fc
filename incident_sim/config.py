import os

# OTLP collector (gRPC)
OTEL_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
OTEL_SDK_DISABLED = os.getenv("OTEL_SDK_DISABLED", "false").lower() == "true"
METRIC_EXPORT_INTERVAL_MS = int(os.getenv("METRIC_EXPORT_INTERVAL_MS", "5000"))

# Resource attributes
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "1.0.0")
DEPLOYMENT_ENVIRONMENT = os.getenv("DEPLOYMENT_ENVIRONMENT", "development")

# Services
DB_SERVICE_URL = os.getenv("DB_SERVICE_URL", "http://127.0.0.1:8081")
DB_PORT = int(os.getenv("DB_PORT", "8081"))
CORE_PORT = int(os.getenv("CORE_PORT", "8080"))
DB_CLIENT_TIMEOUT = float(os.getenv("DB_CLIENT_TIMEOUT", "30"))  # seconds

# Incident clock
INCIDENT_TICK_SECONDS = float(os.getenv("INCIDENT_TICK_SECONDS", "45"))
INCIDENT_START_PROBABILITY = float(os.getenv("INCIDENT_START_PROBABILITY", "0.25"))
INCIDENT_MIN_SECONDS = float(os.getenv("INCIDENT_MIN_SECONDS", "15"))
INCIDENT_MAX_SECONDS = float(os.getenv("INCIDENT_MAX_SECONDS", "90"))
