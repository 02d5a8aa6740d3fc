"""
Command-line entrypoint.

Usage:
    python -m incident_sim serve database          # :8081, incident clock running
    python -m incident_sim serve core              # :8080, forwards to DB_SERVICE_URL
    python -m incident_sim load --stream 50:1 --stream 30:2
"""

import argparse
import logging

import uvicorn

from . import config, loadgen

log = logging.getLogger("incident_sim")


def serve(service: str, host: str, port: int | None):
    from .telemetry import setup_telemetry

    if service == "database":
        from .database import SERVICE_NAME, create_app
        default_port = config.DB_PORT
    else:
        from .core import SERVICE_NAME, create_app
        default_port = config.CORE_PORT

    shutdown = setup_telemetry(SERVICE_NAME)
    try:
        app = create_app()
        log.info("%s running on %s:%d", SERVICE_NAME, host, port or default_port)
        uvicorn.run(app, host=host, port=port or default_port, log_config=None)
    finally:
        shutdown()


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="incident_sim",
        description="Incident-correlated request simulator for observability pipelines")
    sub = parser.add_subparsers(dest="command", required=True)

    p_serve = sub.add_parser("serve", help="Run one of the simulated services")
    p_serve.add_argument("service", choices=["database", "core"])
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=None,
                         help="Listen port (default: DB_PORT / CORE_PORT)")

    p_load = sub.add_parser("load", help="Send transaction traffic to the core API")
    p_load.add_argument("--url", default=f"http://localhost:{config.CORE_PORT}",
                        help="Core API base URL")
    p_load.add_argument("--stream", dest="streams", action="append", type=loadgen.parse_stream,
                        metavar="COUNT[:DELAY]",
                        help="One request stream; repeat for more (default: 50:1 and 30:2)")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command == "serve":
        serve(args.service, args.host, args.port)
    else:
        counts = loadgen.run_load(args.url, streams=args.streams or loadgen.DEFAULT_STREAMS)
        print(f"ok={counts['ok']} err={counts['err']}")


if __name__ == "__main__":
    main()
