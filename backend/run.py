"""
Serve the incident workflow API with uvicorn.

Usage:
    python run.py
    python run.py --reload            # Development mode with auto-reload
    python run.py --no-sla-monitor    # API only; run the SLA scan elsewhere

Host and port default to API_HOST / API_PORT from the environment or .env.
"""
import argparse
import os

import uvicorn

from incidentflow.config.settings import settings


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Incident Workflow Engine API server")
    parser.add_argument("--host", default=settings.api_host, help=f"Bind address (default: {settings.api_host})")
    parser.add_argument("--port", type=int, default=settings.api_port, help=f"Port (default: {settings.api_port})")
    parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Worker processes; each runs its own SLA monitor unless --no-sla-monitor is given"
    )
    parser.add_argument("--no-sla-monitor", action="store_true", help="Do not start the background SLA scan")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    # Workers re-read settings from the environment on import
    if args.no_sla_monitor:
        os.environ["SLA_MONITOR_ENABLED"] = "false"

    workers = 1 if args.reload else args.workers
    print(f"Incident Workflow Engine on http://{args.host}:{args.port} "
          f"(reload={args.reload}, workers={workers}, sla_monitor={not args.no_sla_monitor})")

    uvicorn.run(
        "incidentflow.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=workers,
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    main()
