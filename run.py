"""
Run the Flow Engine API with uvicorn.

Usage:
    python run.py
    python run.py --reload          # Development mode with auto-reload
    python run.py --no-scheduler    # API only; SLA sweeps run elsewhere
"""
import argparse
import os

import uvicorn


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the Flow Engine API server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of worker processes (default: 1, ignored if --reload is set)"
    )
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="Do not start the in-process SLA sweep scheduler"
    )
    return parser


def main():
    args = build_parser().parse_args()

    if args.no_scheduler:
        os.environ["SCHEDULER_ENABLED"] = "false"

    workers = 1 if args.reload else args.workers
    print(f"Starting Flow Engine on {args.host}:{args.port} "
          f"(reload={args.reload}, workers={workers}, scheduler={not args.no_scheduler})")

    uvicorn.run(
        "flowengine.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=workers
    )


if __name__ == "__main__":
    main()
