import asyncio
import logging
import argparse

import uvicorn

from docqueue.core.config import QueueConfig
from docqueue.server.api import create_app
from docqueue.server.registry import QueueRegistry
from docqueue.server.tcp import TcpFrontend


def parse_args(argv=None) -> argparse.Namespace:
    defaults = QueueConfig.from_env()
    parser = argparse.ArgumentParser(description="docqueue server")
    parser.add_argument(
        "--transport", choices=["tcp", "http"], default="tcp", help="Frontend to serve"
    )
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=9000, help="Port to bind to")
    parser.add_argument(
        "--mongo-url",
        default=defaults.mongo_url,
        help="MongoDB connection string, or memory:// for an in-process store",
    )
    parser.add_argument("--database", default=defaults.database, help="Database name")
    parser.add_argument(
        "--poll-ms",
        type=int,
        default=defaults.default_poll_ms,
        help="Default poll interval for waiting gets, in milliseconds",
    )
    parser.add_argument(
        "--reaper-interval",
        type=float,
        default=defaults.reaper_interval,
        help="Lease reaper interval in seconds, 0 to disable",
    )
    parser.add_argument(
        "--max-namespace-length",
        type=int,
        default=defaults.max_namespace_length,
        help="Longest index namespace the store accepts",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> QueueConfig:
    return QueueConfig(
        mongo_url=args.mongo_url,
        database=args.database,
        default_poll_ms=args.poll_ms,
        max_namespace_length=args.max_namespace_length,
        reaper_interval=args.reaper_interval,
    )


async def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    registry = QueueRegistry(build_config(args))

    if args.transport == "http":
        server = uvicorn.Server(
            uvicorn.Config(
                create_app(registry),
                host=args.host,
                port=args.port,
                log_level=args.log_level.lower(),
            )
        )
        print(f"Starting docqueue HTTP server on {args.host}:{args.port}...")
        await server.serve()
        return

    registry.start_reaper()
    frontend = TcpFrontend(registry, host=args.host, port=args.port)

    print(f"Starting docqueue TCP server on {args.host}:{args.port}...")
    try:
        await frontend.start()
    except asyncio.CancelledError:
        await frontend.stop()
    finally:
        await registry.close()


if __name__ == "__main__":
    asyncio.run(main())
