#!/usr/bin/env python3
"""Main entry point for the live debate control plane."""

import asyncio
import logging
import os
import sys
from pathlib import Path

from config.settings import AppConfig, get_default_config
from debate_engine.database import DebateStore, get_database_path
from debate_engine.transcript import format_transcript_text
from models.rate_limiter import RateLimiter
from web.broadcaster import ConnectionBroadcaster
from web.debate_manager import DebateManager
from web.debate_setup_request import DebateSetupRequest

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO"):
    """Configure logging for the server and CLI runs."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    # Suppress noisy third-party loggers
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def print_usage():
    print("Live Debate Control Plane")
    print("=" * 40)
    print("   python main.py --web                 start the API + WebSocket server")
    print("   python main.py --run [config.json]   run one debate and print the transcript")
    print()


def load_config() -> AppConfig:
    if "--run" in sys.argv:
        index = sys.argv.index("--run")
        if index + 1 < len(sys.argv):
            return AppConfig.load_from_file(Path(sys.argv[index + 1]))
    return get_default_config()


def start_web_server():
    """Start the FastAPI web server."""
    import uvicorn

    from web.api import app

    port = int(os.environ.get("PORT", 8000))
    print(f"API Documentation: http://localhost:{port}/docs")
    print(f"WebSocket: ws://localhost:{port}/v1/ws/debate/{{id}}")

    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info", access_log=True)


async def run_debate(config: AppConfig) -> str:
    """Run the configured debate to completion and return the text transcript."""
    store = DebateStore(get_database_path(config.system.database_path))
    manager = DebateManager(config, store, ConnectionBroadcaster(), RateLimiter(config.rate_limits))

    record = await manager.create_debate(
        DebateSetupRequest(
            proposition=config.debate.proposition,
            format=config.debate.format,
            word_limit=config.debate.word_limit,
        )
    )
    await manager.start_debate(record.id)
    task = manager.active_debates[record.id].task
    assert task is not None
    transcript = await task
    if transcript is None:
        raise RuntimeError(manager.active_debates[record.id].error or "Debate failed")
    return format_transcript_text(transcript)


def main():
    """Main entry point."""
    is_production = any([
        "RAILWAY_ENVIRONMENT" in os.environ,
        "PORT" in os.environ,
        os.environ.get("ENVIRONMENT") == "production",
    ])

    if "--help" in sys.argv or "-h" in sys.argv:
        print_usage()
        return

    if "--run" in sys.argv:
        config = load_config()
        setup_logging(config.system.log_level)
        try:
            print(asyncio.run(run_debate(config)))
        except Exception as e:
            logger.error(f"Debate failed: {e}")
            sys.exit(1)
        return

    if is_production or "--web" in sys.argv:
        setup_logging(get_default_config().system.log_level)
        start_web_server()
    else:
        print_usage()


if __name__ == "__main__":
    main()
