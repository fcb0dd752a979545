import argparse
import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import colorlog
from dotenv import load_dotenv
from fastapi import FastAPI

from lookup_rotator import LookupOrchestrator, load_lookup_config
from lookup_rotator.config_exceptions import ConfigLoadError, ConfigValidationError
from lookup_rotator.utils.paths import get_default_root, get_logs_dir
from lookup_service.lookup_api import router as lookup_router

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lookup Orchestrator Server")
    parser.add_argument(
        "--host", type=str, default="127.0.0.1", help="Host to bind the server to."
    )
    parser.add_argument("--port", type=int, default=8000, help="Port to run the server on.")
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Directory holding .env, api_settings.json, cache/ and logs/.",
    )
    parser.add_argument(
        "--config", type=str, default=None, help="YAML file overriding the lookup defaults."
    )
    return parser


class LookupDebugFilter(logging.Filter):
    """Lets only DEBUG records from the lookup library through."""

    def filter(self, record):
        return record.levelno == logging.DEBUG and record.name.startswith("lookup_rotator")


def configure_logging(log_dir: Path) -> None:
    """Colored console output plus INFO and DEBUG log files under `log_dir`."""
    console_handler = colorlog.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )

    file_format = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    info_file_handler = logging.FileHandler(log_dir / "lookup.log", encoding="utf-8")
    info_file_handler.setLevel(logging.INFO)
    info_file_handler.setFormatter(file_format)

    debug_file_handler = logging.FileHandler(log_dir / "lookup_debug.log", encoding="utf-8")
    debug_file_handler.setLevel(logging.DEBUG)
    debug_file_handler.setFormatter(file_format)
    debug_file_handler.addFilter(LookupDebugFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(info_file_handler)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(debug_file_handler)

    # Silence noisy loggers
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_app(
    orchestrator: Optional[LookupOrchestrator] = None,
    data_dir: Optional[Path] = None,
    config_path: Optional[str] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    When no orchestrator is passed, one is built from the environment at
    startup and closed at shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if orchestrator is None:
            config = load_lookup_config(config_path)
            owned = LookupOrchestrator.from_config(
                config,
                env_vars=os.environ,
                data_dir=data_dir,
                env_file=Path(data_dir or get_default_root()) / ".env",
            )
            app.state.orchestrator = owned
        else:
            app.state.orchestrator = orchestrator
        logger.info(
            f"Lookup orchestrator ready: {', '.join(app.state.orchestrator.capabilities)}"
        )
        yield
        if owned is not None:
            await owned.aclose()
        logger.info("Lookup orchestrator shut down.")

    app = FastAPI(title="Lookup Orchestrator", lifespan=lifespan)
    app.include_router(lookup_router)

    @app.get("/")
    def read_root():
        return {"Status": "Lookup Orchestrator is running"}

    return app


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    start_time = time.time()

    root = Path(args.data_dir).expanduser() if args.data_dir else get_default_root()
    load_dotenv(root / ".env")

    configure_logging(get_logs_dir(root))

    try:
        # Fail fast on a broken config file before uvicorn starts
        load_lookup_config(args.config)
    except (ConfigLoadError, ConfigValidationError) as e:
        logger.critical(f"Invalid lookup configuration: {e}")
        sys.exit(1)

    app = create_app(data_dir=root, config_path=args.config)
    logger.info(f"Server components loaded in {time.time() - start_time:.2f}s")
    logger.info(f"Starting lookup server on {args.host}:{args.port}")

    import uvicorn

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
