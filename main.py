#!/usr/bin/env python3
"""Main entry point for the Crossfire debate arena."""

import argparse
import logging
import os
import sys
from pathlib import Path

from crossfire.config.settings import CONFIG_FILENAME, get_default_config, get_template_config


def setup_logging(level: str = "INFO"):
    """Configure logging for the web server."""
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    # Suppress noisy third-party loggers
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def start_web_server(host: str, port: int):
    """Start the FastAPI web server."""
    config = get_default_config()
    setup_logging(config.system.log_level)

    import uvicorn

    from crossfire.web.api import create_app

    print("Starting Crossfire Debate Arena...")
    print(f"API Documentation: http://localhost:{port}/docs")

    uvicorn.run(create_app(config), host=host, port=port, log_level="info", access_log=True)


def write_template_config(path: Path):
    if path.exists():
        print(f"{path} already exists; not overwriting")
        sys.exit(1)
    get_template_config().save_to_file(path)
    print(f"Wrote template configuration to {path}")


def main():
    parser = argparse.ArgumentParser(description="Crossfire debate arena server")
    parser.add_argument("--host", default=os.environ.get("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.environ.get("PORT", 8000)))
    parser.add_argument(
        "--init-config",
        metavar="PATH",
        nargs="?",
        const=Path(CONFIG_FILENAME).with_suffix(".yaml"),
        type=Path,
        help="Write a template YAML config and exit",
    )
    args = parser.parse_args()

    if args.init_config:
        write_template_config(args.init_config)
        return

    start_web_server(args.host, args.port)


if __name__ == "__main__":
    main()
