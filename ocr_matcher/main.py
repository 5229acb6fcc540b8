"""Entry point for the OCR Matcher API server.

Host and port come from the ``server`` section of the configuration and
can be overridden on the command line.
"""

import argparse

import uvicorn

from ocr_matcher.api.app import app
from ocr_matcher.utils.config import load_config
from ocr_matcher.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def main(argv: list[str] | None = None) -> None:
    """Start the FastAPI application server."""
    parser = argparse.ArgumentParser(
        prog="ocr-matcher-api",
        description="Serve the invoice / delivery order comparison API",
    )
    parser.add_argument("--host", help="Interface to bind (overrides config)")
    parser.add_argument("--port", type=int, help="Port to bind (overrides config)")
    args = parser.parse_args(argv)

    config = load_config()
    setup_logging(config.log_level)

    host = args.host or config.server.host
    port = args.port or config.server.port
    logger.info("Serving OCR Matcher API on %s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
