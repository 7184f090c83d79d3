#!/usr/bin/env python3
"""
Ledger Service Entry Point

Starts the FastAPI server with the host, port and logging taken from the
LEDGER_* environment configuration.
"""

import sys

from ledger_service.config import get_config
from ledger_service.logging_config import setup_logging
from ledger_service.api import run_server


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format)

    logger.info(f"Starting ledger service on {config.api_host}:{config.api_port} ({config.database_url})")

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            debug=False,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        logger.info("Shutting down ledger service")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
