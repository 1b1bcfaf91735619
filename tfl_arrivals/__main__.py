"""Process entry point: `python -m tfl_arrivals` or `tfl-arrivals`."""

from __future__ import annotations

import logging
import sys

import uvicorn

import tfl_arrivals.app as app_module
from tfl_arrivals.config import ConfigError, load_config

logger = logging.getLogger("tfl_arrivals")


def main() -> int:
    app_module.configure_logging()

    try:
        config = load_config()
    except (ConfigError, FileNotFoundError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    # Lifespan picks up the already-validated config.
    app_module._config = config
    uvicorn.run(app_module.app, host=config.host, port=config.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
