#!/usr/bin/env python3
"""nginx-console entry point: API server, log watchers and background jobs."""

import logging
import signal
import sys

from nginx_console.config import load_config
from nginx_console.web import build_components, create_app, start_background_jobs

logger = logging.getLogger(__name__)


def _signal_handler(sig, _frame):
    logger.info("Shutdown signal received (signal %d), stopping...", sig)
    raise KeyboardInterrupt


def main():
    config = load_config()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [nginx-console] %(levelname)s %(message)s",
        stream=sys.stderr,
    )
    signal.signal(signal.SIGTERM, _signal_handler)

    components = build_components(config)
    logger.info(
        "Config: platform=%s, service=%s, categories=%s, ttl=%ds, timeout=%gs",
        components["platform"].name, config.service_name,
        ",".join(config.watch_categories), config.credential_ttl_seconds,
        config.command_timeout_seconds,
    )
    if not config.secret_key:
        logger.warning("CONSOLE_SECRET_KEY not set, sessions will not survive a restart")

    supervisor = components["supervisor"]
    supervisor.start()
    start_background_jobs(components)

    app = create_app(config, components)
    logger.info("Starting nginx-console on http://%s:%d", config.host, config.port)
    try:
        app.run(host=config.host, port=config.port)
    except KeyboardInterrupt:
        pass
    finally:
        supervisor.stop()
        logger.info("nginx-console stopped.")


if __name__ == "__main__":
    main()
