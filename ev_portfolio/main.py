"""Entrypoint: build the application context and run the scheduler."""
from __future__ import annotations

import logging
import os
import threading
from typing import Optional, Tuple

from .config import AppConfig
from .scheduler import Scheduler
from .service import AppContext, PortfolioService
from .store import InMemoryStore, Store


def build_service(config: Optional[AppConfig] = None, store: Optional[Store] = None) -> Tuple[AppContext, PortfolioService]:
    """
    Creates the context from environment configuration. The in-memory store
    stands in until a persistent Store implementation is wired in.
    """
    config = config or AppConfig.from_env()
    context = AppContext.build(config, store or InMemoryStore())
    return context, PortfolioService(context)


def main() -> None:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    context, service = build_service()
    scheduler = Scheduler(service, context.config.scheduler)
    stop = threading.Event()
    try:
        scheduler.run_forever(stop)
    except KeyboardInterrupt:
        stop.set()
    finally:
        context.close()


if __name__ == "__main__":
    main()
