import logging
from threading import Thread

logger = logging.getLogger(__name__)


def _thread_entrypoint(async_main) -> None:
    import asyncio
    asyncio.run(async_main())


def start_reconcile_consumer_thread() -> Thread:
    """Run the reconciliation consumer on its own event loop in a daemon thread."""
    from reconcile_consumer import main as reconcile_main

    t = Thread(target=_thread_entrypoint, args=(reconcile_main,), name="reconcile-consumer", daemon=True)
    t.start()
    logger.info(" [*] Started reconcile consumer thread")
    return t
