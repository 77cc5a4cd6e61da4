"""Call service entry point."""

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from src.api.server import ApiServer
from src.calls.engine import CallLifecycleEngine
from src.calls.registry import CallRegistry
from src.config import settings
from src.notifications.apns_channel import ApnsChannel
from src.notifications.fcm_channel import FcmChannel
from src.notifications.router import DispatchRouter

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


def build_router() -> DispatchRouter:
    """Register one push channel per platform."""
    router = DispatchRouter()
    router.register_channel(ApnsChannel())
    router.register_channel(FcmChannel())
    if not settings.apns_configured():
        logger.warning("APNs credentials missing; iOS calls will not be delivered")
    if not settings.fcm_configured():
        logger.warning("FCM credentials missing; Android calls will not be delivered")
    logger.info("Push channels initialized: %s", router.list_platforms())
    return router


def build_engine() -> CallLifecycleEngine:
    scheduler = AsyncIOScheduler(timezone=settings.trigger_timezone)
    return CallLifecycleEngine(
        registry=CallRegistry(),
        router=build_router(),
        scheduler=scheduler,
    )


async def run() -> None:
    """Start the engine and API server and serve until cancelled."""
    engine = build_engine()
    server = ApiServer(engine)
    await engine.start()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()
        await engine.stop()


def main() -> None:
    logger.info("Starting call service on port %d...", settings.api_port)
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")


if __name__ == "__main__":
    main()
