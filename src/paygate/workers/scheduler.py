"""Background task that periodically resends failed webhooks."""

import asyncio
import logging

logger = logging.getLogger(__name__)


async def run_webhook_reprocessor(app, interval: float) -> None:
    """Call ``reprocess_failed`` every ``interval`` seconds until cancelled."""
    logger.info("Webhook reprocessor started (interval=%ss)", interval)

    while True:
        try:
            await asyncio.sleep(interval)

            services = getattr(app.state, "services", None)
            if services is None:
                continue

            summary = await services.webhooks.reprocess_failed()
            if summary["processed"]:
                logger.info(
                    "Reprocessed %d failed webhooks (%d delivered, %d still failing)",
                    summary["processed"], summary["delivered"], summary["failed"],
                )

        except asyncio.CancelledError:
            logger.info("Webhook reprocessor stopped")
            break
        except Exception as exc:
            logger.exception("Webhook reprocessor error: %s", exc)
