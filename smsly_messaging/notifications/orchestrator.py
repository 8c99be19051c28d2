"""
Notification Orchestrator
=========================
Fan-out of one notification request across its requested channels.
"""

from typing import List

import structlog

from .factory import NotificationStrategyFactory
from .models import NotificationRequest, NotificationResult

logger = structlog.get_logger(__name__)


class NotificationOrchestrator:
    """
    Dispatches a request on each requested channel independently.

    A channel that fails, raises or has no registered strategy yields a
    failed result; the remaining channels are still attempted.
    """

    def __init__(self, factory: NotificationStrategyFactory):
        self.factory = factory

    async def send(self, request: NotificationRequest) -> List[NotificationResult]:
        if not request.channels:
            logger.warning("No notification channels specified in request")
            return []

        results: List[NotificationResult] = []
        for channel in request.channels:
            try:
                strategy = self.factory.get_strategy(channel)
                result = await strategy.send(request)
            except Exception as e:
                logger.error(
                    "Error sending notification",
                    channel=getattr(channel, "value", channel),
                    error=str(e),
                    exc_info=True,
                )
                result = NotificationResult.failed(channel, str(e))

            if result.success:
                logger.info(
                    "Notification sent",
                    channel=result.channel.value,
                    reference=result.external_reference,
                )
            else:
                logger.warning(
                    "Notification failed",
                    channel=getattr(result.channel, "value", result.channel),
                    error=result.error_message,
                )
            results.append(result)

        return results
