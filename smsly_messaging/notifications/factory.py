"""
Notification Strategy Factory
=============================
Resolves the strategy for a channel from an explicit registration table.
"""

from typing import Dict, Iterable, Optional

from smsly_messaging.errors import StrategyNotRegisteredError

from .models import NotificationChannel
from .strategies import AllNotificationStrategy, NotificationStrategy


class NotificationStrategyFactory:
    """
    Channel to strategy registry, built once at start-up.

    Usage:
        factory = NotificationStrategyFactory.from_strategies([
            TwilioSmsNotificationStrategy(manager),
            TwilioWhatsAppNotificationStrategy(manager),
        ])
        strategy = factory.get_strategy(NotificationChannel.TWILIO_SMS)
    """

    def __init__(self, strategies: Optional[Dict[NotificationChannel, NotificationStrategy]] = None):
        self._strategies: Dict[NotificationChannel, NotificationStrategy] = dict(strategies or {})

    @classmethod
    def from_strategies(
        cls,
        strategies: Iterable[NotificationStrategy],
        include_all: bool = True,
    ) -> "NotificationStrategyFactory":
        """Register each strategy under its channel, plus ALL composed from them."""
        mapping = {strategy.channel: strategy for strategy in strategies}
        if include_all and mapping and NotificationChannel.ALL not in mapping:
            mapping[NotificationChannel.ALL] = AllNotificationStrategy(list(mapping.values()))
        return cls(mapping)

    def register(self, strategy: NotificationStrategy) -> None:
        self._strategies[strategy.channel] = strategy

    def get_strategy(self, channel: NotificationChannel) -> NotificationStrategy:
        try:
            return self._strategies[NotificationChannel(channel)]
        except (KeyError, ValueError):
            raise StrategyNotRegisteredError(channel) from None

    @property
    def channels(self):
        return list(self._strategies)
