"""Out-of-band push notifications (grade changes) over Server-Sent Events."""

from edubot.notifications.broker import (
    NotificationBroker,
    QueueSubscriber,
    Subscriber,
    SubscriberClosed,
)

__all__ = ["NotificationBroker", "QueueSubscriber", "Subscriber", "SubscriberClosed"]
