"""
Event services: order projection and post-commit fanout.
"""

from .projection import project_order, build_order_event
from .fanout import (
    EventFanout,
    RedisEventFanout,
    LocalEventFanout,
    BackgroundFanout,
    NullEventFanout,
    publish_committed,
)

__all__ = [
    "project_order",
    "build_order_event",
    "EventFanout",
    "RedisEventFanout",
    "LocalEventFanout",
    "BackgroundFanout",
    "NullEventFanout",
    "publish_committed",
]
