"""
Order lifecycle event types.

Names are the wire values carried in ``Event.type`` and seen by
WebSocket subscribers.
"""

from shared.config.settings import settings

# Order lifecycle
ORDER_CREATED = "order.created"
ORDER_UPDATED = "order.updated"  # Every successful status transition
ORDER_PAID = "order.paid"  # Ticket goes to the kitchen
ORDER_CANCELLED = "order.cancelled"

# Payment
PAYMENT_UPDATED = "payment.updated"

# Kitchen
KITCHEN_ACK = "kitchen.ack"

ALL_EVENT_TYPES = frozenset({
    ORDER_CREATED,
    ORDER_UPDATED,
    ORDER_PAID,
    ORDER_CANCELLED,
    PAYMENT_UPDATED,
    KITCHEN_ACK,
})

# Maximum serialized size, same as the WebSocket frame limit
MAX_EVENT_SIZE = settings.ws_max_message_size
