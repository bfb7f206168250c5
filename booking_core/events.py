"""Booking lifecycle notifications published to RabbitMQ."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict

import pika
from pika.exceptions import AMQPError

from .config import get_settings
from .models import Reservation

logger = logging.getLogger(__name__)


def reservation_event(event: str, reservation: Reservation) -> Dict[str, Any]:
    return {
        "event": event,
        "reservation_id": reservation.id,
        "user_id": reservation.user_id,
        "room_id": reservation.room_id,
        "start_time": reservation.start_time.isoformat(),
        "end_time": reservation.end_time.isoformat(),
        "status": reservation.status.value,
    }


def publish_reservation_event(event: str, reservation: Reservation) -> bool:
    """Send ``event`` to the bookings queue; a broker failure never fails the booking."""
    settings = get_settings()
    if not settings.events_enabled:
        return False

    message = reservation_event(event, reservation)
    try:
        connection = pika.BlockingConnection(pika.ConnectionParameters(host=settings.event_broker_host))
        try:
            channel = connection.channel()
            channel.queue_declare(queue=settings.event_queue, durable=True)
            channel.basic_publish(
                exchange="",
                routing_key=settings.event_queue,
                body=json.dumps(message),
                properties=pika.BasicProperties(delivery_mode=2),
            )
        finally:
            connection.close()
    except AMQPError as exc:
        logger.error("Could not publish %s for reservation %s: %s", event, reservation.id, exc)
        return False
    logger.info("Published %s for reservation %s", event, reservation.id)
    return True
