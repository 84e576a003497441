"""
Kafka producer for inventory events
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from confluent_kafka import Producer
from app.config import settings

logger = logging.getLogger(__name__)

STOCK_ADDED = "STOCK_ADDED"
STOCK_REMOVED = "STOCK_REMOVED"
LOW_STOCK_DETECTED = "LOW_STOCK_DETECTED"


class InventoryEventProducer:
    """Kafka producer for inventory events"""

    def __init__(self):
        self.bootstrap_servers = settings.kafka_bootstrap_servers
        self.events_topic = settings.kafka_inventory_events_topic

        self.producer = Producer({
            'bootstrap.servers': self.bootstrap_servers,
            'client.id': 'inventory-service',
        })

    def _publish_event(self, event_type: str, payload: Dict[str, Any], key: Optional[str] = None):
        """Internal method to publish event to Kafka"""
        event = {
            "type": event_type,
            "eventId": str(uuid.uuid4()),
            "createdAt": datetime.now(timezone.utc).isoformat(),
            **payload
        }

        try:
            # Partition by store/product so one aggregate's events stay ordered
            kafka_key = key or f"{event.get('storeId')}:{event.get('productId')}"

            self.producer.produce(
                self.events_topic,
                key=kafka_key,
                value=json.dumps(event, default=str).encode('utf-8'),
                headers=[('type', event_type)],
                callback=self._delivery_callback
            )

            # Trigger delivery callback
            self.producer.poll(0)

            logger.info(f"Published {event_type} event to {self.events_topic}")
        except Exception as e:
            logger.error(f"Failed to publish {event_type} event: {e}", exc_info=True)
            raise

    def _delivery_callback(self, err, msg):
        """Callback for message delivery"""
        if err:
            logger.error(f"Message delivery failed: {err}")
        else:
            logger.debug(f"Message delivered to {msg.topic()} [{msg.partition()}]")

    def publish_stock_added(self, store_id: int, product_id: int, quantity: int, unit_price, current_stock: int):
        self._publish_event(
            STOCK_ADDED,
            {
                "storeId": store_id,
                "productId": product_id,
                "quantity": quantity,
                "unitPrice": str(unit_price),
                "currentStock": current_stock,
            }
        )

    def publish_stock_removed(self, store_id: int, product_id: int, quantity: int, reason: str, current_stock: int):
        self._publish_event(
            STOCK_REMOVED,
            {
                "storeId": store_id,
                "productId": product_id,
                "quantity": quantity,
                "reason": reason,
                "currentStock": current_stock,
            }
        )

    def publish_low_stock(self, store_id: int, product_id: int, current_stock: int, threshold: int, status: str):
        self._publish_event(
            LOW_STOCK_DETECTED,
            {
                "storeId": store_id,
                "productId": product_id,
                "currentStock": current_stock,
                "threshold": threshold,
                "status": status,
            }
        )

    def flush(self, timeout: float = 5.0):
        """Flush pending messages"""
        self.producer.flush(timeout)


# Lazy initialization - only create producer when first used
_event_producer_instance = None
_producer_initialization_failed = False


def get_event_producer() -> Optional[InventoryEventProducer]:
    """Get or create the global event producer instance (lazy initialization)"""
    global _event_producer_instance, _producer_initialization_failed

    if not settings.kafka_enabled or _producer_initialization_failed:
        return None

    if _event_producer_instance is None:
        try:
            _event_producer_instance = InventoryEventProducer()
            logger.info(f"Initialized Kafka producer for {_event_producer_instance.bootstrap_servers}")
        except Exception as e:
            logger.warning(f"Failed to initialize Kafka producer: {e}. Events will not be published.")
            _producer_initialization_failed = True
            return None
    return _event_producer_instance


class EventProducerProxy:
    """Publishes through the lazily created producer.

    Publishing happens after the ledger commit, so failures here are logged
    and dropped; they never change the outcome of a stock mutation.
    """

    def _call(self, method: str, event_type: str, *args, **kwargs):
        producer = get_event_producer()
        if producer is None:
            return
        try:
            getattr(producer, method)(*args, **kwargs)
        except Exception as e:
            logger.warning(f"Failed to publish {event_type} event: {e}")

    def publish_stock_added(self, *args, **kwargs):
        self._call("publish_stock_added", STOCK_ADDED, *args, **kwargs)

    def publish_stock_removed(self, *args, **kwargs):
        self._call("publish_stock_removed", STOCK_REMOVED, *args, **kwargs)

    def publish_low_stock(self, *args, **kwargs):
        self._call("publish_low_stock", LOW_STOCK_DETECTED, *args, **kwargs)

    def flush(self):
        # Only flush a producer that was actually created
        producer = _event_producer_instance
        if producer:
            try:
                producer.flush()
            except Exception as e:
                logger.warning(f"Failed to flush Kafka producer: {e}")


event_producer = EventProducerProxy()
