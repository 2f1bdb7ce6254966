"""Queue consumer for notification envelopes.

Flow:
    message -> parse envelope -> idempotency check -> send / send_bulk
    -> cache result -> ack decision

Redelivered messages carrying an idempotency key that was already
processed are answered from the cache and never sent again.
"""

from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from infrastructure.idempotency import IdempotencyCache, IdempotencyKeyBuilder, get_cache
from infrastructure.logging import bind_request_context, get_module_logger
from infrastructure.notifications.bulk import BulkFanOutController
from infrastructure.notifications.errors import NotificationError, PersistenceError
from infrastructure.notifications.models import NotificationEnvelope
from infrastructure.notifications.service import NotificationService
from infrastructure.services.providers import get_settings

logger = get_module_logger()

Payload = Union[Mapping[str, Any], bytes, str]


class NotificationConsumer:
    """Handles one queue message at a time.

    Result statuses:
        processed: the draft or bulk request was handled
        failed: the request was invalid for the engine (unknown recipient
            or template); retrying will not help
        rejected: the message could not be parsed

    Every status is safe to acknowledge. Storage failures raise
    PersistenceError instead so the queue redelivers the message.

    Args:
        service: Single-notification pipeline
        bulk: Bulk fan-out controller
        cache: Idempotency cache, defaults to the process cache
        ttl_seconds: Cache TTL, defaults to IDEMPOTENCY_TTL_SECONDS
    """

    def __init__(
        self,
        service: NotificationService,
        bulk: BulkFanOutController,
        cache: Optional[IdempotencyCache] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.service = service
        self.bulk = bulk
        self.cache = cache or get_cache()
        self.ttl_seconds = ttl_seconds or get_settings().idempotency.IDEMPOTENCY_TTL_SECONDS
        self.keys = IdempotencyKeyBuilder(namespace="notifications")

    def handle(self, payload: Payload) -> Dict[str, Any]:
        """Process one message.

        Args:
            payload: Envelope as a mapping or JSON text/bytes

        Returns:
            Result dict with ``status``, ``duplicate``, ``should_ack`` and
            either ``notification``, ``bulk`` or ``error``

        Raises:
            PersistenceError: Storage failed; the message should be redelivered.
        """
        try:
            envelope = self._parse(payload)
        except ValidationError as e:
            logger.warning("envelope_rejected", error_count=e.error_count())
            return {
                "status": "rejected",
                "duplicate": False,
                "should_ack": True,
                "error": f"invalid envelope: {e.error_count()} validation error(s)",
            }

        operation = "send" if envelope.draft is not None else "send_bulk"
        cache_key = (
            self.keys.build(operation, key=envelope.idempotency_key)
            if envelope.idempotency_key
            else None
        )

        with bind_request_context(correlation_id=envelope.idempotency_key):
            if cache_key is not None:
                cached = self.cache.get(cache_key)
                if cached is not None:
                    logger.info("envelope_duplicate", operation=operation)
                    return {**cached, "duplicate": True}

            result = self._process(envelope)

            if cache_key is not None:
                self.cache.set(cache_key, result, ttl_seconds=self.ttl_seconds)

        return {**result, "duplicate": False}

    def _parse(self, payload: Payload) -> NotificationEnvelope:
        if isinstance(payload, (bytes, str)):
            return NotificationEnvelope.model_validate_json(payload)
        return NotificationEnvelope.model_validate(payload)

    def _process(self, envelope: NotificationEnvelope) -> Dict[str, Any]:
        try:
            if envelope.draft is not None:
                notification = self.service.send(envelope.draft)
                logger.info(
                    "envelope_processed",
                    operation="send",
                    notification_id=notification.id,
                    status=notification.status.value,
                )
                return {
                    "status": "processed",
                    "should_ack": True,
                    "notification": notification.model_dump(mode="json"),
                }

            request = envelope.bulk_request
            bulk_result = self.bulk.send_bulk(
                request.content, request.recipient_ids, batch_id=request.batch_id
            )
            logger.info(
                "envelope_processed",
                operation="send_bulk",
                batch_id=bulk_result.batch_id,
                success_count=len(bulk_result.success),
                failed_count=len(bulk_result.failed),
            )
            return {
                "status": "processed",
                "should_ack": True,
                "bulk": bulk_result.model_dump(mode="json"),
            }
        except PersistenceError:
            logger.error("envelope_persistence_failed")
            raise
        except NotificationError as e:
            logger.warning("envelope_failed", error=str(e), error_type=type(e).__name__)
            return {
                "status": "failed",
                "should_ack": True,
                "error": str(e),
                "error_type": type(e).__name__,
            }
