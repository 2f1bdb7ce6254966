"""Bulk fan-out of one notification to many recipients.

Each recipient runs the full single-notification pipeline. Work is split
into chunks, each chunk is processed by a bounded worker pool, and an
optional pause between chunks keeps provider load smooth.
"""

import contextvars
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple

from infrastructure.configuration import NotificationSettings
from infrastructure.logging import bind_request_context, get_module_logger
from infrastructure.notifications.errors import NotificationError
from infrastructure.notifications.models import (
    BulkFailure,
    BulkSendResult,
    NotificationContent,
    NotificationDraft,
)
from infrastructure.notifications.service import NotificationService
from infrastructure.services.providers import get_settings

logger = get_module_logger()

CANCELLED_ERROR = "cancelled"

# (recipient_id, notification_id, error)
_RecipientOutcome = Tuple[str, Optional[str], Optional[str]]


def _chunked(items: Sequence[str], size: int) -> List[Sequence[str]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class BulkFanOutController:
    """Sends the same content to a list of recipients.

    Attributes:
        service: Single-notification pipeline
        settings: Chunk size, chunk delay and worker pool width
        sleep: Pause function between chunks, injectable for tests
    """

    def __init__(
        self,
        service: NotificationService,
        settings: Optional[NotificationSettings] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.service = service
        self.settings = settings or get_settings().notifications
        self.sleep = sleep

    def send_bulk(
        self,
        content: NotificationContent,
        recipient_ids: Sequence[str],
        batch_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BulkSendResult:
        """Send content to every recipient.

        Never raises for per-recipient failures. Duplicate recipient ids are
        processed once. When ``cancel_event`` is set, recipients that have not
        started are reported as failed with error "cancelled"; recipients
        already in flight complete.

        Args:
            content: Recipient-independent content
            recipient_ids: Recipients to notify
            batch_id: Identifier for logs and the result, generated if omitted
            cancel_event: Optional cancellation signal

        Returns:
            BulkSendResult where every recipient id appears exactly once
        """
        batch_id = batch_id or str(uuid.uuid4())
        unique_ids = list(dict.fromkeys(recipient_ids))
        chunk_size = max(1, self.settings.bulk_chunk_size)
        workers = max(1, self.settings.bulk_max_concurrency)
        result = BulkSendResult(batch_id=batch_id)

        with bind_request_context(correlation_id=batch_id, batch_id=batch_id):
            chunks = _chunked(unique_ids, chunk_size)
            logger.info(
                "bulk_send_started",
                recipient_count=len(unique_ids),
                chunk_count=len(chunks),
                max_concurrency=workers,
            )

            with ThreadPoolExecutor(
                max_workers=workers, thread_name_prefix="notification-bulk"
            ) as pool:
                for index, chunk in enumerate(chunks):
                    if index > 0 and self.settings.bulk_chunk_delay_seconds > 0:
                        if not (cancel_event and cancel_event.is_set()):
                            self.sleep(self.settings.bulk_chunk_delay_seconds)

                    # Each worker runs in a copy of the bound logging context
                    futures = [
                        pool.submit(
                            contextvars.copy_context().run,
                            self._send_one,
                            content,
                            recipient_id,
                            batch_id,
                            cancel_event,
                        )
                        for recipient_id in chunk
                    ]
                    for future in futures:
                        recipient_id, notification_id, error = future.result()
                        if error is None:
                            result.success.append(notification_id)
                        else:
                            result.failed.append(
                                BulkFailure(recipient_id=recipient_id, error=error)
                            )

            logger.info(
                "bulk_send_completed",
                success_count=len(result.success),
                failed_count=len(result.failed),
                cancelled=bool(cancel_event and cancel_event.is_set()),
            )

        return result

    def _send_one(
        self,
        content: NotificationContent,
        recipient_id: str,
        batch_id: str,
        cancel_event: Optional[threading.Event],
    ) -> _RecipientOutcome:
        if cancel_event is not None and cancel_event.is_set():
            return recipient_id, None, CANCELLED_ERROR

        try:
            draft = NotificationDraft.for_recipient(content, recipient_id)
            notification = self.service.send(draft)
        except NotificationError as e:
            logger.warning(
                "bulk_recipient_failed",
                batch_id=batch_id,
                recipient_id=recipient_id,
                error=str(e),
            )
            return recipient_id, None, str(e)
        except Exception as e:
            logger.exception(
                "bulk_recipient_error",
                batch_id=batch_id,
                recipient_id=recipient_id,
                error=str(e),
            )
            return recipient_id, None, str(e) or type(e).__name__

        return recipient_id, notification.id, None
