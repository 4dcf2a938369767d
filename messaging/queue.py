"""
Sender Queue Manager for inbound messages

Keeps inbound processing ordered per sender: messages from one sender are
processed one-by-one in arrival order, while different senders proceed
concurrently.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

from .models import InboundMessage

logger = logging.getLogger(__name__)

Processor = Callable[[str, InboundMessage], Awaitable[None]]


class SenderQueue:
    """Queue for a single sender."""

    def __init__(self, sender_id: str):
        self.sender_id = sender_id
        self.queue: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self.is_processing = False
        self.current_task: Optional[asyncio.Task] = None
        self.current_message: Optional[InboundMessage] = None


class SenderQueueManager:
    """
    Manages per-sender message queues.

    When a sender's previous message is still being relayed, new messages
    wait in that sender's queue.
    """

    def __init__(self):
        self._queues: Dict[str, SenderQueue] = {}
        self._lock = asyncio.Lock()
        self._tasks: set = set()

    def _get_or_create_queue(self, sender_id: str) -> SenderQueue:
        """Get existing queue or create new one for sender."""
        if sender_id not in self._queues:
            self._queues[sender_id] = SenderQueue(sender_id)
        return self._queues[sender_id]

    def is_sender_busy(self, sender_id: str) -> bool:
        """Check if a sender has a message being processed."""
        if sender_id not in self._queues:
            return False
        return self._queues[sender_id].is_processing

    async def enqueue(
        self,
        sender_id: str,
        message: InboundMessage,
        processor: Processor,
    ) -> bool:
        """
        Add a message to the sender's queue.

        If the sender is idle, processing starts immediately.

        Returns:
            True if message was queued (sender busy), False if processed immediately
        """
        async with self._lock:
            sq = self._get_or_create_queue(sender_id)

            if sq.is_processing:
                await sq.queue.put(message)
                logger.debug(
                    f"Queued message from {sender_id}, queue size: {sq.queue.qsize()}"
                )
                return True
            sq.is_processing = True

        self._start(sq, message, processor)
        return False

    def _start(self, sq: SenderQueue, message: InboundMessage, processor: Processor) -> None:
        task = asyncio.create_task(self._process_message(sq, message, processor))
        sq.current_task = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process_message(
        self,
        sq: SenderQueue,
        message: InboundMessage,
        processor: Processor,
    ) -> None:
        """Process a single message and then check the queue."""
        sq.current_message = message
        try:
            await processor(sq.sender_id, message)
        except asyncio.CancelledError:
            logger.info(f"Processing for sender {sq.sender_id} was cancelled")
            raise
        except Exception as e:
            logger.error(f"Error processing message from {sq.sender_id}: {e}")
        finally:
            sq.current_message = None
            await self._process_next(sq, processor)

    async def _process_next(self, sq: SenderQueue, processor: Processor) -> None:
        """Process the next message in queue, if any."""
        async with self._lock:
            if self._queues.get(sq.sender_id) is not sq or not sq.is_processing:
                return

            try:
                next_msg = sq.queue.get_nowait()
            except asyncio.QueueEmpty:
                sq.is_processing = False
                del self._queues[sq.sender_id]
                logger.debug(f"Sender {sq.sender_id} queue empty, released")
                return

        self._start(sq, next_msg, processor)

    def get_queue_size(self, sender_id: str) -> int:
        """Get the number of messages waiting in a sender's queue."""
        if sender_id not in self._queues:
            return 0
        return self._queues[sender_id].queue.qsize()

    def cancel_sender(self, sender_id: str) -> List[InboundMessage]:
        """
        Cancel all queued messages for a sender and the running task.

        Returns:
            List of messages that were cancelled (including the current one if any)
        """
        sq = self._queues.pop(sender_id, None)
        if sq is None:
            return []

        cancelled: List[InboundMessage] = []

        if sq.current_task and not sq.current_task.done():
            sq.current_task.cancel()
            if sq.current_message:
                cancelled.append(sq.current_message)

        while not sq.queue.empty():
            try:
                cancelled.append(sq.queue.get_nowait())
            except asyncio.QueueEmpty:
                break

        sq.is_processing = False
        logger.info(f"Cancelled {len(cancelled)} messages for sender {sender_id}")
        return cancelled

    async def cancel_all(self) -> List[InboundMessage]:
        """Cancel everything for all senders."""
        async with self._lock:
            all_cancelled: List[InboundMessage] = []
            for sender_id in list(self._queues.keys()):
                all_cancelled.extend(self.cancel_sender(sender_id))
            return all_cancelled

    async def drain(self) -> None:
        """Wait until every queued message has been processed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
