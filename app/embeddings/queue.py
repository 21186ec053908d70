"""
Background embedding queue.

Single consumer, in-process, priority-biased FIFO:
- HIGH jobs go to the front, NORMAL and LOW to the back (two bands; NORMAL
  and LOW are FIFO among themselves).
- At most one job runs at a time, process-wide for this queue instance.
- A failed job is retried by appending it to the back of the queue, behind
  anything enqueued since (including newer HIGH jobs), up to max_retries
  times. After that it is dropped and logged. Job failures never stop the
  consumer.

The deque is guarded by a lock because enqueue() is called from request
threads while the consumer runs on its own daemon thread.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Optional, Union

from .config import DEFAULT_MAX_RETRIES, DEFAULT_PROCESSING_DELAY_MS
from .schemas import QueueStatus

logger = logging.getLogger(__name__)


class JobPriority(str, Enum):
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class JobState(str, Enum):
    PENDING = "pending"
    RETRYING = "retrying"


@dataclass
class EmbeddingJob:
    message_id: str
    priority: JobPriority = JobPriority.NORMAL
    retries: int = 0
    state: JobState = JobState.PENDING


class EmbeddingQueue:
    """
    Usage:
        queue = EmbeddingQueue(pipeline.process_message_id)
        queue.enqueue(message_id)            # starts the worker thread if idle
        queue.enqueue(other_id, "high")      # jumps the line
        queue.status()
        queue.shutdown()                     # on app shutdown

    With autostart=False nothing runs until run_pending() is called, which
    drains the queue in the calling thread (cron sweeps, tests).
    """

    def __init__(
        self,
        processor: Callable[[str], None],
        max_retries: int = DEFAULT_MAX_RETRIES,
        processing_delay_ms: int = DEFAULT_PROCESSING_DELAY_MS,
        enable_retries: bool = True,
        autostart: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.processor = processor
        self.max_retries = max_retries
        self.processing_delay = processing_delay_ms / 1000.0
        self.enable_retries = enable_retries
        self.autostart = autostart
        self._sleep = sleep

        self._queue: Deque[EmbeddingJob] = deque()
        self._lock = threading.Lock()
        self._processing = False
        self._generation = 0  # bumped by clear() so a stale consumer exits
        self._worker: Optional[threading.Thread] = None

    # ============ PRODUCER SIDE ============

    def enqueue(
        self,
        message_id: str,
        priority: Union[JobPriority, str] = JobPriority.NORMAL,
    ) -> EmbeddingJob:
        job = EmbeddingJob(message_id=message_id, priority=JobPriority(priority))

        with self._lock:
            if job.priority == JobPriority.HIGH:
                self._queue.appendleft(job)
            else:
                self._queue.append(job)

        logger.debug(f"[embedding_queue] Enqueued {message_id} ({job.priority.value})")

        if self.autostart:
            self._start_worker()
        return job

    def _start_worker(self) -> None:
        with self._lock:
            if self._processing or not self._queue:
                return
            self._processing = True
            generation = self._generation

        self._worker = threading.Thread(
            target=self._consume,
            args=(generation,),
            daemon=True,
            name="EmbeddingQueueWorker",
        )
        self._worker.start()

    # ============ CONSUMER SIDE ============

    def run_pending(self) -> int:
        """
        Drain the queue synchronously in the calling thread.

        Returns the number of attempts made, or 0 if another consumer is
        already running.
        """
        with self._lock:
            if self._processing:
                return 0
            self._processing = True
            generation = self._generation

        return self._consume(generation)

    def _consume(self, generation: int) -> int:
        attempts = 0
        idle = False
        try:
            while True:
                with self._lock:
                    if generation != self._generation:
                        idle = True
                        break
                    if not self._queue:
                        # Cleared under the empty-check lock: enqueue() sees a busy
                        # consumer that will pop its job, or an idle queue.
                        self._processing = False
                        idle = True
                        break
                    job = self._queue.popleft()

                self._attempt(job, generation)
                attempts += 1

                with self._lock:
                    more = bool(self._queue) and generation == self._generation
                if more and self.processing_delay > 0:
                    self._sleep(self.processing_delay)
        finally:
            if not idle:
                with self._lock:
                    if generation == self._generation:
                        self._processing = False
        return attempts

    def _attempt(self, job: EmbeddingJob, generation: int) -> None:
        try:
            logger.info(f"[embedding_queue] Processing embedding for message: {job.message_id}")
            self.processor(job.message_id)
            logger.info(f"[embedding_queue] Successfully processed embedding for message: {job.message_id}")
        except Exception as e:
            logger.warning(f"[embedding_queue] Failed to process embedding for message {job.message_id}: {e}")

            if self.enable_retries and job.retries < self.max_retries:
                job.retries += 1
                job.state = JobState.RETRYING
                with self._lock:
                    if generation == self._generation:
                        self._queue.append(job)
                logger.info(
                    f"[embedding_queue] Retrying embedding for message {job.message_id} "
                    f"(attempt {job.retries})"
                )
            else:
                logger.error(
                    f"[embedding_queue] Max retries exceeded for message {job.message_id}, dropping job"
                )

    # ============ INTROSPECTION / LIFECYCLE ============

    def status(self) -> QueueStatus:
        with self._lock:
            return QueueStatus(
                queue_length=len(self._queue),
                processing=self._processing,
                next_job_id=self._queue[0].message_id if self._queue else None,
            )

    def clear(self) -> None:
        """Drop all pending jobs and mark the queue idle (tests/shutdown)."""
        with self._lock:
            self._queue.clear()
            self._processing = False
            self._generation += 1

    def shutdown(self, timeout: float = 5.0) -> None:
        self.clear()
        worker = self._worker
        if worker is not None and worker.is_alive() and worker is not threading.current_thread():
            worker.join(timeout)
        self._worker = None
