"""
Forward job scheduling service.

Constructed explicitly with the Celery app and the forward task, started
and stopped by the process that owns it, and handed to whoever needs to
enqueue forward jobs.
"""
import logging

logger = logging.getLogger(__name__)


class SchedulerNotRunning(RuntimeError):
    """Raised when a job is enqueued after stop()."""
    pass


class ForwardScheduler:
    """Submits "forward this lead" jobs to the durable job layer."""

    def __init__(self, app, task):
        self.app = app
        self.task = task
        self._producer = None
        self._running = False
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        # Eager mode executes in-process and needs no broker connection
        if not self.app.conf.task_always_eager:
            self._producer = self.app.producer_pool.acquire(block=True)
        self._running = True
        self._stopped = False
        logger.info("Forward scheduler started")

    def stop(self) -> None:
        if not self._running:
            return
        if self._producer is not None:
            self._producer.release()
            self._producer = None
        self._running = False
        self._stopped = True
        logger.info("Forward scheduler stopped")

    def enqueue(self, lead_id: int):
        """
        Enqueue a fresh forward job; attempt counting starts at 1.

        A scheduler that was never started starts on first use, so processes
        without the ASGI entrypoint (runserver, shell, WSGI) can enqueue.

        Raises:
            SchedulerNotRunning: If the scheduler has been stopped
        """
        if not self._running:
            if self._stopped:
                raise SchedulerNotRunning("Forward scheduler has been stopped")
            self.start()

        options = {}
        if self._producer is not None:
            options['producer'] = self._producer

        result = self.task.apply_async(args=(lead_id,), **options)
        logger.info(f"Lead {lead_id} enqueued for forwarding, job={result.id}")
        return result

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
