import threading
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Cooperative cancellation flag handed to chunked/paged loops.

    Loops call ``is_cancelled()`` only at iteration boundaries, so a unit of
    work that already started always runs to completion. Requesting
    cancellation never undoes writes that were already applied.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


class CancellationRegistry:
    """
    Tracks the cancellation token of every job running in this process.

    Jobs register on start and unregister when they finish; a cancel request
    for an unknown job (finished, or running in another process) is a no-op.
    """

    def __init__(self) -> None:
        self._tokens: Dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def register(self, job_id: str) -> CancellationToken:
        with self._lock:
            token = self._tokens.get(job_id)
            if token is None:
                token = CancellationToken()
                self._tokens[job_id] = token
            return token

    def get(self, job_id: str) -> Optional[CancellationToken]:
        with self._lock:
            return self._tokens.get(job_id)

    def cancel(self, job_id: str) -> bool:
        """Signal the job's token. Returns False when the job is not running here."""
        token = self.get(job_id)
        if token is None:
            logger.info("Cancel requested for job %s but no running token is registered", job_id)
            return False
        token.cancel()
        logger.info("Cancellation requested for job %s", job_id)
        return True

    def unregister(self, job_id: str) -> None:
        with self._lock:
            self._tokens.pop(job_id, None)
