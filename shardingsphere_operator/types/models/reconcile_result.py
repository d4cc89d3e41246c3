from typing import NamedTuple, Optional


class ReconcileResult(NamedTuple):
    """Scheduling directive produced by one reconcile pass.

    Either `requeue` is set and `error` explains why the pass must run again
    right away, or `requeue_after` holds the delay before the next pass.
    """

    requeue: bool = False
    requeue_after: Optional[float] = None
    error: Optional[Exception] = None

    @classmethod
    def retry_now(cls, error: Exception) -> "ReconcileResult":
        return cls(requeue=True, error=error)

    @classmethod
    def retry_after(cls, delay: float) -> "ReconcileResult":
        return cls(requeue_after=delay)
