import os
from typing import Any

_TRUE, _FALSE = {"True", "true", "yes", "1"}, {"False", "false", "no", "0"}


def _getenv(name: str, *default: Any) -> Any:
    try:
        v = os.environ[name]
        if v in _TRUE:
            return True
        elif v in _FALSE:
            return False
        else:
            return v
    except KeyError:
        pass
    if default:
        return default[0]
    raise KeyError(name)


# ------------------------------------------------
# ---- Defaults and environment variables ----
# ------------------------------------------------

#: Seconds between two successful reconcile passes of the same ComputeNode
REQUEUE_DELAY_SECONDS = float(_getenv("REQUEUE_DELAY_SECONDS", 10.0))

#: Seconds to wait before retrying a pass that returned an error
ERROR_REQUEUE_DELAY_SECONDS = float(_getenv("ERROR_REQUEUE_DELAY_SECONDS", 1.0))

#: Upper bound for a single reconcile pass, after which it is cancelled and retried
RECONCILE_TIMEOUT_SECONDS = float(_getenv("RECONCILE_TIMEOUT_SECONDS", 60.0))

#: Attempts made to write status when the parent resource changed underneath us
STATUS_UPDATE_MAX_RETRIES = int(_getenv("STATUS_UPDATE_MAX_RETRIES", 3))

#: Name of the container whose readiness counts towards ready instances
PROXY_CONTAINER_NAME = str(_getenv("PROXY_CONTAINER_NAME", "shardingsphere-proxy"))

#: Image repository used when a ComputeNode does not provide its own image
PROXY_IMAGE = str(_getenv("PROXY_IMAGE", "apache/shardingsphere-proxy"))

#: Maximum number of ComputeNodes reconciled concurrently
WORKER_LIMIT = int(_getenv("WORKER_LIMIT", 5))


class Settings:
    """Operator settings"""

    requeue_delay_seconds: float = REQUEUE_DELAY_SECONDS
    error_requeue_delay_seconds: float = ERROR_REQUEUE_DELAY_SECONDS
    reconcile_timeout_seconds: float = RECONCILE_TIMEOUT_SECONDS
    status_update_max_retries: int = STATUS_UPDATE_MAX_RETRIES
    proxy_container_name: str = PROXY_CONTAINER_NAME
    proxy_image: str = PROXY_IMAGE
    worker_limit: int = WORKER_LIMIT

    def __init__(
        self,
        *args,
        requeue_delay_seconds: float = None,
        error_requeue_delay_seconds: float = None,
        reconcile_timeout_seconds: float = None,
        status_update_max_retries: int = None,
        proxy_container_name: str = None,
        proxy_image: str = None,
        worker_limit: int = None,
        **kwargs,
    ):
        if requeue_delay_seconds is not None:
            self.requeue_delay_seconds = requeue_delay_seconds

        if error_requeue_delay_seconds is not None:
            self.error_requeue_delay_seconds = error_requeue_delay_seconds

        if reconcile_timeout_seconds is not None:
            self.reconcile_timeout_seconds = reconcile_timeout_seconds

        if status_update_max_retries is not None:
            self.status_update_max_retries = status_update_max_retries

        if proxy_container_name is not None:
            self.proxy_container_name = proxy_container_name

        if proxy_image is not None:
            self.proxy_image = proxy_image

        if worker_limit is not None:
            self.worker_limit = worker_limit
