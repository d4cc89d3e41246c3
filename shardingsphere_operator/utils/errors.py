import json
import kubernetes_asyncio

_ALREADY_EXISTS = "alreadyexists"


def _error_reason(ex: kubernetes_asyncio.client.ApiException) -> str:
    """Return the lowercased status reason of an API error."""
    try:
        err = json.loads(ex.body)
        return err.get("reason", "").lower()
    except (TypeError, ValueError, AttributeError):
        return (ex.reason or "").replace(" ", "").lower()


def already_exists_error(ex: Exception) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409 and _error_reason(ex) == _ALREADY_EXISTS


def not_found_error(ex: Exception) -> bool:
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 404


def conflict_error(ex: Exception) -> bool:
    """True when a write lost an optimistic concurrency race."""
    if not isinstance(ex, kubernetes_asyncio.client.ApiException):
        return False
    return ex.status == 409 and _error_reason(ex) != _ALREADY_EXISTS

