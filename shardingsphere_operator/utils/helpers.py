import jsonpickle
from datetime import datetime, timezone
from typing import Dict


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    """Format a timestamp the way Kubernetes serializes `metav1.Time`."""
    return ts.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace(
        "+00:00", "Z"
    )


def sort_dict_keys(d):
    """Recursively sort dictionary keys and handle nested structures.

    Args:
        d: Data structure (dict, list, or primitive type)

    Returns:
        Sorted version of the data structure
    """
    if isinstance(d, dict):
        return {key: sort_dict_keys(value) for key, value in sorted(d.items())}
    elif isinstance(d, list):
        return [sort_dict_keys(item) for item in d]
    else:
        return d


def canonicalize_dict(data: Dict) -> str:
    """
    Returns a canonical JSON representation of a dictionary.

    The JSON string uses sorted keys, which ensures that the representation of the
    dictionary remains consistent even when key order varies.
    """
    return jsonpickle.dumps(sort_dict_keys(data), unpicklable=False)


def selector_to_str(labels: Dict[str, str]) -> str:
    """Convert a label mapping to the `k=v,k2=v2` form used by list calls."""
    return ",".join(f"{k}={v}" for k, v in (labels or {}).items())
