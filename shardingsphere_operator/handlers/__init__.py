from .computenode import reconcile

__all__ = ["reconcile"]
