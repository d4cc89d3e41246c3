from .computenode import ComputeNode

__all__ = ["ComputeNode"]
