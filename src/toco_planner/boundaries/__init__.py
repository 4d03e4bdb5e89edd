"""Quantization boundary classification"""

from .policy import BoundaryPolicy, BoundaryEdge, BoundaryKind, BoundarySet

__all__ = ['BoundaryPolicy', 'BoundaryEdge', 'BoundaryKind', 'BoundarySet']
