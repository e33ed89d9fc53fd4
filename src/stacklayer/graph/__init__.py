"""Dependency graph and wave ordering."""

from stacklayer.graph.dependency import DependencyEdge, DependencyGraph, EdgeReason

__all__ = ["DependencyEdge", "DependencyGraph", "EdgeReason"]
