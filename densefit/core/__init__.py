"""Core numerical primitives for densefit."""

from . import activations, layers, losses, matrix, network, operations, types

__all__ = ["activations", "layers", "losses", "matrix", "network", "operations", "types"]
