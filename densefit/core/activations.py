"""Activation kernels for densefit."""

from __future__ import annotations

import numpy as np

from .types import Array


def sigmoid(x: Array) -> Array:
    """Return the logistic sigmoid ``1 / (1 + exp(-x))``."""

    return 1.0 / (1.0 + np.exp(-x))


def sigmoid_deriv(output: Array) -> Array:
    """Derivative of the sigmoid expressed through its output."""

    return output * (1.0 - output)


def tanh(x: Array) -> Array:
    return np.tanh(x)


def tanh_deriv(output: Array) -> Array:
    """Derivative of ``tanh`` expressed through its output."""

    return 1.0 - output**2


__all__ = ["sigmoid", "sigmoid_deriv", "tanh", "tanh_deriv"]
