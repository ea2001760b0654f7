"""Loss functions built from graph operations."""

from __future__ import annotations

import numpy as np

from .tensor import Node, add, clamp, constant, log, mul, neg, reduce_mean, sub

_EPS = np.float32(1e-7)
_HIGH = float(np.float32(1.0) - _EPS)


def mse(pred: Node, target: Node) -> Node:
    """Mean squared error between ``pred`` and ``target``."""
    diff = sub(pred, target)
    return reduce_mean(mul(diff, diff))


def _binary_cross_entropy(pred: Node, target: Node) -> Node:
    pred_clamped = clamp(pred, float(_EPS), _HIGH)
    term1 = mul(target, log(pred_clamped))
    shape = pred_clamped.shape
    term2 = mul(
        sub(constant(1.0, shape), target),
        log(sub(constant(1.0, shape), pred_clamped)),
    )
    return neg(reduce_mean(add(term1, term2)))


def bce(pred: Node, target: Node) -> Node:
    """Binary cross-entropy of probabilities ``pred`` against ``target``."""
    return _binary_cross_entropy(pred, target)


def cross_entropy(pred: Node, target: Node) -> Node:
    """Cross-entropy of probabilities ``pred`` against ``target``, element by element."""
    return _binary_cross_entropy(pred, target)