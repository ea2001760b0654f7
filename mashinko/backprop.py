"""Gradient rules: one backward step per graph node, and gradient accumulation."""

from __future__ import annotations

from collections.abc import Callable

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .tensor import Node, OpKind, _align, _batched_matmul, _pad_dims


def _combine(func, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    x, y = _align(np.asarray(x), np.asarray(y))
    return func(x, y)


def _swap(values: np.ndarray) -> np.ndarray:
    return np.swapaxes(_pad_dims(values, 2), 0, 1)


def accumulate_grad(node: Node, contribution) -> None:
    """Add ``contribution`` to the gradient of ``node``.

    Axes along which the node has size one but the contribution does not are
    summed away, so gradients of broadcast operands take the operand's shape.
    Nodes that do not require a gradient are left untouched.
    """
    if not node.requires_grad:
        return

    reduced = np.array(contribution, dtype=np.float32)
    param_shape = tuple(node.tensor.shape)
    ndim = max(len(param_shape), reduced.ndim)
    target = param_shape + (1,) * (ndim - len(param_shape))
    reduced = _pad_dims(reduced, ndim)

    axes = tuple(
        axis
        for axis, (want, have) in enumerate(zip(target, reduced.shape))
        if want == 1 and have > 1
    )
    if axes:
        reduced = reduced.sum(axis=axes, keepdims=True, dtype=np.float32)
    if reduced.shape != target:
        raise ValueError(
            f"gradient of shape {reduced.shape} does not fit a tensor of shape {param_shape}"
        )
    reduced = reduced.reshape(param_shape)

    node.grad = reduced if node.grad is None else node.grad + reduced


def _add(node: Node, dz: np.ndarray) -> None:
    for parent in node.parents:
        accumulate_grad(parent, dz)


def _sub(node: Node, dz: np.ndarray) -> None:
    a, b = node.parents
    accumulate_grad(a, dz)
    accumulate_grad(b, -dz)


def _mul(node: Node, dz: np.ndarray) -> None:
    a, b = node.parents
    a_data, b_data = a.tensor, b.tensor
    accumulate_grad(a, _combine(np.multiply, dz, b_data))
    accumulate_grad(b, _combine(np.multiply, dz, a_data))


def _div(node: Node, dz: np.ndarray) -> None:
    a, b = node.parents
    a_data, b_data = a.tensor, b.tensor
    b_squared = b_data * b_data
    accumulate_grad(a, _combine(np.divide, dz, b_data))
    accumulate_grad(
        b, _combine(np.divide, _combine(np.multiply, -dz, a_data), b_squared)
    )


def _matmul(node: Node, dz: np.ndarray) -> None:
    a, b = node.parents
    a_data, b_data = a.tensor, b.tensor
    accumulate_grad(a, _batched_matmul(dz, _swap(b_data)))
    accumulate_grad(b, _batched_matmul(_swap(a_data), dz))


def _sum(node: Node, dz: np.ndarray) -> None:
    parent = node.parents[0]
    ones = np.ones(parent.tensor.shape, dtype=np.float32)
    accumulate_grad(parent, _combine(np.multiply, ones, dz))


def _mean(node: Node, dz: np.ndarray) -> None:
    parent = node.parents[0]
    share = np.full(
        parent.tensor.shape, np.float32(1.0) / np.float32(parent.tensor.size), np.float32
    )
    accumulate_grad(parent, _combine(np.multiply, share, dz))


def _relu(node: Node, dz: np.ndarray) -> None:
    parent = node.parents[0]
    mask = (parent.tensor > 0).astype(np.float32)
    accumulate_grad(parent, _combine(np.multiply, dz, mask))


def _sigmoid(node: Node, dz: np.ndarray) -> None:
    sig = node.tensor
    accumulate_grad(node.parents[0], dz * sig * (np.float32(1.0) - sig))


def _tanh(node: Node, dz: np.ndarray) -> None:
    tanh_x = node.tensor
    accumulate_grad(node.parents[0], dz * (np.float32(1.0) - tanh_x * tanh_x))


def _log(node: Node, dz: np.ndarray) -> None:
    parent = node.parents[0]
    accumulate_grad(parent, _combine(np.divide, dz, parent.tensor))


def _clamp(node: Node, dz: np.ndarray) -> None:
    # The gradient passes where the input lies strictly inside the unit interval.
    parent = node.parents[0]
    x = parent.tensor
    mask = ((x > 0) & (x < 1)).astype(np.float32)
    accumulate_grad(parent, _combine(np.multiply, dz, mask))


def _neg(node: Node, dz: np.ndarray) -> None:
    accumulate_grad(node.parents[0], -dz)


def _transpose(node: Node, dz: np.ndarray) -> None:
    accumulate_grad(node.parents[0], _swap(dz))


def _conv2d(node: Node, dz: np.ndarray) -> None:
    inp, weight = node.parents
    sh, sw = node.op.stride
    ph, pw = node.op.padding

    x = _pad_dims(inp.tensor, 4)
    w = _pad_dims(weight.tensor, 4)
    g = _pad_dims(np.asarray(dz, dtype=np.float32), 4)
    kh, kw = w.shape[:2]
    oh, ow = g.shape[:2]

    padded = np.pad(x, ((ph, ph), (pw, pw), (0, 0), (0, 0)))
    windows = sliding_window_view(padded, (kh, kw), axis=(0, 1))[::sh, ::sw]

    d_weight = np.einsum("ijcnab,ijon->abco", windows, g, optimize=True)
    accumulate_grad(weight, d_weight)

    d_cols = np.einsum("abco,ijon->abijcn", w, g, optimize=True)
    d_padded = np.zeros_like(padded)
    for a, b in np.ndindex(kh, kw):
        d_padded[a : a + sh * (oh - 1) + 1 : sh, b : b + sw * (ow - 1) + 1 : sw] += d_cols[a, b]
    d_input = d_padded[ph : ph + x.shape[0], pw : pw + x.shape[1]]
    accumulate_grad(inp, d_input)


def _max_pool(node: Node, dz: np.ndarray) -> None:
    inp = node.parents[0]
    size = node.op.pool_size
    stride = node.op.stride

    x = _pad_dims(inp.tensor, 4)
    g = _pad_dims(np.asarray(dz, dtype=np.float32), 4)
    windows = sliding_window_view(x, (size, size), axis=(0, 1))[::stride, ::stride]

    peaks = windows.max(axis=(-2, -1), keepdims=True)
    mask = (windows == peaks).astype(np.float32)
    # Ties share the gradient equally.
    mask /= mask.sum(axis=(-2, -1), keepdims=True)
    share = mask * g[..., np.newaxis, np.newaxis]

    oh, ow = share.shape[:2]
    d_input = np.zeros_like(x)
    for p, q in np.ndindex(size, size):
        d_input[
            p : p + stride * (oh - 1) + 1 : stride, q : q + stride * (ow - 1) + 1 : stride
        ] += share[..., p, q]
    accumulate_grad(inp, d_input)


def _reshape(node: Node, dz: np.ndarray) -> None:
    accumulate_grad(
        node.parents[0], np.reshape(dz, node.op.original_shape, order="F")
    )


def _reorder(node: Node, dz: np.ndarray) -> None:
    perm = node.op.perm
    inverse = tuple(int(axis) for axis in np.argsort(perm))
    accumulate_grad(node.parents[0], np.transpose(_pad_dims(dz, len(perm)), inverse))


_HANDLERS: dict[OpKind, Callable[[Node, np.ndarray], None]] = {
    OpKind.ADD: _add,
    OpKind.SUB: _sub,
    OpKind.MUL: _mul,
    OpKind.DOT: _mul,
    OpKind.DIV: _div,
    OpKind.MATMUL: _matmul,
    OpKind.SUM: _sum,
    OpKind.MEAN: _mean,
    OpKind.RELU: _relu,
    OpKind.SIGMOID: _sigmoid,
    OpKind.TANH: _tanh,
    OpKind.LOG: _log,
    OpKind.CLAMP: _clamp,
    OpKind.NEG: _neg,
    OpKind.TRANSPOSE: _transpose,
    OpKind.CONV2D: _conv2d,
    OpKind.MAX_POOL: _max_pool,
    OpKind.RESHAPE: _reshape,
    OpKind.REORDER: _reorder,
}


def backward_step(node: Node) -> None:
    """Pass the gradient of ``node`` on to its parents.

    Does nothing for a node without a gradient or without an operation.
    """
    if node.grad is None or node.op is None:
        return
    _HANDLERS[node.op.kind](node, node.grad)