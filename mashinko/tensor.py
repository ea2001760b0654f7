"""Tensor nodes of the computation graph and the operations that build them.

Arrays follow a leading-axis convention: shapes of different rank are
aligned by appending trailing axes of size one, and reshapes fill in
column-major order. Convolution and pooling work on ``(H, W, C, N)``
tensors, with convolution weights laid out as ``(kH, kW, C_in, C_out)``.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view


class OpKind(enum.Enum):
    """The kinds of operation a graph node can result from."""

    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    MATMUL = "matmul"
    DOT = "dot"
    TRANSPOSE = "transpose"
    SUM = "sum"
    MEAN = "mean"
    RELU = "relu"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    CLAMP = "clamp"
    LOG = "log"
    NEG = "neg"
    CONV2D = "conv2d"
    MAX_POOL = "max_pool"
    RESHAPE = "reshape"
    REORDER = "reorder"


@dataclass(frozen=True)
class Operation:
    """An operation together with the parameters its gradient needs."""

    kind: OpKind
    stride: tuple[int, int] | int | None = None
    padding: tuple[int, int] | None = None
    dilation: tuple[int, int] | None = None
    pool_size: int | None = None
    original_shape: tuple[int, ...] | None = None
    perm: tuple[int, ...] | None = None


def _as_f32(values: Any) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


@dataclass(eq=False)
class Node:
    """A value in the computation graph, with its gradient and history."""

    tensor: np.ndarray
    requires_grad: bool = False
    op: Operation | None = None
    parents: list[Node] = field(default_factory=list)
    grad: np.ndarray | None = None

    def __post_init__(self) -> None:
        self.tensor = _as_f32(self.tensor)

    @property
    def shape(self) -> tuple[int, ...]:
        return self.tensor.shape

    def __add__(self, other: Node) -> Node:
        return add(self, other)

    def __sub__(self, other: Node) -> Node:
        return sub(self, other)

    def __mul__(self, other: Node) -> Node:
        return mul(self, other)

    def __truediv__(self, other: Node) -> Node:
        return div(self, other)

    def __matmul__(self, other: Node) -> Node:
        return matmul(self, other)

    def __neg__(self) -> Node:
        return neg(self)


def leaf(tensor: Any, requires_grad: bool = False) -> Node:
    """Create a node with no history."""
    return Node(_as_f32(tensor), requires_grad=requires_grad)


def from_op(
    tensor: Any, op: Operation, parents: Sequence[Node], requires_grad: bool = True
) -> Node:
    """Create a node produced by ``op`` from ``parents``."""
    return Node(_as_f32(tensor), requires_grad=requires_grad, op=op, parents=list(parents))


def constant(value: float, shape: Sequence[int] | int) -> Node:
    """Create a leaf filled with ``value`` that takes no gradient."""
    return leaf(np.full(shape, value, dtype=np.float32), False)


def _pad_dims(values: np.ndarray, ndim: int) -> np.ndarray:
    if values.ndim >= ndim:
        return values
    return values.reshape(values.shape + (1,) * (ndim - values.ndim))


def _align(x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    ndim = max(x.ndim, y.ndim)
    return _pad_dims(x, ndim), _pad_dims(y, ndim)


def _binary(a: Node, b: Node, kind: OpKind, func) -> Node:
    x, y = _align(a.tensor, b.tensor)
    return from_op(func(x, y), Operation(kind), [a, b], True)


def add(a: Node, b: Node) -> Node:
    return _binary(a, b, OpKind.ADD, np.add)


def sub(a: Node, b: Node) -> Node:
    return _binary(a, b, OpKind.SUB, np.subtract)


def mul(a: Node, b: Node) -> Node:
    return _binary(a, b, OpKind.MUL, np.multiply)


def div(a: Node, b: Node) -> Node:
    return _binary(a, b, OpKind.DIV, np.divide)


def neg(a: Node) -> Node:
    return from_op(-a.tensor, Operation(OpKind.NEG), [a], True)


def _batched_matmul(x: np.ndarray, y: np.ndarray) -> np.ndarray:
    x, y = _align(_pad_dims(x, 2), _pad_dims(y, 2))
    if x.ndim == 2:
        return x @ y
    product = np.moveaxis(x, (0, 1), (-2, -1)) @ np.moveaxis(y, (0, 1), (-2, -1))
    return np.moveaxis(product, (-2, -1), (0, 1))


def matmul(a: Node, b: Node) -> Node:
    """Matrix product over the first two axes; further axes are batch axes."""
    return from_op(
        _batched_matmul(a.tensor, b.tensor), Operation(OpKind.MATMUL), [a, b], True
    )


def reduce_sum(a: Node) -> Node:
    """Sum of all elements, as a one-element tensor."""
    total = np.array([a.tensor.sum(dtype=np.float32)], dtype=np.float32)
    return from_op(total, Operation(OpKind.SUM), [a], True)


def reduce_mean(a: Node) -> Node:
    """Mean of all elements, as a one-element tensor."""
    average = np.array([np.float32(a.tensor.mean(dtype=np.float64))], dtype=np.float32)
    return from_op(average, Operation(OpKind.MEAN), [a], True)


def clamp(a: Node, low: float, high: float) -> Node:
    return from_op(np.clip(a.tensor, low, high), Operation(OpKind.CLAMP), [a], True)


def log(a: Node) -> Node:
    return from_op(np.log(a.tensor), Operation(OpKind.LOG), [a], True)


def transpose(a: Node) -> Node:
    """Swap the first two axes; a vector becomes a single row."""
    flipped = np.swapaxes(_pad_dims(a.tensor, 2), 0, 1)
    return from_op(flipped, Operation(OpKind.TRANSPOSE), [a], True)


def sigmoid(a: Node) -> Node:
    with np.errstate(over="ignore"):
        values = 1.0 / (1.0 + np.exp(-a.tensor))
    return from_op(values, Operation(OpKind.SIGMOID), [a], True)


def relu(a: Node) -> Node:
    """max(0, x), with NaN mapped to zero."""
    values = np.where(a.tensor > 0, a.tensor, np.float32(0.0))
    return from_op(values, Operation(OpKind.RELU), [a], True)


def tanh(a: Node) -> Node:
    return from_op(np.tanh(a.tensor), Operation(OpKind.TANH), [a], True)


def _pair(values: Sequence[int] | int) -> tuple[int, int]:
    if isinstance(values, int):
        return values, values
    first, second = values
    return int(first), int(second)


def conv2d(
    input: Node,
    weight: Node,
    stride: Sequence[int] = (1, 1),
    padding: Sequence[int] = (0, 0),
    dilation: Sequence[int] = (1, 1),
) -> Node:
    """2-D cross-correlation of ``(H, W, C_in, N)`` with ``(kH, kW, C_in, C_out)``.

    The dilation is recorded on the operation but not applied.
    """
    stride, padding, dilation = _pair(stride), _pair(padding), _pair(dilation)
    if min(stride) < 1:
        raise ValueError(f"stride must be positive, got {stride}")
    if min(padding) < 0:
        raise ValueError(f"padding must not be negative, got {padding}")

    x = _pad_dims(input.tensor, 4)
    w = _pad_dims(weight.tensor, 4)
    if x.ndim != 4 or w.ndim != 4:
        raise ValueError("conv2d works on tensors of at most four dimensions")
    kh, kw, c_in, _ = w.shape
    if x.shape[2] != c_in:
        raise ValueError(
            f"input has {x.shape[2]} channels but the weight expects {c_in}"
        )

    ph, pw = padding
    padded = np.pad(x, ((ph, ph), (pw, pw), (0, 0), (0, 0)))
    if padded.shape[0] < kh or padded.shape[1] < kw:
        raise ValueError(
            f"kernel {kh}x{kw} is larger than the padded input "
            f"{padded.shape[0]}x{padded.shape[1]}"
        )

    windows = sliding_window_view(padded, (kh, kw), axis=(0, 1))[:: stride[0], :: stride[1]]
    output = np.einsum("ijcnab,abco->ijon", windows, w, optimize=True)
    op = Operation(OpKind.CONV2D, stride=stride, padding=padding, dilation=dilation)
    return from_op(output, op, [input, weight], True)


def max_pool(input: Node, pool_size: int, stride: int) -> Node:
    """Maximum over square windows of an ``(H, W, C, N)`` tensor, without padding."""
    if pool_size < 1 or stride < 1:
        raise ValueError("pool size and stride must be positive")
    x = _pad_dims(input.tensor, 4)
    if x.ndim != 4:
        raise ValueError("max_pool works on tensors of at most four dimensions")
    if x.shape[0] < pool_size or x.shape[1] < pool_size:
        raise ValueError(
            f"pool size {pool_size} is larger than the input {x.shape[0]}x{x.shape[1]}"
        )
    windows = sliding_window_view(x, (pool_size, pool_size), axis=(0, 1))[::stride, ::stride]
    output = windows.max(axis=(-2, -1))
    op = Operation(OpKind.MAX_POOL, stride=stride, pool_size=pool_size)
    return from_op(output, op, [input], True)


def reshape(input: Node, shape: Sequence[int]) -> Node:
    """Reshape in column-major order."""
    shape = tuple(int(size) for size in shape)
    if int(np.prod(shape)) != input.tensor.size:
        raise ValueError(
            f"cannot reshape {input.tensor.size} elements into shape {shape}"
        )
    values = np.reshape(input.tensor, shape, order="F")
    op = Operation(OpKind.RESHAPE, original_shape=tuple(input.tensor.shape))
    return from_op(values, op, [input], True)


def reorder(input: Node, perm: Sequence[int]) -> Node:
    """Permute the axes; output axis ``i`` is input axis ``perm[i]``."""
    perm = tuple(int(axis) for axis in perm)
    if sorted(perm) != list(range(len(perm))):
        raise ValueError(f"{perm} is not a permutation of the axes")
    if input.tensor.ndim > len(perm):
        raise ValueError(
            f"permutation of {len(perm)} axes given for a tensor of {input.tensor.ndim}"
        )
    values = np.transpose(_pad_dims(input.tensor, len(perm)), perm)
    return from_op(values, Operation(OpKind.REORDER, perm=perm), [input], True)