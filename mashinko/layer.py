"""Layers and models composed of graph operations."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from itertools import chain

import numpy as np

from .tensor import (
    Node,
    add,
    conv2d,
    leaf,
    matmul,
    max_pool,
    relu,
    reorder,
    reshape,
    transpose,
)


def _generator(rng: np.random.Generator | None) -> np.random.Generator:
    return np.random.default_rng() if rng is None else rng


class Layer(ABC):
    """A transformation of a node, with its trainable parameters."""

    name: str | None = None

    @abstractmethod
    def forward(self, input: Node) -> Node:
        """Apply the layer to ``input``."""

    def parameters(self) -> list[Node]:
        """The trainable parameters of the layer."""
        return []

    def __call__(self, input: Node) -> Node:
        return self.forward(input)


class Linear(Layer):
    """``input @ weight + bias`` with weight ``(in, out)`` and bias ``(1, out)``."""

    def __init__(
        self,
        in_features: int,
        out_features: int,
        *,
        rng: np.random.Generator | None = None,
        name: str | None = None,
    ) -> None:
        gen = _generator(rng)
        scale = np.float32(0.01)
        self.weight = leaf(gen.random((in_features, out_features), dtype=np.float32) * scale, True)
        self.bias = leaf(gen.random((1, out_features), dtype=np.float32) * scale, True)
        self.name = name

    def forward(self, input: Node) -> Node:
        return add(matmul(input, self.weight), self.bias)

    def parameters(self) -> list[Node]:
        return [self.weight, self.bias]


class ReLU(Layer):
    """Elementwise ``max(0, x)``."""

    def forward(self, input: Node) -> Node:
        return relu(input)


class Conv2D(Layer):
    """2-D convolution of ``(H, W, C_in, N)`` inputs, plus a per-channel bias."""

    def __init__(
        self,
        in_channels: int,
        out_channels: int,
        kernel_size: int,
        stride: Sequence[int] = (1, 1),
        padding: Sequence[int] = (0, 0),
        dilation: Sequence[int] = (1, 1),
        *,
        rng: np.random.Generator | None = None,
        name: str | None = None,
    ) -> None:
        fan_in = in_channels * kernel_size * kernel_size
        if fan_in <= 0:
            raise ValueError("channels and kernel size must be positive")
        gen = _generator(rng)
        scale = np.float32(math.sqrt(2.0 / fan_in))
        shape = (kernel_size, kernel_size, in_channels, out_channels)
        self.weight = leaf(gen.random(shape, dtype=np.float32) * scale, True)
        self.bias = leaf(np.zeros((1, 1, out_channels, 1), dtype=np.float32), True)
        self.stride = tuple(int(s) for s in stride)
        self.padding = tuple(int(p) for p in padding)
        self.dilation = tuple(int(d) for d in dilation)
        self.name = name

    @classmethod
    def with_params(
        cls,
        in_channels: int,
        out_channels: int,
        kernel_size: int,
        stride: Sequence[int],
        padding: Sequence[int],
        dilation: Sequence[int],
    ) -> Conv2D:
        """Build a layer with explicit stride, padding and dilation."""
        return cls(in_channels, out_channels, kernel_size, stride, padding, dilation)

    def forward(self, input: Node) -> Node:
        out = conv2d(input, self.weight, self.stride, self.padding, self.dilation)
        return add(out, self.bias)

    def parameters(self) -> list[Node]:
        return [self.weight, self.bias]


class MaxPool(Layer):
    """Maximum over square windows of ``(H, W, C, N)`` inputs."""

    def __init__(self, pool_size: int, stride: int, *, name: str | None = None) -> None:
        self.pool_size = pool_size
        self.stride = stride
        self.name = name

    def forward(self, input: Node) -> Node:
        return max_pool(input, self.pool_size, self.stride)


class Flatten(Layer):
    """Turn ``(H, W, C, N)`` into ``(N, H*W*C)``."""

    def forward(self, input: Node) -> Node:
        shape = tuple(input.shape)
        if len(shape) > 4:
            raise ValueError(f"cannot flatten a tensor of {len(shape)} dimensions")
        dims = shape + (1,) * (4 - len(shape))
        features = dims[0] * dims[1] * dims[2]
        return transpose(reshape(input, (features, dims[3])))


class Permute(Layer):
    """Reorder the axes; output axis ``i`` is input axis ``perm[i]``."""

    def __init__(self, perm: Sequence[int]) -> None:
        self.perm = tuple(int(axis) for axis in perm)

    def forward(self, input: Node) -> Node:
        return reorder(input, self.perm)


def _chain_forward(layers: Iterable[Layer], input: Node) -> Node:
    x = input
    for layer in layers:
        x = layer.forward(x)
    return x


def _chain_parameters(layers: Iterable[Layer]) -> list[Node]:
    return list(chain.from_iterable(layer.parameters() for layer in layers))


class MLP(Layer):
    """Linear layers of the given sizes with ReLU between them."""

    def __init__(
        self, layer_sizes: Sequence[int], *, rng: np.random.Generator | None = None
    ) -> None:
        sizes = list(layer_sizes)
        if not sizes:
            raise ValueError("an MLP needs at least one layer size")
        gen = _generator(rng)
        self.layers: list[Layer] = []
        last = len(sizes) - 2
        for index, (n_in, n_out) in enumerate(zip(sizes, sizes[1:])):
            self.layers.append(Linear(n_in, n_out, rng=gen))
            if index < last:
                self.layers.append(ReLU())

    def forward(self, input: Node) -> Node:
        return _chain_forward(self.layers, input)

    def parameters(self) -> list[Node]:
        return _chain_parameters(self.layers)


class Sequential(Layer):
    """Layers applied one after another."""

    def __init__(self, layers: Iterable[Layer]) -> None:
        self.layers = list(layers)

    def forward(self, input: Node) -> Node:
        return _chain_forward(self.layers, input)

    def parameters(self) -> list[Node]:
        return _chain_parameters(self.layers)


def sequential(*args: Layer) -> Sequential:
    """Build a :class:`Sequential` model from one or more layers."""
    if not args:
        raise ValueError("sequential needs at least one layer")
    return Sequential(args)