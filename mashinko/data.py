"""Datasets and mini-batch loading along the first axis."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np

from .tensor import Node, leaf


@dataclass
class Dataset:
    """Inputs and targets; samples run along the first axis of each."""

    x: Node
    y: Node


@dataclass
class DataLoader:
    """Yields ``(x, y)`` batches of at most ``batch_size`` samples."""

    dataset: Dataset
    batch_size: int
    shuffle: bool = False
    rng: np.random.Generator | None = None

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch size must be positive, got {self.batch_size}")

    def _n_samples(self) -> int:
        return np.atleast_1d(self.dataset.x.tensor).shape[0]

    def __iter__(self) -> Iterator[tuple[Node, Node]]:
        x_data = np.atleast_1d(self.dataset.x.tensor).copy()
        y_data = np.atleast_1d(self.dataset.y.tensor).copy()
        n_samples = x_data.shape[0]
        if y_data.shape[0] != n_samples:
            raise ValueError(
                f"inputs hold {n_samples} samples but targets hold {y_data.shape[0]}"
            )

        if self.shuffle:
            rng = np.random.default_rng() if self.rng is None else self.rng
            perm = rng.permutation(n_samples)
            x_data, y_data = x_data[perm], y_data[perm]

        for start in range(0, n_samples, self.batch_size):
            stop = min(start + self.batch_size, n_samples)
            yield (
                leaf(x_data[start:stop].copy(), False),
                leaf(y_data[start:stop].copy(), False),
            )

    def __len__(self) -> int:
        return -(-self._n_samples() // self.batch_size)

    def is_empty(self) -> bool:
        """True when the dataset holds no samples."""
        return self._n_samples() == 0