"""Optimizers that update parameters from their gradients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

import numpy as np

from .tensor import Node


class Optimizer(ABC):
    """Updates parameters in place from their accumulated gradients."""

    @abstractmethod
    def step(self, parameters: Iterable[Node]) -> None:
        """Apply one update to every parameter."""

    @abstractmethod
    def zero_grad(self, parameters: Iterable[Node]) -> None:
        """Reset the gradients of every parameter."""


@dataclass
class SGD(Optimizer):
    """Plain stochastic gradient descent."""

    lr: float

    def step(self, parameters: Iterable[Node]) -> None:
        """Move each parameter that has a gradient against it by ``lr``."""
        lr = np.float32(self.lr)
        for param in parameters:
            if param.grad is None:
                continue
            param.tensor = np.asarray(param.tensor - param.grad * lr, dtype=np.float32)

    def zero_grad(self, parameters: Iterable[Node]) -> None:
        """Set each parameter's gradient to zeros of its shape."""
        for param in parameters:
            param.grad = np.zeros(param.shape, dtype=np.float32)