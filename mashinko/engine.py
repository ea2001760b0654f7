"""Reverse-mode differentiation over the whole computation graph."""

from __future__ import annotations

import numpy as np

from .backprop import backward_step
from .tensor import Node


def topological_order(root: Node) -> list[Node]:
    """Nodes reachable from ``root``, each after all of its parents, ``root`` last."""
    order: list[Node] = []
    visited = {id(root)}
    stack = [(root, iter(root.parents))]
    while stack:
        node, parents = stack[-1]
        for parent in parents:
            if id(parent) not in visited:
                visited.add(id(parent))
                stack.append((parent, iter(parent.parents)))
                break
        else:
            stack.pop()
            order.append(node)
    return order


def backward(root: Node) -> None:
    """Backpropagate from ``root``, seeding its gradient with ones.

    Gradients add to whatever the nodes already hold.
    """
    order = topological_order(root)
    root.grad = np.ones(root.shape, dtype=np.float32)
    for node in reversed(order):
        backward_step(node)