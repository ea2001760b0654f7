"""A small reverse-mode autodiff engine with layers, losses, an SGD optimizer and data loading on NumPy."""

__version__ = "0.0.1"

__all__ = [
    "tensor",
    "utils",
    "backprop",
    "engine",
    "loss",
    "optimizer",
    "data",
    "layer",
    "examples",
]