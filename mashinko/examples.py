"""Small training runs: linear regression, XOR with an MLP, and an MNIST CNN."""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

import numpy as np

from .data import DataLoader, Dataset
from .engine import backward
from .layer import (
    MLP,
    Conv2D,
    Flatten,
    Linear,
    MaxPool,
    Permute,
    ReLU,
    sequential,
)
from .loss import mse
from .optimizer import SGD
from .tensor import Node, leaf
from .utils import parse_idx_file

_MNIST_IMAGES = "t10k-images.idx3-ubyte"
_MNIST_LABELS = "t10k-labels.idx1-ubyte"


def one_hot(labels, num_classes: int) -> np.ndarray:
    """Encode class labels as rows of a ``(n, num_classes)`` float32 matrix.

    A label outside ``range(num_classes)`` gives a row of zeros.
    """
    values = np.ravel(np.asarray(labels, dtype=np.float32), order="F")
    classes = np.arange(num_classes, dtype=np.float32)
    return (values[:, np.newaxis] == classes[np.newaxis, :]).astype(np.float32)


def _loss_value(loss: Node) -> float:
    return float(loss.tensor.sum(dtype=np.float32))


def _show(label: str, values: np.ndarray) -> None:
    print(f"{label}\n{values}")


def mnist_example(dataset_dir: str | Path = "datasets/mnist", epochs: int = 10) -> list[float]:
    """Train a small CNN on the MNIST test split; returns the mean loss of each epoch."""
    directory = Path(dataset_dir)
    train_images = parse_idx_file(directory / _MNIST_IMAGES, True)
    train_labels = parse_idx_file(directory / _MNIST_LABELS, False)
    print(f"train_images dims: {train_images.shape}", file=sys.stderr)
    print(f"train_labels dims: {train_labels.shape}", file=sys.stderr)

    labels_onehot = one_hot(train_labels, 10)
    dataset = Dataset(leaf(train_images, False), leaf(labels_onehot, False))
    data_loader = DataLoader(dataset, 8, True)

    model = sequential(
        Permute((1, 2, 3, 0)),
        Conv2D(1, 8, 5),
        ReLU(),
        MaxPool(2, 2),
        Conv2D(8, 16, 5),
        ReLU(),
        MaxPool(2, 2),
        Flatten(),
        Linear(256, 10),
    )
    optimizer = SGD(lr=0.01)

    print("Training MNIST with CNN\n")

    averages: list[float] = []
    for epoch in range(epochs):
        total_loss = 0.0
        batch_count = 0
        for x_batch, y_batch in data_loader:
            y_pred = model.forward(x_batch)
            loss = mse(y_pred, y_batch)
            backward(loss)

            total_loss += _loss_value(loss)
            batch_count += 1

            params = model.parameters()
            optimizer.step(params)
            optimizer.zero_grad(params)

        avg_loss = total_loss / batch_count if batch_count else float("nan")
        averages.append(avg_loss)
        print(f"Epoch {epoch + 1:>2} | Avg Loss: {avg_loss:.6f}")

    print("\nTraining complete!")
    return averages


def mlp_example(epochs: int = 200) -> tuple[list[float], MLP]:
    """Learn XOR with a two-layer MLP; returns the loss of each epoch and the model.

    XOR cannot be learned by a linear model; the hidden layer supplies the
    non-linearity.
    """
    x = leaf(
        np.reshape(
            np.array([0.0, 0.0, 1.0, 1.0, 0.0, 1.0, 0.0, 1.0], dtype=np.float32),
            (4, 2),
            order="F",
        ),
        False,
    )
    y_true = leaf(np.array([[0.0], [1.0], [1.0], [0.0]], dtype=np.float32), False)

    model = MLP([2, 4, 1])
    optimizer = SGD(lr=0.1)

    print("learning XOR\n")

    losses: list[float] = []
    for epoch in range(epochs):
        y_pred = model.forward(x)
        loss = mse(y_pred, y_true)
        backward(loss)

        losses.append(_loss_value(loss))
        if epoch % 40 == 0:
            print(f"Epoch {epoch:>4} | Loss: {losses[-1]:.6f}")

        params = model.parameters()
        optimizer.step(params)
        optimizer.zero_grad(params)

    y_pred = model.forward(x)

    print("\n=== XOR Results ===\n")
    _show("x", x.tensor)
    _show("y_true", y_true.tensor)
    _show("y_pred", y_pred.tensor)
    return losses, model


def linear_example(epochs: int = 200) -> tuple[list[float], Linear]:
    """Fit ``y = 3x + 1`` with one linear unit; returns the loss of each epoch and the model."""
    x = leaf(np.array([[1.0], [2.0], [3.0], [4.0]], dtype=np.float32), False)
    y_true = leaf(np.array([[4.0], [7.0], [10.0], [13.0]], dtype=np.float32), False)

    model = Linear(1, 1)
    optimizer = SGD(lr=0.01)

    print("learning y = 3x + 1\n")

    losses: list[float] = []
    for epoch in range(epochs):
        y_pred = model.forward(x)
        loss = mse(y_pred, y_true)
        backward(loss)

        losses.append(_loss_value(loss))
        if epoch % 20 == 0:
            print(f"Epoch {epoch:>3} | Loss: {losses[-1]:.6f}")

        optimizer.step(model.parameters())
        optimizer.zero_grad(model.parameters())

    y_pred = model.forward(x)

    print("\n=== Results ===\n")
    _show("x", x.tensor)
    _show("y_true", y_true.tensor)
    _show("y_pred", y_pred.tensor)
    _show("weight (expect ~3)", model.weight.tensor)
    _show("bias   (expect ~1)", model.bias.tensor)
    return losses, model


def main(argv: Sequence[str] | None = None) -> int:
    """Run one of the example trainings from the command line."""
    parser = argparse.ArgumentParser(prog="mashinko", description="Run a training example.")
    parser.add_argument(
        "example",
        nargs="?",
        choices=("mnist", "mlp", "linear"),
        default="mnist",
        help="which example to run (default: mnist)",
    )
    parser.add_argument("--epochs", type=int, default=None, help="number of epochs")
    parser.add_argument(
        "--dataset-dir",
        default="datasets/mnist",
        help="directory holding the MNIST IDX files",
    )
    args = parser.parse_args(argv)

    if args.example == "mnist":
        epochs = 10 if args.epochs is None else args.epochs
        mnist_example(args.dataset_dir, epochs)
    elif args.example == "mlp":
        mlp_example(200 if args.epochs is None else args.epochs)
    else:
        linear_example(200 if args.epochs is None else args.epochs)
    return 0


if __name__ == "__main__":
    sys.exit(main())