# mashinko

A small reverse-mode automatic differentiation engine with a few neural
network building blocks, all on top of NumPy.

Values are `float32` NumPy arrays held in `Node` objects. Operations on
nodes build a computation graph. Calling `mashinko.engine.backward` on a
result fills in the `grad` of every node in the graph that requires one.

Shapes of different rank are aligned by appending trailing axes of size
one, and reshapes fill in column-major order. Convolution and pooling work
on `(H, W, C, N)` tensors. Convolution weights are laid out as
`(kH, kW, C_in, C_out)`.

## Installing

```
pip install .
```

To run the tests, install the test extra:

```
pip install .[test]
pytest
```

## What is in it

- `mashinko.tensor` holds `Node`, `Operation` and `OpKind`, and the
  operations that build the graph:
  - elementwise: `add`, `sub`, `mul`, `div`, `neg`, `log`, `clamp`
  - matrix: `matmul` (over the first two axes; further axes are batch
    axes) and `transpose` (swaps the first two axes)
  - reductions: `reduce_sum` and `reduce_mean`, each giving a
    one-element tensor
  - activations: `sigmoid`, `relu`, `tanh`
  - image: `conv2d` and `max_pool`
  - shape: `reshape` and `reorder`

  Leaves come from `leaf` and `constant`. Nodes also support the `+`, `-`,
  `*`, `/`, `@` and unary `-` operators.
- `mashinko.backprop` has the gradient rules. `backward_step(node)` passes
  one node's gradient to its parents. `accumulate_grad(node, contribution)`
  adds a gradient, summing away axes along which the node was broadcast.
- `mashinko.engine` has `backward(root)` and `topological_order(root)`.
  `backward` seeds the root with ones. Gradients add to what nodes
  already hold.
- `mashinko.loss` has `mse`, `bce` and `cross_entropy`. `bce` and
  `cross_entropy` clamp predictions into `[1e-7, 1 - 1e-7]`.
- `mashinko.optimizer` has the `Optimizer` base class and `SGD(lr)`, with
  `step` and `zero_grad`.
- `mashinko.layer` has the `Layer` base class and `Linear`, `ReLU`,
  `Conv2D` (also built via `Conv2D.with_params`), `MaxPool`, `Flatten`,
  `Permute`, `MLP`, `Sequential` and the `sequential(...)` helper.
  Layers with random weights accept an optional `rng`
  (`numpy.random.Generator`).
- `mashinko.data` has `Dataset` and `DataLoader`. A `DataLoader` yields
  `(x, y)` batches along the first axis and can shuffle them, using an
  optional `rng`. `len()` gives the number of batches.
- `mashinko.utils` has the following:
  - `parse_idx_file` and `parse_idx_bytes` read IDX data of unsigned
    bytes, such as MNIST, into a column-major `float32` array. They raise
    `IdxFormatError` on bad input.
  - `assert_all_close` compares two arrays.
- `mashinko.examples` has the training demos `linear_example`,
  `mlp_example` and `mnist_example`, plus `one_hot`. Each demo returns its
  per-epoch losses.

## Example

This fits `y = 3x + 1` with a single linear layer:

```python
import numpy as np
from mashinko import tensor
from mashinko.engine import backward
from mashinko.layer import Linear
from mashinko.loss import mse
from mashinko.optimizer import SGD

x = tensor.leaf(np.array([[1], [2], [3], [4]], dtype=np.float32))
y = tensor.leaf(np.array([[4], [7], [10], [13]], dtype=np.float32))

model = Linear(1, 1)
optimizer = SGD(lr=0.01)

for _ in range(200):
    loss = mse(model.forward(x), y)
    backward(loss)
    optimizer.step(model.parameters())
    optimizer.zero_grad(model.parameters())
```

## Command line

The `mashinko` command runs one of the training demos:

```
mashinko [mnist|mlp|linear] [--epochs N] [--dataset-dir DIR]
```

- The default demo is `mnist`. It trains a small CNN for 10 epochs on
  `t10k-images.idx3-ubyte` and `t10k-labels.idx1-ubyte`, which it reads
  from `--dataset-dir` (default `datasets/mnist`).
- `mlp` learns XOR.
- `linear` fits `y = 3x + 1`.
- Both `mlp` and `linear` run 200 epochs by default.

To list the options, run:

```
mashinko --help
```

## What it does not do

- It runs on the CPU through NumPy only.
- It has no way to save or load trained models.
- It does not download datasets. The MNIST files must already be on disk.
- The `dilation` of `conv2d` and `Conv2D` is recorded but not applied.