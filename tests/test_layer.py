import math

import numpy as np
import pytest

from mashinko.engine import backward
from mashinko.layer import (
    MLP,
    Conv2D,
    Flatten,
    Layer,
    Linear,
    MaxPool,
    Permute,
    ReLU,
    Sequential,
    sequential,
)
from mashinko.loss import mse
from mashinko.tensor import conv2d, leaf, max_pool


@pytest.fixture
def rng():
    return np.random.default_rng(42)


def test_layer_is_abstract():
    with pytest.raises(TypeError):
        Layer()


def test_linear_shapes_and_parameters(rng):
    layer = Linear(3, 2, rng=rng)
    assert layer.weight.shape == (3, 2)
    assert layer.bias.shape == (1, 2)
    params = layer.parameters()
    assert params[0] is layer.weight and params[1] is layer.bias
    assert all(p.requires_grad for p in params)
    out = layer.forward(leaf(np.ones((4, 3))))
    assert out.shape == (4, 2)


def test_linear_initial_weights_are_small(rng):
    layer = Linear(5, 7, rng=rng)
    for param in layer.parameters():
        assert (param.tensor >= 0).all()
        assert (param.tensor < 0.01).all()


def test_linear_on_zero_input_gives_bias(rng):
    layer = Linear(3, 2, rng=rng)
    out = layer.forward(leaf(np.zeros((4, 3))))
    for row in out.tensor:
        np.testing.assert_allclose(row, layer.bias.tensor[0])


def test_relu_forward_has_no_negatives_and_no_parameters():
    out = ReLU().forward(leaf([-2.0, 0.5, -0.1, 3.0]))
    assert (out.tensor >= 0).all()
    np.testing.assert_array_equal(out.tensor[[1, 3]], np.array([0.5, 3.0], dtype=np.float32))
    assert ReLU().parameters() == []


def test_conv2d_initialisation(rng):
    layer = Conv2D(1, 3, 3, rng=rng)
    assert layer.weight.shape == (3, 3, 1, 3)
    assert layer.bias.shape == (1, 1, 3, 1)
    assert not layer.bias.tensor.any()
    assert (layer.weight.tensor < math.sqrt(2.0 / 9)).all()
    assert layer.stride == (1, 1) and layer.padding == (0, 0)


def test_conv2d_forward_matches_convolution_with_zero_bias(rng):
    layer = Conv2D.with_params(2, 3, 3, (2, 2), (1, 1), (1, 1))
    assert layer.stride == (2, 2) and layer.padding == (1, 1)
    x = leaf(rng.random((5, 5, 2, 2)))
    expected = conv2d(x, layer.weight, (2, 2), (1, 1), (1, 1)).tensor
    np.testing.assert_allclose(layer.forward(x).tensor, expected, rtol=1e-6)
    assert layer.parameters() == [layer.weight, layer.bias]


def test_maxpool_forward_matches_max_pool(rng):
    x = leaf(rng.random((6, 6, 2, 3)))
    layer = MaxPool(2, 2)
    np.testing.assert_array_equal(layer.forward(x).tensor, max_pool(x, 2, 2).tensor)
    assert layer.parameters() == []


def test_flatten_puts_samples_in_rows():
    x = np.arange(48, dtype=np.float32).reshape(2, 2, 3, 4)
    out = Flatten().forward(leaf(x)).tensor
    assert out.shape == (x.shape[3], x.shape[0] * x.shape[1] * x.shape[2])
    for n in range(x.shape[3]):
        np.testing.assert_array_equal(out[n], x[..., n].reshape(-1, order="F"))


def test_flatten_rejects_five_dimensions():
    with pytest.raises(ValueError):
        Flatten().forward(leaf(np.zeros((1, 1, 1, 1, 2))))


def test_permute_reorders_axes(rng):
    x = rng.random((5, 6, 7, 1)).astype(np.float32)
    out = Permute([1, 2, 3, 0]).forward(leaf(x))
    np.testing.assert_array_equal(out.tensor, np.transpose(x, (1, 2, 3, 0)))


def test_mlp_structure(rng):
    model = MLP([2, 4, 1], rng=rng)
    kinds = [type(layer) for layer in model.layers]
    assert kinds == [Linear, ReLU, Linear]
    assert len(model.parameters()) == 4
    assert model.forward(leaf(np.ones((5, 2)))).shape == (5, 1)


def test_mlp_requires_sizes():
    with pytest.raises(ValueError):
        MLP([])


def test_mlp_gradients_reach_all_parameters(rng):
    model = MLP([2, 4, 1], rng=rng)
    x = leaf(rng.random((5, 2)))
    y = leaf(rng.random((5, 1)))
    backward(mse(model.forward(x), y))
    for param in model.parameters():
        assert param.grad.shape == param.shape
        assert np.isfinite(param.grad).all()


def test_sequential_chains_layers(rng):
    first = Linear(3, 4, rng=rng)
    second = Linear(4, 2, rng=rng)
    model = sequential(first, ReLU(), second)
    assert isinstance(model, Sequential)
    assert model.parameters() == first.parameters() + second.parameters()
    x = leaf(rng.random((2, 3)))
    expected = second.forward(ReLU().forward(first.forward(x))).tensor
    np.testing.assert_allclose(model.forward(x).tensor, expected, rtol=1e-6)


def test_sequential_requires_a_layer():
    with pytest.raises(ValueError):
        sequential()


def test_cnn_pipeline_trains_end_to_end(rng):
    model = sequential(
        Permute((1, 2, 3, 0)),
        Conv2D(1, 2, 3, rng=rng),
        ReLU(),
        MaxPool(2, 2),
        Flatten(),
        Linear(18, 10, rng=rng),
    )
    x = leaf(rng.random((2, 8, 8, 1)))
    out = model.forward(x)
    assert out.shape == (2, 10)
    backward(mse(out, leaf(np.zeros((2, 10)))))
    for param in model.parameters():
        assert param.grad is not None
        assert param.grad.shape == param.shape