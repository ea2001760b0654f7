import numpy as np
import pytest

from mashinko.engine import backward
from mashinko.layer import Linear
from mashinko.loss import mse
from mashinko.optimizer import SGD, Optimizer
from mashinko.tensor import leaf


def test_optimizer_is_abstract():
    with pytest.raises(TypeError):
        Optimizer()


def test_sgd_step_moves_against_gradient():
    param = leaf([1.0, 2.0], True)
    param.grad = np.array([0.5, 1.0], dtype=np.float32)
    SGD(lr=0.1).step([param])
    np.testing.assert_allclose(param.tensor, [0.95, 1.9], rtol=1e-6)


def test_sgd_step_skips_parameters_without_gradient():
    param = leaf([3.0, -1.0], True)
    SGD(lr=0.5).step([param])
    np.testing.assert_array_equal(param.tensor, np.array([3.0, -1.0], dtype=np.float32))


def test_zero_grad_sets_zeros_of_parameter_shape():
    param = leaf(np.ones((2, 3)), True)
    param.grad = np.full((2, 3), 7.0, dtype=np.float32)
    SGD(lr=0.1).zero_grad([param])
    assert param.grad.shape == (2, 3)
    assert not param.grad.any()


def test_step_after_zero_grad_changes_nothing():
    param = leaf([1.5, 2.5], True)
    optimizer = SGD(lr=1.0)
    optimizer.zero_grad([param])
    optimizer.step([param])
    np.testing.assert_array_equal(param.tensor, np.array([1.5, 2.5], dtype=np.float32))


def test_training_step_reduces_loss():
    rng = np.random.default_rng(3)
    model = Linear(1, 1, rng=rng)
    x = leaf([[1.0], [2.0], [3.0], [4.0]])
    y = leaf([[4.0], [7.0], [10.0], [13.0]])
    optimizer = SGD(lr=0.01)

    before = mse(model.forward(x), y)
    backward(before)
    optimizer.step(model.parameters())
    optimizer.zero_grad(model.parameters())

    after = mse(model.forward(x), y)
    assert after.tensor[0] < before.tensor[0]
    assert all(not p.grad.any() for p in model.parameters())