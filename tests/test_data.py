import numpy as np
import pytest

from mashinko.data import DataLoader, Dataset
from mashinko.tensor import leaf


def _dataset(n=10):
    x = np.arange(n * 2, dtype=np.float32).reshape(n, 2)
    y = x[:, :1] * 2
    return Dataset(leaf(x), leaf(y))


def test_len_rounds_up():
    loader = DataLoader(_dataset(10), 3)
    assert len(loader) == 4
    assert len(list(loader)) == len(loader)


def test_batches_in_order_cover_dataset():
    dataset = _dataset(10)
    loader = DataLoader(dataset, 3)
    batches = list(loader)
    sizes = [bx.shape[0] for bx, _ in batches]
    assert all(size == 3 for size in sizes[:-1])
    assert 0 < sizes[-1] <= 3
    np.testing.assert_array_equal(
        np.concatenate([bx.tensor for bx, _ in batches]), dataset.x.tensor
    )
    np.testing.assert_array_equal(
        np.concatenate([by.tensor for _, by in batches]), dataset.y.tensor
    )


def test_batches_are_leaves_without_gradient():
    for bx, by in DataLoader(_dataset(4), 2):
        assert bx.op is None and by.op is None
        assert not bx.requires_grad and not by.requires_grad


def test_shuffle_keeps_pairs_and_rows():
    dataset = _dataset(12)
    loader = DataLoader(dataset, 5, shuffle=True, rng=np.random.default_rng(1))
    batches = list(loader)
    for bx, by in batches:
        np.testing.assert_array_equal(by.tensor[:, 0], bx.tensor[:, 0] * 2)
    rows = np.concatenate([bx.tensor for bx, _ in batches])
    np.testing.assert_array_equal(
        rows[np.argsort(rows[:, 0])], dataset.x.tensor
    )


def test_shuffle_with_same_seed_is_reproducible():
    dataset = _dataset(12)
    first = DataLoader(dataset, 4, True, np.random.default_rng(7))
    second = DataLoader(dataset, 4, True, np.random.default_rng(7))
    for (ax, _), (bx, _) in zip(first, second):
        np.testing.assert_array_equal(ax.tensor, bx.tensor)


def test_multidimensional_samples_keep_trailing_axes():
    x = np.zeros((5, 2, 3), dtype=np.float32)
    y = np.zeros((5, 4), dtype=np.float32)
    for bx, by in DataLoader(Dataset(leaf(x), leaf(y)), 2):
        assert bx.shape[1:] == x.shape[1:]
        assert by.shape[1:] == y.shape[1:]


def test_empty_dataset():
    dataset = Dataset(leaf(np.zeros((0, 2))), leaf(np.zeros((0, 1))))
    loader = DataLoader(dataset, 3)
    assert loader.is_empty()
    assert len(loader) == 0
    assert list(loader) == []


def test_non_empty_dataset_is_not_empty():
    assert not DataLoader(_dataset(3), 2).is_empty()


def test_zero_batch_size_rejected():
    with pytest.raises(ValueError):
        DataLoader(_dataset(3), 0)


def test_mismatched_sample_counts_rejected():
    dataset = Dataset(leaf(np.zeros((4, 2))), leaf(np.zeros((3, 1))))
    with pytest.raises(ValueError):
        list(DataLoader(dataset, 2))