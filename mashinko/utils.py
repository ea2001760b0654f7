"""Array comparison and IDX file parsing."""

from __future__ import annotations

import math
import os
import struct
from pathlib import Path

import numpy as np

_HEADER_SIZE = 4
_DIM_SIZE = 4
_UNSIGNED_BYTE = 0x08
_MAX_DIMS = 4


class IdxFormatError(ValueError):
    """Raised when data is not a supported IDX file."""


def assert_all_close(a, b, tol: float) -> None:
    """Raise AssertionError unless every element of ``a`` and ``b`` differs by less than ``tol``."""
    diff = np.abs(np.asarray(a, dtype=np.float32) - np.asarray(b, dtype=np.float32))
    max_err = float(diff.max()) if diff.size else 0.0
    if not max_err < tol:
        raise AssertionError(f"arrays differ: max error {max_err} > tolerance {tol}")


def parse_idx_bytes(data: bytes, normalize: bool = False) -> np.ndarray:
    """Decode IDX data of unsigned bytes into a float32 array.

    The values fill the array in column-major order. With ``normalize`` the
    values are divided by 255.
    """
    buf = bytes(data)
    if len(buf) < _HEADER_SIZE:
        raise IdxFormatError("IDX header is truncated")
    if buf[0] != 0 or buf[1] != 0:
        raise IdxFormatError("Invalid IDX magic number: first two bytes must be 0")

    data_type, num_dims = buf[2], buf[3]
    if data_type != _UNSIGNED_BYTE:
        raise IdxFormatError(
            f"Unsupported IDX data type: 0x{data_type:02x} "
            "(only 0x08 unsigned byte is supported)"
        )
    if num_dims > _MAX_DIMS:
        raise IdxFormatError(
            f"IDX data has {num_dims} dimensions; at most {_MAX_DIMS} are supported"
        )

    data_offset = _HEADER_SIZE + num_dims * _DIM_SIZE
    if len(buf) < data_offset:
        raise IdxFormatError("IDX dimension sizes are truncated")
    shape = struct.unpack(f">{num_dims}I", buf[_HEADER_SIZE:data_offset]) or (1,)

    count = math.prod(shape)
    if len(buf) - data_offset < count:
        raise IdxFormatError(
            f"IDX data holds {len(buf) - data_offset} values but {count} are expected"
        )

    values = (
        np.frombuffer(buf, dtype=np.uint8, count=count, offset=data_offset)
        .reshape(shape, order="F")
        .astype(np.float32)
    )
    if normalize:
        values /= np.float32(255.0)
    return values


def parse_idx_file(path: str | os.PathLike[str], normalize: bool = False) -> np.ndarray:
    """Read an IDX file of unsigned bytes into a float32 array."""
    return parse_idx_bytes(Path(path).read_bytes(), normalize)