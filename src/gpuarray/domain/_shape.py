"""
Shape and stride ("dim_steps") arithmetic.

All arrays and tensors in gpuarray use a dense row-major layout: the last
dimension varies fastest. For a shape ``(d0, d1, ..., dn)`` the dim step of
axis ``i`` is the product of the sizes of every axis after it, so the last
axis always has step 1. A coordinate sequence maps to a linear offset via

    offset = sum(coord[i] * dim_steps[i])

which is a bijection between the Cartesian product of ``range(shape[i])`` and
``range(numel(shape))``.

These helpers are pure and backend-agnostic; both the host `Array` and the
device `Tensor` derive their strides from here and never store strides that
were not computed by `compute_dim_steps`.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from ._errors import IndexOutOfBoundsError

Shape = tuple[int, ...]


def normalize_shape(shape: Iterable[int]) -> Shape:
    """
    Convert a shape-like iterable into a tuple of non-negative Python ints.

    Parameters
    ----------
    shape : Iterable[int]
        Per-dimension sizes. NumPy integer scalars are accepted.

    Returns
    -------
    tuple[int, ...]
        Normalized shape.

    Raises
    ------
    TypeError
        If an entry is not an integer (e.g. ``3.5``) or `shape` is a scalar.
    ValueError
        If an entry is negative.
    """
    if isinstance(shape, (str, bytes)) or not hasattr(shape, "__iter__"):
        raise TypeError(f"shape must be a sequence of ints, got {shape!r}")

    out = []
    for d in shape:
        if isinstance(d, bool) or not hasattr(d, "__index__"):
            raise TypeError(f"shape entries must be integers, got {d!r}")
        d = int(d.__index__())
        if d < 0:
            raise ValueError(f"shape entries must be non-negative, got {tuple(shape)}")
        out.append(d)
    return tuple(out)


def numel(shape: Sequence[int]) -> int:
    """
    Total number of elements implied by `shape`.

    An empty shape is a scalar and holds exactly one element.
    """
    n = 1
    for d in shape:
        n *= int(d)
    return n


def compute_dim_steps(shape: Sequence[int]) -> Shape:
    """
    Compute row-major strides, measured in elements, for `shape`.

    Parameters
    ----------
    shape : Sequence[int]
        Per-dimension sizes.

    Returns
    -------
    tuple[int, ...]
        ``steps[i] = prod(shape[i + 1:])``; same length as `shape`.

    Examples
    --------
    >>> compute_dim_steps((2, 3, 4))
    (12, 4, 1)
    >>> compute_dim_steps(())
    ()
    """
    steps = [1] * len(shape)
    acc = 1
    for i in range(len(shape) - 1, -1, -1):
        steps[i] = acc
        acc *= int(shape[i])
    return tuple(steps)


def linear_offset(coords: Iterable[int], dim_steps: Sequence[int]) -> int:
    """
    Dot product of `coords` with `dim_steps`, with no validation.

    Extra coordinates beyond the rank are ignored and missing trailing
    coordinates are treated as zero. Callers that need guarantees must run
    `check_coords` first.
    """
    return sum(int(c) * int(s) for c, s in zip(coords, dim_steps))


def check_coords(coords: Sequence[int], shape: Sequence[int]) -> None:
    """
    Validate a coordinate sequence against `shape`.

    Raises
    ------
    IndexOutOfBoundsError
        If the number of coordinates differs from the rank, or any
        coordinate is negative or not smaller than its dimension size.
    """
    if len(coords) != len(shape):
        raise IndexOutOfBoundsError(
            coords, shape, f"expected {len(shape)} coordinates, got {len(coords)}"
        )
    for axis, (c, d) in enumerate(zip(coords, shape)):
        if not 0 <= c < d:
            raise IndexOutOfBoundsError(
                coords, shape, f"coordinate {c} out of range for axis {axis} (size {d})"
            )
