"""
Host-side dense n-dimensional array (NumPy-backed).

This module provides `Array`, the CPU-resident counterpart of a device
`Tensor`. An `Array` exclusively owns one contiguous 1-D NumPy buffer together
with a shape and the row-major strides ("dim_steps") derived from it.

Invariants
----------
- ``buffer.size == numel(shape)`` at all times.
- ``dim_steps == compute_dim_steps(shape)``; strides are recomputed on every
  shape change and never set independently.
- The buffer is never shared with another `Array` or with the caller: every
  constructor copies its input.

Indexing policy
---------------
Coordinate access is explicit, not operator-overloaded:

- `get` / `set` are checked. The coordinate count must equal the rank and
  every coordinate must lie in ``[0, shape[i])``; otherwise
  `IndexOutOfBoundsError` is raised.
- `get_unchecked` / `set_unchecked` compute ``sum(coord[i] * dim_steps[i])``
  and access that linear offset directly. A wrong coordinate silently aliases
  another element as long as the resulting offset lands inside the buffer.
  Use only on hot paths whose coordinates are already known to be valid.
"""

from __future__ import annotations

import operator
from typing import Any, Iterable, Optional, Sequence

import numpy as np

from ...domain._errors import AllocationError, ShapeMismatchError, InvalidReshapeError
from ...domain._shape import (
    Shape,
    check_coords,
    compute_dim_steps,
    linear_offset,
    normalize_shape,
    numel,
)


class Array:
    """
    Dense row-major host array.

    Parameters
    ----------
    shape : Iterable[int]
        Per-dimension sizes. ``()`` is a scalar holding one element.
    initial : Any, optional
        Value every element is set to. Defaults to 0.
    dtype : np.dtype, optional
        Element dtype. Defaults to np.float32.

    Raises
    ------
    AllocationError
        If host memory for the buffer cannot be obtained.

    Notes
    -----
    Use `Array.from_buffer` to build an array from existing data.
    """

    __slots__ = ("_shape", "_dim_steps", "_buffer")

    def __init__(
        self,
        shape: Iterable[int],
        initial: Any = 0,
        *,
        dtype: np.dtype = np.float32,
    ) -> None:
        shape = normalize_shape(shape)
        dtype = np.dtype(dtype)
        try:
            buffer = np.full(numel(shape), initial, dtype=dtype)
        except MemoryError as e:
            raise AllocationError(numel(shape) * dtype.itemsize, "host") from e
        self._init_parts(shape, buffer)

    def _init_parts(self, shape: Shape, buffer: np.ndarray) -> None:
        self._shape = shape
        self._dim_steps = compute_dim_steps(shape)
        self._buffer = buffer

    @classmethod
    def _adopt(cls, shape: Shape, buffer: np.ndarray) -> "Array":
        # Takes ownership of `buffer` without copying; callers guarantee it is
        # a fresh, 1-D, C-contiguous ndarray of matching size.
        obj = cls.__new__(cls)
        obj._init_parts(shape, buffer)
        return obj

    @classmethod
    def from_buffer(
        cls,
        shape: Iterable[int],
        buffer: Any,
        *,
        dtype: Optional[np.dtype] = None,
    ) -> "Array":
        """
        Build an array from a pre-populated buffer.

        Parameters
        ----------
        shape : Iterable[int]
            Target shape.
        buffer : array-like
            Elements in row-major order. Any array-like is accepted; it is
            copied and flattened.
        dtype : np.dtype, optional
            Element dtype. When omitted, an ndarray `buffer` keeps its own
            dtype and any other buffer becomes np.float32.

        Returns
        -------
        Array
            A new array owning a private copy of `buffer`.

        Raises
        ------
        ShapeMismatchError
            If the number of elements in `buffer` differs from
            ``numel(shape)``. Nothing is constructed in that case.
        """
        shape = normalize_shape(shape)
        if dtype is None and not isinstance(buffer, np.ndarray):
            dtype = np.float32
        flat = np.array(buffer, dtype=dtype, copy=True).reshape(-1)
        expected = numel(shape)
        if flat.size != expected:
            raise ShapeMismatchError(
                f"buffer of length {flat.size} does not match shape {shape} "
                f"({expected} elements)",
                expected=expected,
                actual=int(flat.size),
            )
        return cls._adopt(shape, np.ascontiguousarray(flat))

    @classmethod
    def from_numpy(cls, arr: np.ndarray) -> "Array":
        """Copy an ndarray into a new `Array` with the same shape and dtype."""
        arr = np.asarray(arr)
        return cls.from_buffer(arr.shape, arr, dtype=arr.dtype)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def shape(self) -> Shape:
        """Per-dimension sizes."""
        return self._shape

    @property
    def dim_steps(self) -> Shape:
        """Row-major strides in elements."""
        return self._dim_steps

    @property
    def strides(self) -> Shape:
        """Alias of `dim_steps`."""
        return self._dim_steps

    @property
    def dtype(self) -> np.dtype:
        return self._buffer.dtype

    @property
    def ndim(self) -> int:
        return len(self._shape)

    def numel(self) -> int:
        """Total number of elements (``1`` for a scalar)."""
        return int(self._buffer.size)

    @property
    def nbytes(self) -> int:
        return int(self._buffer.nbytes)

    def buffer(self) -> np.ndarray:
        """
        Read-only view of the flat buffer.

        Writes through the returned view raise ``ValueError``.
        """
        view = self._buffer.view()
        view.flags.writeable = False
        return view

    def buffer_mut(self) -> np.ndarray:
        """Writable view of the flat buffer; mutations are visible in the array."""
        return self._buffer.view()

    # ------------------------------------------------------------------
    # Shape manipulation
    # ------------------------------------------------------------------
    def reshape(self, new_shape: Iterable[int]) -> None:
        """
        Change the shape in place, keeping the buffer untouched.

        Raises
        ------
        InvalidReshapeError
            If ``numel(new_shape)`` differs from the current element count.
            The array keeps its previous shape and strides.
        """
        new_shape = normalize_shape(new_shape)
        if numel(new_shape) != self._buffer.size:
            raise InvalidReshapeError(self._shape, new_shape)
        self._dim_steps = compute_dim_steps(new_shape)
        self._shape = new_shape

    # ------------------------------------------------------------------
    # Coordinate access
    # ------------------------------------------------------------------
    def offset_of(self, coords: Sequence[int]) -> int:
        """
        Checked linear offset of `coords`.

        Raises
        ------
        TypeError
            If a coordinate is not an integer (e.g. ``1.5``).
        IndexOutOfBoundsError
            If `coords` has the wrong length or any coordinate is out of range.
        """
        coords = tuple(operator.index(c) for c in coords)
        check_coords(coords, self._shape)
        return linear_offset(coords, self._dim_steps)

    def get(self, coords: Sequence[int]) -> Any:
        """
        Return the element at `coords`.

        Raises
        ------
        TypeError
            If a coordinate is not an integer.
        IndexOutOfBoundsError
            If `coords` has the wrong length or any coordinate is out of range.
        """
        return self._buffer[self.offset_of(coords)]

    def set(self, coords: Sequence[int], value: Any) -> None:
        """
        Overwrite the element at `coords` with `value`.

        Raises
        ------
        TypeError
            If a coordinate is not an integer.
        IndexOutOfBoundsError
            If `coords` has the wrong length or any coordinate is out of range.
        """
        self._buffer[self.offset_of(coords)] = value

    def get_unchecked(self, coords: Iterable[int]) -> Any:
        """
        Return the element at the raw dot-product offset of `coords`.

        No rank or range validation is performed. See the module docstring.
        """
        return self._buffer[linear_offset(coords, self._dim_steps)]

    def set_unchecked(self, coords: Iterable[int], value: Any) -> None:
        """Unchecked counterpart of `set`."""
        self._buffer[linear_offset(coords, self._dim_steps)] = value

    # ------------------------------------------------------------------
    # Conversion / misc
    # ------------------------------------------------------------------
    def to_numpy(self) -> np.ndarray:
        """Return a copy of the data as an ndarray of shape `shape`."""
        return self._buffer.reshape(self._shape).copy()

    def copy(self) -> "Array":
        """Return an independent array with the same shape and contents."""
        return Array._adopt(self._shape, self._buffer.copy())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Array):
            return NotImplemented
        return (
            self._shape == other._shape
            and self._buffer.dtype == other._buffer.dtype
            and bool(np.array_equal(self._buffer, other._buffer))
        )

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return f"Array(shape={self._shape}, dtype={self._buffer.dtype})"

    def __str__(self) -> str:
        """
        Render the array for debugging.

        Rank-2 arrays print one row per line with tab-separated columns,
        wrapped in an outer pair of brackets. Other ranks use NumPy's
        formatting of `to_numpy()`.
        """
        if len(self._shape) != 2:
            return np.array2string(self.to_numpy())

        rows, cols = self._shape
        lines = ["["]
        for r in range(rows):
            cells = [str(self._buffer[r * self._dim_steps[0] + c]) for c in range(cols)]
            lines.append("[" + "\t".join(cells) + "]")
        lines.append("]")
        return "\n".join(lines)
