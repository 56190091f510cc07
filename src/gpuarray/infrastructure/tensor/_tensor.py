"""
Device-resident tensor bound to a `Context`.

A `Tensor` mirrors the layout of a host `Array` (shape plus row-major
dim_steps) but keeps its elements in a backend allocation owned by a
`DeviceStorage`. It is tagged with a `TensorMode` that decides which
host/device transfers happen:

- `Tensor.from_array(ctx, array, mode)` allocates a buffer sized to `array`
  and uploads its contents for ``In`` and ``Mut``. For ``Out`` the upload is
  skipped and the device contents are undefined until a kernel writes them.
- `Tensor.new(ctx, shape, mode)` allocates an uninitialized buffer without any
  source array, typically for kernel outputs.
- `Tensor.get(ctx)` reads the buffer back into a fresh host `Array`.
- `Tensor.release()` frees the buffer; nothing is valid on the tensor after
  that, and a second release raises `TensorReleasedError`.

Host and device data never alias: uploads and readbacks copy. Every call is
blocking; operations submitted through the same Context complete in program
order before a later `get` observes the buffer.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Union

import numpy as np

from ...domain._errors import ContextMismatchError
from ...domain._shape import Shape, compute_dim_steps, normalize_shape, numel
from ...domain._tensor_mode import TensorMode
from ..array._array import Array
from ._device_storage import DeviceStorage

if TYPE_CHECKING:
    from ..context._context import Context

logger = logging.getLogger(__name__)


def _check_mode(mode: object) -> TensorMode:
    if not isinstance(mode, TensorMode):
        raise TypeError(f"mode must be a TensorMode, got {mode!r}")
    return mode


class Tensor:
    """
    Device buffer with a host-array layout.

    Instances are created through `from_array` or `new`; the constructor
    wraps an already allocated `DeviceStorage` and performs no transfer.

    Parameters
    ----------
    storage : DeviceStorage
        Owned device allocation. Its size must be ``numel(shape) * itemsize``.
    shape : Iterable[int]
        Logical shape.
    mode : TensorMode
        Transfer-mode tag.
    """

    __slots__ = ("_storage", "_shape", "_dim_steps", "_mode")

    def __init__(
        self, storage: DeviceStorage, shape: Iterable[int], mode: TensorMode
    ) -> None:
        shape = normalize_shape(shape)
        expected = numel(shape) * storage.dtype.itemsize
        if storage.nbytes != expected:
            raise ValueError(
                f"storage of {storage.nbytes} bytes cannot hold shape {shape} "
                f"of {storage.dtype} ({expected} bytes)"
            )
        self._storage = storage
        self._shape = shape
        self._dim_steps = compute_dim_steps(shape)
        self._mode = _check_mode(mode)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def from_array(
        cls,
        context: Context,
        array: Union[Array, np.ndarray],
        mode: TensorMode,
    ) -> "Tensor":
        """
        Allocate a device copy of `array`.

        Parameters
        ----------
        context : Context
            Context that will own the buffer.
        array : Array | np.ndarray
            Source data. ndarrays are accepted for convenience and copied
            through `Array.from_numpy`.
        mode : TensorMode
            ``In``/``Mut`` upload the data; ``Out`` only allocates.

        Raises
        ------
        ContextError
            If `context` is closed.
        AllocationError
            If the backend cannot allocate the buffer.
        TransferError
            If the upload fails. The freshly allocated buffer is released.
        """
        mode = _check_mode(mode)
        if isinstance(array, np.ndarray):
            array = Array.from_numpy(array)
        if not isinstance(array, Array):
            raise TypeError(f"from_array expects an Array, got {type(array)!r}")

        storage = context.allocate(array.nbytes, array.dtype)
        if mode.uploads_on_create:
            try:
                context.upload(storage, array.buffer())
            except Exception:
                storage.release()
                raise
        return cls(storage, array.shape, mode)

    @classmethod
    def new(
        cls,
        context: Context,
        shape: Iterable[int],
        mode: TensorMode,
        *,
        dtype: np.dtype = np.float32,
    ) -> "Tensor":
        """
        Allocate an uninitialized device tensor of `shape`.

        Valid for any mode, but intended for ``Out``/``Mut`` kernel outputs.

        Raises
        ------
        ContextError
            If `context` is closed.
        AllocationError
            If the backend cannot allocate the buffer.
        """
        mode = _check_mode(mode)
        shape = normalize_shape(shape)
        dtype = np.dtype(dtype)
        storage = context.allocate(numel(shape) * dtype.itemsize, dtype)
        return cls(storage, shape, mode)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def shape(self) -> Shape:
        return self._shape

    @property
    def dim_steps(self) -> Shape:
        return self._dim_steps

    @property
    def strides(self) -> Shape:
        """Alias of `dim_steps`."""
        return self._dim_steps

    @property
    def mode(self) -> TensorMode:
        return self._mode

    @property
    def dtype(self) -> np.dtype:
        return self._storage.dtype

    @property
    def context(self) -> Context:
        return self._storage.context

    @property
    def storage(self) -> DeviceStorage:
        return self._storage

    @property
    def ndim(self) -> int:
        return len(self._shape)

    def numel(self) -> int:
        return numel(self._shape)

    @property
    def nbytes(self) -> int:
        return self._storage.nbytes

    @property
    def is_released(self) -> bool:
        return self._storage.is_released

    # ------------------------------------------------------------------
    # Transfers / lifetime
    # ------------------------------------------------------------------
    def get(self, context: Context) -> Array:
        """
        Read the device buffer back into a new host `Array`.

        Parameters
        ----------
        context : Context
            Must be the Context this tensor was created on.

        Returns
        -------
        Array
            Host copy with this tensor's shape and dtype.

        Raises
        ------
        ContextMismatchError
            If `context` is not this tensor's Context.
        TensorReleasedError
            If the tensor (or its Context) has been released.
        TransferError
            If the backend readback fails.

        Notes
        -----
        Reading back an ``In`` tensor is allowed but almost always a bug:
        such tensors are never written by kernels.
        """
        if context is not self._storage.context:
            raise ContextMismatchError(
                f"tensor belongs to {self._storage.context!r}, not {context!r}"
            )
        self._storage.ensure_live()
        if not self._mode.reads_back:
            logger.warning(
                "reading back tensor of shape %s in mode %s", self._shape, self._mode
            )
        out = np.empty(numel(self._shape), dtype=self._storage.dtype)
        context.readback(self._storage, out)
        return Array._adopt(self._shape, out)

    def release(self) -> None:
        """
        Free the device buffer.

        Raises
        ------
        TensorReleasedError
            If the tensor was already released.
        """
        self._storage.release()

    def __enter__(self) -> "Tensor":
        return self

    def __exit__(self, *exc: object) -> None:
        if not self._storage.is_released:
            self._storage.release()

    def __repr__(self) -> str:
        state = "released" if self._storage.is_released else f"buffer={self._storage.handle}"
        return (
            f"Tensor(shape={self._shape}, dtype={self._storage.dtype}, "
            f"mode={self._mode}, {state})"
        )
