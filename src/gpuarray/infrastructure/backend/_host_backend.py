"""
In-process NumPy backend.

`HostBackend` satisfies `IBackend` by keeping every "device" allocation as a
private ``uint8`` ndarray inside the process. It is the default backend of a
`Context` and the reference against which native backends are tested.

Behavior
--------
- Handles are positive ints drawn from a monotonically increasing counter and
  are never reused, so a released handle stays invalid forever.
- Fresh allocations are uninitialized (``np.empty``), matching device memory.
- Using an unknown or released handle raises `KeyError`; size mismatches
  raise `ValueError`. `Context` translates both into the gpuarray taxonomy.
- All operations complete before returning; `synchronize` is a no-op.
"""

from __future__ import annotations

import itertools
import threading
from typing import Optional

import numpy as np

from ...domain._backend import DeviceHandle


def _as_bytes(arr: np.ndarray) -> np.ndarray:
    return arr.reshape(-1).view(np.uint8)


class HostBackend:
    """
    NumPy-backed implementation of the compute-backend contract.

    Parameters
    ----------
    max_bytes : Optional[int], optional
        Upper bound on the total number of bytes that may be allocated at
        once. Exceeding it raises `MemoryError`. Unlimited when None.
    """

    name = "host"
    # None means every numeric dtype NumPy can multiply.
    matmul_dtypes = None

    def __init__(self, *, max_bytes: Optional[int] = None) -> None:
        self._buffers: dict[DeviceHandle, np.ndarray] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._max_bytes = max_bytes
        self._bytes_in_use = 0

    @property
    def bytes_in_use(self) -> int:
        return self._bytes_in_use

    @property
    def live_handles(self) -> frozenset[DeviceHandle]:
        with self._lock:
            return frozenset(self._buffers)

    def _buffer(self, handle: DeviceHandle) -> np.ndarray:
        try:
            return self._buffers[int(handle)]
        except KeyError:
            raise KeyError(f"invalid or released device handle {handle}") from None

    def allocate(self, nbytes: int) -> DeviceHandle:
        nbytes = int(nbytes)
        if nbytes < 0:
            raise ValueError(f"nbytes must be >= 0, got {nbytes}")
        with self._lock:
            if self._max_bytes is not None and self._bytes_in_use + nbytes > self._max_bytes:
                raise MemoryError(
                    f"host backend limit exceeded: {self._bytes_in_use} + {nbytes} "
                    f"> {self._max_bytes} bytes"
                )
            handle = next(self._ids)
            self._buffers[handle] = np.empty(nbytes, dtype=np.uint8)
            self._bytes_in_use += nbytes
        return handle

    def upload(self, handle: DeviceHandle, src_host: np.ndarray) -> None:
        dst = self._buffer(handle)
        src = _as_bytes(np.ascontiguousarray(src_host))
        if src.size != dst.size:
            raise ValueError(
                f"nbytes mismatch: device buffer has {dst.size}, host has {src.size}"
            )
        dst[:] = src

    def readback(self, handle: DeviceHandle, dst_host: np.ndarray) -> None:
        src = self._buffer(handle)
        if not dst_host.flags["C_CONTIGUOUS"]:
            raise ValueError("dst_host must be C-contiguous")
        dst = _as_bytes(dst_host)
        if dst.size != src.size:
            raise ValueError(
                f"nbytes mismatch: device buffer has {src.size}, host has {dst.size}"
            )
        dst[:] = src

    def matmul(
        self,
        a: DeviceHandle,
        b: DeviceHandle,
        c: DeviceHandle,
        m: int,
        n: int,
        k: int,
        dtype: np.dtype,
    ) -> None:
        dtype = np.dtype(dtype)
        item = dtype.itemsize

        def _view(handle: DeviceHandle, rows: int, cols: int) -> np.ndarray:
            raw = self._buffer(handle)
            need = rows * cols * item
            if raw.size < need:
                raise ValueError(
                    f"device buffer {handle} too small: {raw.size} < {need} bytes"
                )
            return raw[:need].view(dtype).reshape(rows, cols)

        a_v = _view(a, m, n)
        b_v = _view(b, n, k)
        c_v = _view(c, m, k)
        np.matmul(a_v, b_v, out=c_v)

    def release(self, handle: DeviceHandle) -> None:
        with self._lock:
            buf = self._buffers.pop(int(handle), None)
            if buf is None:
                raise KeyError(f"invalid or released device handle {handle}")
            self._bytes_in_use -= buf.size

    def synchronize(self) -> None:
        return None

    def __repr__(self) -> str:
        return (
            f"HostBackend(live={len(self._buffers)}, bytes_in_use={self._bytes_in_use})"
        )
