"""
Compute-backend contract.

A backend is the external collaborator that owns device memory and kernel
execution. The core never talks to device APIs directly; it consumes a
backend only through the duck-typed `IBackend` protocol below, which keeps
`Context`, `Tensor` and the kernel dispatchers testable against an
in-process fake.

Design notes
------------
- Uses `typing.Protocol` and `@runtime_checkable` so that `Context` can
  validate injected backends structurally instead of by class identity.
- Device buffers are opaque integer handles. Their meaning (a raw device
  pointer, a dictionary key, ...) belongs to the backend alone.
- Backends report failures by raising; `Context` translates those into the
  library's error taxonomy.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

import numpy as np

DeviceHandle = int


@runtime_checkable
class IBackend(Protocol):
    """
    Duck-typed compute-backend contract.

    Notes
    -----
    Every method is blocking unless stated otherwise. A backend that queues
    work asynchronously must complete all previously submitted work touching a
    buffer before `readback` of that buffer returns.
    """

    name: str

    def allocate(self, nbytes: int) -> DeviceHandle:
        """Allocate `nbytes` of device memory and return its handle."""
        ...

    def upload(self, handle: DeviceHandle, src_host: np.ndarray) -> None:
        """Copy the bytes of a C-contiguous host array into `handle`."""
        ...

    def readback(self, handle: DeviceHandle, dst_host: np.ndarray) -> None:
        """Copy the device buffer `handle` into a C-contiguous host array."""
        ...

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
        """
        Run the dense matmul kernel ``C[m, k] = A[m, n] @ B[n, k]``.

        All three buffers are row-major and hold elements of `dtype`.
        """
        ...

    def release(self, handle: DeviceHandle) -> None:
        """Free the device buffer `handle`."""
        ...

    def synchronize(self) -> None:
        """Block until every submitted operation has completed."""
        ...
