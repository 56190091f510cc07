"""
CUDA backend built on the ctypes bindings in `_cuda_ctypes`.

`CudaBackend` adapts `CudaLib` to the `IBackend` contract. Every call selects
the configured device first, and every submission synchronizes when the
backend is blocking, so upload, dispatch and readback complete in program
order.

Zero-byte allocations are represented by the null handle ``0``, which is
accepted (and ignored) by transfers and release.
"""

from __future__ import annotations

import ctypes
from pathlib import Path
from typing import Optional, Union

import numpy as np

from ...domain._backend import DeviceHandle
from ._cuda_ctypes import CudaLib, load_gpuarray_cuda_native


class CudaBackend:
    """
    Native CUDA implementation of the compute-backend contract.

    Parameters
    ----------
    lib : CudaLib | ctypes.CDLL
        Loaded native library (raw handles are wrapped in `CudaLib`).
    device_index : int, optional
        CUDA device ordinal. Defaults to 0.
    sync : bool, optional
        Whether every submission blocks until the device is idle.
        Defaults to True.
    """

    name = "cuda"
    matmul_dtypes = (np.dtype(np.float32), np.dtype(np.float64))

    def __init__(
        self,
        lib: Union[CudaLib, ctypes.CDLL],
        *,
        device_index: int = 0,
        sync: bool = True,
    ) -> None:
        self._lib = lib if isinstance(lib, CudaLib) else CudaLib(lib)
        self._device_index = int(device_index)
        self._sync = bool(sync)

    @classmethod
    def load(
        cls,
        lib_path: Optional[Union[str, Path]] = None,
        *,
        device_index: int = 0,
        sync: bool = True,
    ) -> "CudaBackend":
        """Load the native library (see `load_gpuarray_cuda_native`) and wrap it."""
        return cls(
            load_gpuarray_cuda_native(lib_path), device_index=device_index, sync=sync
        )

    @property
    def device_index(self) -> int:
        return self._device_index

    def _select(self) -> None:
        self._lib.cuda_set_device(self._device_index)

    def _maybe_sync(self) -> None:
        if self._sync:
            self._lib.cuda_synchronize()

    def allocate(self, nbytes: int) -> DeviceHandle:
        nbytes = int(nbytes)
        if nbytes < 0:
            raise ValueError(f"nbytes must be >= 0, got {nbytes}")
        if nbytes == 0:
            return 0
        self._select()
        return self._lib.cuda_malloc(nbytes)

    def upload(self, handle: DeviceHandle, src_host: np.ndarray) -> None:
        if src_host.nbytes == 0:
            return
        self._select()
        self._lib.cuda_memcpy_h2d(int(handle), src_host)
        self._maybe_sync()

    def readback(self, handle: DeviceHandle, dst_host: np.ndarray) -> None:
        if dst_host.nbytes == 0:
            return
        self._select()
        # Drain pending kernels that write this buffer before copying out.
        self._lib.cuda_synchronize()
        self._lib.cuda_memcpy_d2h(dst_host, int(handle))

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
        self._select()
        self._lib.matmul(
            a_dev=int(a), b_dev=int(b), c_dev=int(c), m=m, n=n, k=k, dtype=dtype
        )
        self._maybe_sync()

    def release(self, handle: DeviceHandle) -> None:
        if int(handle) == 0:
            return
        self._select()
        self._lib.cuda_free(int(handle))

    def synchronize(self) -> None:
        self._select()
        self._lib.cuda_synchronize()

    def __repr__(self) -> str:
        return f"CudaBackend(device_index={self._device_index}, sync={self._sync})"
