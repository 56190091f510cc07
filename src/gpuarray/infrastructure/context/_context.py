"""
Compute context: the single gateway between the core and a backend.

A `Context` owns one backend (see `IBackend`) and is the only object that
calls it. Device tensors, storages and kernel dispatchers go through the
Context, which:

- serializes backend calls with a re-entrant lock, so submissions from
  several threads reach the backend in a well-defined order;
- tracks every live `DeviceStorage` it handed out;
- translates backend exceptions into the gpuarray error taxonomy
  (allocation -> `AllocationError`, transfers and release -> `TransferError`,
  kernels -> `DispatchError`), chaining the original exception;
- refuses every operation once closed (`ContextError`).

Lifecycle
---------
Create the Context before any tensor and close it after the tensors bound to
it are released. Closing with live storages releases them (with a warning);
tensors that still reference them then fail on readback with
`TensorReleasedError`.
"""

from __future__ import annotations

from functools import wraps
import logging
import threading
from typing import Any, Callable, Optional
import weakref

import numpy as np
from typing_extensions import ParamSpec, TypeVar

from ...domain._backend import DeviceHandle, IBackend
from ...domain._errors import (
    AllocationError,
    ContextError,
    ContextMismatchError,
    DispatchError,
    GpuArrayError,
    TensorReleasedError,
    TransferError,
)
from ...domain.device._device import Device
from ..backend._cuda_backend import CudaBackend
from ..backend._host_backend import HostBackend
from ..tensor._device_storage import DeviceStorage
from ._config import ContextConfig

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def _translate_errors(
    wrap: Callable[..., GpuArrayError],
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Re-raise non-gpuarray exceptions from the decorated call as ``wrap(...)``.

    `wrap` receives the original exception followed by the decorated call's
    arguments. gpuarray errors pass through unchanged.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return fn(*args, **kwargs)
            except GpuArrayError:
                raise
            except Exception as e:
                raise wrap(e, *args, **kwargs) from e

        return wrapper

    return decorator


def _build_backend(config: ContextConfig) -> IBackend:
    device = config.parsed_device
    if device.is_host():
        return HostBackend()
    return CudaBackend.load(
        config.native_lib_path, device_index=device.ordinal, sync=config.sync
    )


class Context:
    """
    Handle to a compute backend.

    Parameters
    ----------
    config : ContextConfig, optional
        Backend selection. Defaults to ``ContextConfig()`` (host backend).
        Ignored when `backend` is given.
    backend : IBackend, optional
        Explicit backend to use instead of building one from `config`.

    Raises
    ------
    TypeError
        If `backend` does not satisfy the `IBackend` protocol.
    FileNotFoundError, OSError
        If a CUDA device is configured but its native library cannot be loaded.
    """

    def __init__(
        self,
        config: Optional[ContextConfig] = None,
        *,
        backend: Optional[IBackend] = None,
    ) -> None:
        if backend is None:
            config = config if config is not None else ContextConfig()
            backend = _build_backend(config)
            device: Optional[Device] = config.parsed_device
        else:
            if not isinstance(backend, IBackend):
                raise TypeError(
                    f"backend must implement IBackend, got {type(backend)!r}"
                )
            device = None

        self._backend = backend
        self._device = device
        self._lock = threading.RLock()
        self._live: "weakref.WeakSet[DeviceStorage]" = weakref.WeakSet()
        self._closed = False
        logger.debug("created context on backend %r", backend)

    @classmethod
    def from_env(cls) -> "Context":
        """Build a Context from ``GPUARRAY_*`` environment variables."""
        return cls(ContextConfig.from_env())

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def backend(self) -> IBackend:
        return self._backend

    @property
    def backend_name(self) -> str:
        return str(getattr(self._backend, "name", type(self._backend).__name__))

    @property
    def device(self) -> Optional[Device]:
        """Configured device, or None when the backend was injected."""
        return self._device

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def live_allocations(self) -> int:
        """Number of storages allocated through this Context and not yet released."""
        return len(self._live)

    def ensure_open(self) -> None:
        if self._closed:
            raise ContextError("context is closed")

    def _ensure_owned(self, storage: DeviceStorage) -> None:
        storage.ensure_live()
        if storage.context is not self:
            raise ContextMismatchError("device buffer belongs to a different context")
        self.ensure_open()

    # ------------------------------------------------------------------
    # Raw backend calls
    # ------------------------------------------------------------------
    @_translate_errors(
        lambda e, self, nbytes: AllocationError(nbytes, self.backend_name, str(e))
    )
    def _backend_allocate(self, nbytes: int) -> DeviceHandle:
        return self._backend.allocate(nbytes)

    @_translate_errors(
        lambda e, self, handle, host: TransferError(f"upload to buffer {handle} failed: {e}")
    )
    def _backend_upload(self, handle: DeviceHandle, host: np.ndarray) -> None:
        self._backend.upload(handle, host)

    @_translate_errors(
        lambda e, self, handle, host: TransferError(f"readback of buffer {handle} failed: {e}")
    )
    def _backend_readback(self, handle: DeviceHandle, host: np.ndarray) -> None:
        self._backend.readback(handle, host)

    @_translate_errors(
        lambda e, self, handle: TransferError(f"release of buffer {handle} failed: {e}")
    )
    def _backend_release(self, handle: DeviceHandle) -> None:
        self._backend.release(handle)

    @_translate_errors(lambda e, self, *args: DispatchError("matmul", str(e)))
    def _backend_matmul(self, *args: Any) -> None:
        self._backend.matmul(*args)

    @_translate_errors(lambda e, self: DispatchError("synchronize", str(e)))
    def _backend_synchronize(self) -> None:
        self._backend.synchronize()

    # ------------------------------------------------------------------
    # Storage lifecycle
    # ------------------------------------------------------------------
    def allocate(self, nbytes: int, dtype: np.dtype) -> DeviceStorage:
        """
        Allocate an uninitialized device buffer of `nbytes`.

        Raises
        ------
        ContextError
            If the Context is closed.
        AllocationError
            If the backend cannot provide the memory.
        """
        with self._lock:
            self.ensure_open()
            handle = self._backend_allocate(int(nbytes))
            storage = DeviceStorage(
                context=self, handle=handle, nbytes=int(nbytes), dtype=np.dtype(dtype)
            )
            self._live.add(storage)
        logger.debug("allocated %d bytes as buffer %s", nbytes, handle)
        return storage

    def upload(self, storage: DeviceStorage, src_host: np.ndarray) -> None:
        """
        Copy a host ndarray into `storage` (blocking).

        Raises
        ------
        TensorReleasedError
            If `storage` was released.
        ContextMismatchError
            If `storage` belongs to another Context.
        TransferError
            If the byte sizes differ or the backend copy fails.
        """
        with self._lock:
            self._ensure_owned(storage)
            if int(src_host.nbytes) != storage.nbytes:
                raise TransferError(
                    f"upload size mismatch: buffer has {storage.nbytes} bytes, "
                    f"host data has {src_host.nbytes}"
                )
            self._backend_upload(storage.handle, src_host)
        logger.debug("uploaded %d bytes to buffer %s", storage.nbytes, storage.handle)

    def readback(self, storage: DeviceStorage, dst_host: np.ndarray) -> None:
        """
        Copy `storage` into a C-contiguous host ndarray (blocking).

        All work previously submitted to this Context completes before the copy.

        Raises
        ------
        TensorReleasedError
            If `storage` was released (including by closing the Context).
        ContextMismatchError
            If `storage` belongs to another Context.
        TransferError
            If the byte sizes differ or the backend copy fails.
        """
        with self._lock:
            self._ensure_owned(storage)
            if int(dst_host.nbytes) != storage.nbytes:
                raise TransferError(
                    f"readback size mismatch: buffer has {storage.nbytes} bytes, "
                    f"host destination has {dst_host.nbytes}"
                )
            self._backend_readback(storage.handle, dst_host)
        logger.debug("read back %d bytes from buffer %s", storage.nbytes, storage.handle)

    def _release_leaked(self, handle: DeviceHandle) -> None:
        # Finalizer path for storages collected without release(); never raises.
        with self._lock:
            try:
                self._backend.release(handle)
            except Exception as e:
                logger.debug("finalizer could not free buffer %s: %r", handle, e)
                return
        logger.debug("freed leaked buffer %s", handle)

    def _release_storage(self, storage: DeviceStorage) -> None:
        # Called by DeviceStorage.release() once it has marked itself released.
        with self._lock:
            self._live.discard(storage)
            self._backend_release(storage.handle)
        logger.debug("released buffer %s", storage.handle)

    # ------------------------------------------------------------------
    # Kernels
    # ------------------------------------------------------------------
    def submit_matmul(
        self,
        a: DeviceStorage,
        b: DeviceStorage,
        c: DeviceStorage,
        m: int,
        n: int,
        k: int,
        dtype: np.dtype,
    ) -> None:
        """
        Submit ``C[m, k] = A[m, n] @ B[n, k]`` to the backend.

        Operand validation is the caller's job (see `gpuarray.matmul`); this
        method only checks ownership and liveness.

        Raises
        ------
        DispatchError
            If the backend rejects or fails the kernel.
        """
        with self._lock:
            for s in (a, b, c):
                self._ensure_owned(s)
            logger.debug("dispatch matmul m=%d n=%d k=%d dtype=%s", m, n, k, dtype)
            self._backend_matmul(
                a.handle, b.handle, c.handle, int(m), int(n), int(k), np.dtype(dtype)
            )

    def synchronize(self) -> None:
        """Block until all work submitted through this Context has completed."""
        with self._lock:
            self.ensure_open()
            self._backend_synchronize()

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------
    def close(self) -> None:
        """
        Release every live storage and mark the Context closed.

        Idempotent. Afterwards every operation raises `ContextError`, and
        tensors bound to this Context raise `TensorReleasedError` on use.
        """
        with self._lock:
            if self._closed:
                return
            live = list(self._live)
            if live:
                logger.warning(
                    "closing context with %d live device buffer(s); releasing them",
                    len(live),
                )
            try:
                for storage in live:
                    try:
                        storage.release()
                    except TensorReleasedError:
                        # released by another thread after the snapshot
                        continue
            finally:
                self._closed = True
        logger.debug("closed context on backend %r", self._backend)

    def __enter__(self) -> "Context":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"live={len(self._live)}"
        where = str(self._device) if self._device is not None else self.backend_name
        return f"Context({where}, {state})"
