"""
Device storage and lifetime management.

This module defines `DeviceStorage`, the owner of a single backend allocation.
Every device `Tensor` holds exactly one storage, and the storage frees its
buffer exactly once.

Core Concepts
-------------
- **Exclusive ownership**:
    A storage is never shared between tensors and never aliases host memory;
    uploads and readbacks always copy.

- **Explicit release**:
    `release()` frees the device buffer through the owning `Context`. Calling
    it a second time raises `TensorReleasedError` instead of silently
    succeeding, so double-release bugs surface immediately.

- **Finalization safety**:
    A `weakref.finalize` callback frees the buffer at garbage-collection time
    if explicit release was missed. It is detached on explicit release and
    never raises.

Thread Safety
-------------
The released flag is guarded by an internal lock. Backend calls themselves are
serialized by the owning `Context`, including frees issued by the finalizer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import threading
from typing import TYPE_CHECKING, Optional
import weakref

import numpy as np

from ...domain._backend import DeviceHandle
from ...domain._errors import TensorReleasedError

if TYPE_CHECKING:
    from ..context._context import Context


def _free_leaked(context: "Context", handle: DeviceHandle) -> None:
    # Runs from GC or interpreter shutdown; must never raise.
    context._release_leaked(handle)


@dataclass(eq=False)
class DeviceStorage:
    """
    A single device allocation owned by one tensor.

    Attributes
    ----------
    context : Context
        Context that allocated the buffer and must outlive it.
    handle : DeviceHandle
        Backend-specific buffer handle.
    nbytes : int
        Size of the allocation in bytes.
    dtype : np.dtype
        Element dtype stored in the buffer.

    Notes
    -----
    Instances are created by `Context.allocate`; constructing one directly
    does not allocate anything.
    """

    context: "Context"
    handle: DeviceHandle
    nbytes: int
    dtype: np.dtype

    _released: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _finalizer: Optional[weakref.finalize] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        # Must not capture self, or the storage would never be collected.
        self._finalizer = weakref.finalize(self, _free_leaked, self.context, self.handle)

    @property
    def is_released(self) -> bool:
        return self._released

    def ensure_live(self) -> None:
        """
        Raise if the buffer has already been released.

        Raises
        ------
        TensorReleasedError
            If `release()` was called or the owning Context was closed.
        """
        if self._released:
            raise TensorReleasedError(f"device buffer {self.handle} has been released")

    def release(self) -> None:
        """
        Free the device buffer.

        Raises
        ------
        TensorReleasedError
            If the buffer was already released.
        TransferError
            If the backend fails to free the buffer. The storage is still
            considered released afterwards.
        """
        with self._lock:
            self.ensure_live()
            self._released = True
            if self._finalizer is not None:
                self._finalizer.detach()
        self.context._release_storage(self)
