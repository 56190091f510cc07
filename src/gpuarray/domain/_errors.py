"""
Array-, transfer- and dispatch-related exceptions for gpuarray.

Every failure raised by the library derives from `GpuArrayError`, and each
concrete error additionally subclasses the closest builtin exception
(`ValueError`, `IndexError`, `MemoryError`, `RuntimeError`, `TypeError`) so
that callers may catch either the library-specific type or the generic one.

Taxonomy
--------
- Shape mismatch: buffer length disagrees with a declared shape, a reshape
  would change the element count, or matmul operands are incompatible.
- Out-of-bounds indexing: checked coordinate access outside the array.
- Allocation: the backend cannot provide memory of the requested size.
- Transfer: an upload or readback failed (including use of a released tensor).
- Dispatch: a kernel submission was rejected or failed while executing.
- Context: a closed Context was used, or operands belong to different Contexts.

All of these are raised synchronously to the immediate caller and are never
retried by the library.
"""

from __future__ import annotations

from typing import Sequence


class GpuArrayError(Exception):
    """Base class for all gpuarray errors."""


class ShapeMismatchError(GpuArrayError, ValueError):
    """
    Raised when a shape disagrees with a buffer or with another operand.

    Attributes
    ----------
    expected : tuple[int, ...] | int | None
        The shape (or element count) that was required.
    actual : tuple[int, ...] | int | None
        The shape (or element count) that was provided.
    """

    def __init__(
        self,
        message: str,
        *,
        expected: object = None,
        actual: object = None,
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class InvalidReshapeError(ShapeMismatchError):
    """
    Raised when a reshape would change the total number of elements.

    The array being reshaped is left untouched.
    """

    def __init__(self, old_shape: Sequence[int], new_shape: Sequence[int]) -> None:
        """
        Initialize the InvalidReshapeError.

        Parameters
        ----------
        old_shape : Sequence[int]
            Current shape of the array.
        new_shape : Sequence[int]
            Requested shape whose element count differs.
        """
        super().__init__(
            f"Failed to reshape array of shape {tuple(old_shape)} to "
            f"{tuple(new_shape)}",
            expected=tuple(old_shape),
            actual=tuple(new_shape),
        )
        self.old_shape = tuple(old_shape)
        self.new_shape = tuple(new_shape)


class IndexOutOfBoundsError(GpuArrayError, IndexError):
    """
    Raised by checked coordinate access when coordinates fall outside the array.

    Attributes
    ----------
    coords : tuple[int, ...]
        The offending coordinate sequence.
    shape : tuple[int, ...]
        Shape of the array that was indexed.
    """

    def __init__(self, coords: Sequence[int], shape: Sequence[int], reason: str) -> None:
        super().__init__(
            f"coordinates {tuple(coords)} invalid for shape {tuple(shape)}: {reason}"
        )
        self.coords = tuple(coords)
        self.shape = tuple(shape)


class AllocationError(GpuArrayError, MemoryError):
    """Raised when the backend cannot provide memory of the requested size."""

    def __init__(self, nbytes: int, backend: str, detail: str = "") -> None:
        msg = f"backend '{backend}' failed to allocate {nbytes} bytes"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)
        self.nbytes = nbytes
        self.backend = backend


class TransferError(GpuArrayError, RuntimeError):
    """Raised when a host/device upload or readback fails."""


class TensorReleasedError(TransferError):
    """
    Raised when a released device buffer is used or released again.

    Releasing a tensor twice is a defined failure rather than a silent no-op.
    """


class DispatchError(GpuArrayError, RuntimeError):
    """
    Raised when a kernel submission is rejected or fails during execution.

    Attributes
    ----------
    kernel : str
        Name of the kernel that failed (e.g. "matmul").
    """

    def __init__(self, kernel: str, detail: str) -> None:
        super().__init__(f"{kernel} dispatch failed: {detail}")
        self.kernel = kernel


class ContextError(GpuArrayError, RuntimeError):
    """Raised when an operation is attempted on a closed Context."""


class ContextMismatchError(ContextError):
    """
    Raised when operands are bound to different Contexts.

    No implicit copies happen between Contexts.
    """


class TensorModeError(GpuArrayError, ValueError):
    """Raised when a tensor's transfer mode forbids the requested use."""


class DTypeMismatchError(GpuArrayError, TypeError):
    """Raised when operand dtypes disagree or a backend lacks a dtype."""
