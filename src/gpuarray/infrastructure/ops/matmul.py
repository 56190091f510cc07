"""
Dense matrix multiplication dispatched against a `Context`.

`matmul(ctx, a, b, c)` computes ``C = A @ B`` on device tensors, where
``A`` has shape ``(m, n)``, ``B`` has shape ``(n, k)`` and ``C`` has shape
``(m, k)``, all row-major. The result overwrites ``C``'s device buffer; no
readback happens here, callers observe the result with ``c.get(ctx)``.

Every precondition is checked before anything reaches the backend, so a
rejected call performs no device writes.
"""

from __future__ import annotations

import logging

import numpy as np

from ...domain._errors import (
    ContextMismatchError,
    DTypeMismatchError,
    ShapeMismatchError,
    TensorModeError,
)
from ..context._context import Context
from ..tensor._tensor import Tensor

logger = logging.getLogger(__name__)


def _check_operands(ctx: Context, a: Tensor, b: Tensor, c: Tensor) -> tuple[int, int, int]:
    for name, t in (("a", a), ("b", b), ("c", c)):
        if not isinstance(t, Tensor):
            raise TypeError(f"matmul expects Tensor for {name}, got {type(t)!r}")
        if t.context is not ctx:
            raise ContextMismatchError(
                f"matmul operand {name} is bound to {t.context!r}, not {ctx!r}"
            )
        t.storage.ensure_live()

    if a.ndim != 2 or b.ndim != 2 or c.ndim != 2:
        raise ShapeMismatchError(
            f"matmul requires 2D tensors, got {a.shape}, {b.shape} and {c.shape}"
        )

    m, n = a.shape
    n2, k = b.shape
    if n != n2:
        raise ShapeMismatchError(
            f"matmul shape mismatch: {a.shape} @ {b.shape} (inner dims {n} vs {n2})",
            expected=(n, k),
            actual=b.shape,
        )
    if c.shape != (m, k):
        raise ShapeMismatchError(
            f"matmul output shape {c.shape} does not match expected {(m, k)}",
            expected=(m, k),
            actual=c.shape,
        )

    if not c.mode.is_writable:
        raise TensorModeError(
            f"matmul output must be in mode Out or Mut, got {c.mode}"
        )

    dtype = a.dtype
    if b.dtype != dtype or c.dtype != dtype:
        raise DTypeMismatchError(
            f"matmul dtype mismatch: {a.dtype}, {b.dtype} and {c.dtype}"
        )
    supported = getattr(ctx.backend, "matmul_dtypes", None)
    if supported is not None and dtype not in supported:
        raise DTypeMismatchError(
            f"backend '{ctx.backend_name}' does not support matmul for {dtype}"
        )
    return int(m), int(n), int(k)


def matmul(ctx: Context, a: Tensor, b: Tensor, c: Tensor) -> None:
    """
    Compute ``c = a @ b`` on the device.

    Parameters
    ----------
    ctx : Context
        Context all three tensors are bound to.
    a : Tensor
        Left operand of shape ``(m, n)``.
    b : Tensor
        Right operand of shape ``(n, k)``.
    c : Tensor
        Output of shape ``(m, k)`` in mode ``Out`` or ``Mut``. Prior content
        is overwritten.

    Raises
    ------
    ContextError
        If `ctx` is closed.
    ContextMismatchError
        If any operand belongs to another Context.
    TensorReleasedError
        If any operand has been released.
    ShapeMismatchError
        If an operand is not 2D, the inner dimensions differ, or ``c`` does
        not have shape ``(m, k)``.
    TensorModeError
        If ``c`` is an ``In`` tensor.
    DTypeMismatchError
        If the operand dtypes differ or the backend lacks the dtype.
    DispatchError
        If the backend rejects or fails the kernel. Not retried.
    """
    ctx.ensure_open()
    m, n, k = _check_operands(ctx, a, b, c)

    if m == 0 or k == 0:
        logger.debug("matmul with empty output %s; nothing to dispatch", c.shape)
        return
    if n == 0:
        # Empty inner dimension: every dot product is an empty sum.
        ctx.upload(c.storage, np.zeros(m * k, dtype=c.dtype))
        return

    ctx.submit_matmul(a.storage, b.storage, c.storage, m, n, k, c.dtype)
