"""
gpuarray: a minimal dense n-dimensional host array, a device-resident tensor
counterpart bound to a compute `Context`, and matmul dispatched against it.

Typical use::

    import gpuarray as ga

    with ga.Context() as ctx:
        a = ga.Array.from_buffer((2, 3), range(6))
        b = ga.Array((3, 1), 1.0)
        a_dev = ga.Tensor.from_array(ctx, a, ga.TensorMode.In)
        b_dev = ga.Tensor.from_array(ctx, b, ga.TensorMode.In)
        c_dev = ga.Tensor.new(ctx, (2, 1), ga.TensorMode.Mut)
        ga.matmul(ctx, a_dev, b_dev, c_dev)
        print(c_dev.get(ctx))
"""

from .domain import (
    AllocationError,
    ContextError,
    ContextMismatchError,
    Device,
    DeviceType,
    DispatchError,
    DTypeMismatchError,
    GpuArrayError,
    IBackend,
    IndexOutOfBoundsError,
    InvalidReshapeError,
    ShapeMismatchError,
    TensorMode,
    TensorModeError,
    TensorReleasedError,
    TransferError,
    compute_dim_steps,
    numel,
)
from .infrastructure import (
    Array,
    Context,
    ContextConfig,
    CudaBackend,
    HostBackend,
    Tensor,
    matmul,
)

__version__ = "0.1.0"

__all__ = [
    "AllocationError",
    "Array",
    "Context",
    "ContextConfig",
    "ContextError",
    "ContextMismatchError",
    "CudaBackend",
    "Device",
    "DeviceType",
    "DispatchError",
    "DTypeMismatchError",
    "GpuArrayError",
    "HostBackend",
    "IBackend",
    "IndexOutOfBoundsError",
    "InvalidReshapeError",
    "ShapeMismatchError",
    "Tensor",
    "TensorMode",
    "TensorModeError",
    "TensorReleasedError",
    "TransferError",
    "compute_dim_steps",
    "matmul",
    "numel",
]
