from ._backend import DeviceHandle, IBackend
from ._errors import (
    AllocationError,
    ContextError,
    ContextMismatchError,
    DispatchError,
    DTypeMismatchError,
    GpuArrayError,
    IndexOutOfBoundsError,
    InvalidReshapeError,
    ShapeMismatchError,
    TensorModeError,
    TensorReleasedError,
    TransferError,
)
from ._shape import (
    Shape,
    check_coords,
    compute_dim_steps,
    linear_offset,
    normalize_shape,
    numel,
)
from ._tensor_mode import TensorMode
from .device import Device, DeviceType

__all__ = [
    "AllocationError",
    "ContextError",
    "ContextMismatchError",
    "Device",
    "DeviceHandle",
    "DeviceType",
    "DispatchError",
    "DTypeMismatchError",
    "GpuArrayError",
    "IBackend",
    "IndexOutOfBoundsError",
    "InvalidReshapeError",
    "Shape",
    "ShapeMismatchError",
    "TensorMode",
    "TensorModeError",
    "TensorReleasedError",
    "TransferError",
    "check_coords",
    "compute_dim_steps",
    "linear_offset",
    "normalize_shape",
    "numel",
]
