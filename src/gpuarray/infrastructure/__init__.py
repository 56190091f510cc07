from .array import Array
from .backend import CudaBackend, CudaLib, HostBackend, load_gpuarray_cuda_native
from .context import Context, ContextConfig
from .ops import matmul
from .tensor import DeviceStorage, Tensor

__all__ = [
    "Array",
    "Context",
    "ContextConfig",
    "CudaBackend",
    "CudaLib",
    "DeviceStorage",
    "HostBackend",
    "Tensor",
    "load_gpuarray_cuda_native",
    "matmul",
]
