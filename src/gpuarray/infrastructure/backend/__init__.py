from ._host_backend import HostBackend
from ._cuda_backend import CudaBackend
from ._cuda_ctypes import CudaLib, load_gpuarray_cuda_native

__all__ = [
    HostBackend.__name__,
    CudaBackend.__name__,
    CudaLib.__name__,
    load_gpuarray_cuda_native.__name__,
]
