"""
ctypes bindings for the gpuarray CUDA native library.

This module provides low-level Python bindings to a CUDA shared library via
`ctypes`. It assumes the library exports these C ABI functions, each
returning ``0`` on success and a non-zero status otherwise:

    int gpuarray_cuda_set_device(int device)
    int gpuarray_cuda_malloc(uint64_t* out_ptr, size_t nbytes)
    int gpuarray_cuda_free(uint64_t ptr)
    int gpuarray_cuda_memcpy_h2d(uint64_t dst, const void* src, size_t nbytes)
    int gpuarray_cuda_memcpy_d2h(void* dst, uint64_t src, size_t nbytes)
    int gpuarray_cuda_synchronize(void)
    int gpuarray_cuda_matmul_f32(const float* a, const float* b, float* c,
                                 int m, int n, int k)
    int gpuarray_cuda_matmul_f64(const double* a, const double* b, double* c,
                                 int m, int n, int k)

The matmul entrypoints compute ``C[m, k] = A[m, n] @ B[n, k]`` on row-major
buffers.

Design notes
------------
- Device pointers are represented as uintptr_t handles (Python int).
- Symbols are bound lazily and only once per `CudaLib` instance.
- No implicit device memory caching: callers own device pointers and free
  them through `cuda_free`.
- Failures surface as `RuntimeError`; higher layers map them onto the
  gpuarray error taxonomy.
"""

from __future__ import annotations

import ctypes
from ctypes import c_double, c_float, c_int, c_size_t, c_uint64, c_void_p
from functools import lru_cache
import os
from pathlib import Path
from typing import Optional, Union

import numpy as np

DevPtr = int

LIB_PATH_ENV = "GPUARRAY_CUDA_LIB"


# ---------------------------------------------------------------------
# Library loading
# ---------------------------------------------------------------------


def _add_dll_dir(dir_path: str) -> None:
    """
    Register `dir_path` for Windows DLL dependency resolution.

    A no-op on platforms without `os.add_dll_directory` and for directories
    that do not exist.
    """
    if not dir_path or not os.path.isdir(dir_path):
        return
    add = getattr(os, "add_dll_directory", None)
    if add is None:
        return
    try:
        add(dir_path)
    except OSError as e:
        # WinError 206: The filename or extension is too long
        if getattr(e, "winerror", None) != 206:
            raise
        cur = os.environ.get("PATH", "")
        if dir_path not in cur.split(os.pathsep):
            os.environ["PATH"] = dir_path + os.pathsep + cur if cur else dir_path


@lru_cache(maxsize=None)
def load_gpuarray_cuda_native(lib_path: Optional[Union[str, Path]] = None) -> ctypes.CDLL:
    """
    Load and cache the gpuarray CUDA shared library.

    Parameters
    ----------
    lib_path : str | Path, optional
        Path to the shared library. Falls back to the ``GPUARRAY_CUDA_LIB``
        environment variable when omitted.

    Environment variables
    ---------------------
    GPUARRAY_CUDA_LIB : str, optional
        Default library path.
    CUDA_PATH : str, optional
        If set, ``<CUDA_PATH>/bin`` is added to the DLL search path (Windows).

    Returns
    -------
    ctypes.CDLL
        Loaded library handle. Each distinct path is loaded once per process.

    Raises
    ------
    FileNotFoundError
        If no path is configured or the file does not exist.
    OSError
        If the library fails to load (missing dependencies, wrong arch, ...).
    """
    if lib_path is None:
        lib_path = os.environ.get(LIB_PATH_ENV, "")
    if not lib_path:
        raise FileNotFoundError(
            f"gpuarray CUDA library path not configured (set {LIB_PATH_ENV})"
        )

    p = Path(lib_path).resolve()
    if not p.exists():
        raise FileNotFoundError(f"gpuarray CUDA library not found at: {p}")

    cuda_path = os.environ.get("CUDA_PATH", "")
    if cuda_path:
        _add_dll_dir(os.path.join(cuda_path, "bin"))
    _add_dll_dir(str(p.parent))

    return ctypes.CDLL(str(p))


# ---------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------


class CudaLib:
    """
    Thin binding layer around the gpuarray CUDA native library.

    This class performs one-time `argtypes`/`restype` binding for exported
    symbols and exposes helpers for allocation, transfer and matmul.

    Notes
    -----
    This class does not manage device pointers automatically; callers must
    free device allocations using `cuda_free`.
    """

    def __init__(self, lib: ctypes.CDLL) -> None:
        self.lib = lib
        self._utils_bound = False
        self._matmul_bound = False

    def _bind_utils(self) -> None:
        if self._utils_bound:
            return

        lib = self.lib
        lib.gpuarray_cuda_set_device.argtypes = [c_int]
        lib.gpuarray_cuda_set_device.restype = c_int

        lib.gpuarray_cuda_malloc.argtypes = [ctypes.POINTER(c_uint64), c_size_t]
        lib.gpuarray_cuda_malloc.restype = c_int

        lib.gpuarray_cuda_free.argtypes = [c_uint64]
        lib.gpuarray_cuda_free.restype = c_int

        lib.gpuarray_cuda_memcpy_h2d.argtypes = [c_uint64, c_void_p, c_size_t]
        lib.gpuarray_cuda_memcpy_h2d.restype = c_int

        lib.gpuarray_cuda_memcpy_d2h.argtypes = [c_void_p, c_uint64, c_size_t]
        lib.gpuarray_cuda_memcpy_d2h.restype = c_int

        lib.gpuarray_cuda_synchronize.argtypes = []
        lib.gpuarray_cuda_synchronize.restype = c_int

        self._utils_bound = True

    def _bind_matmul(self) -> None:
        if self._matmul_bound:
            return

        lib = self.lib
        for sym, arg_t in (
            ("gpuarray_cuda_matmul_f32", c_float),
            ("gpuarray_cuda_matmul_f64", c_double),
        ):
            fn = getattr(lib, sym)
            fn.argtypes = [
                ctypes.POINTER(arg_t),  # a (device)
                ctypes.POINTER(arg_t),  # b (device)
                ctypes.POINTER(arg_t),  # c (device)
                c_int,  # m
                c_int,  # n
                c_int,  # k
            ]
            fn.restype = c_int

        self._matmul_bound = True

    @staticmethod
    def _check(sym: str, st: int) -> None:
        if int(st) != 0:
            raise RuntimeError(f"{sym} failed with status={int(st)}")

    def cuda_set_device(self, device: int = 0) -> None:
        self._bind_utils()
        self._check("gpuarray_cuda_set_device", self.lib.gpuarray_cuda_set_device(int(device)))

    def cuda_malloc(self, nbytes: int) -> DevPtr:
        """
        Allocate device memory.

        Raises
        ------
        RuntimeError
            If allocation fails or returns a null pointer.
        """
        self._bind_utils()
        out = c_uint64(0)
        st = self.lib.gpuarray_cuda_malloc(ctypes.byref(out), c_size_t(int(nbytes)))
        if st != 0 or out.value == 0:
            raise RuntimeError(
                f"gpuarray_cuda_malloc failed with status={st}, nbytes={nbytes}"
            )
        return int(out.value)

    def cuda_free(self, dev_ptr: DevPtr) -> None:
        """Free device memory. Safe to pass 0."""
        self._bind_utils()
        self._check("gpuarray_cuda_free", self.lib.gpuarray_cuda_free(c_uint64(int(dev_ptr))))

    def cuda_memcpy_h2d(self, dst_dev: DevPtr, src_host: np.ndarray) -> None:
        self._bind_utils()
        if not src_host.flags["C_CONTIGUOUS"]:
            src_host = np.ascontiguousarray(src_host)
        st = self.lib.gpuarray_cuda_memcpy_h2d(
            c_uint64(int(dst_dev)),
            c_void_p(int(src_host.ctypes.data)),
            c_size_t(int(src_host.nbytes)),
        )
        self._check("gpuarray_cuda_memcpy_h2d", st)

    def cuda_memcpy_d2h(self, dst_host: np.ndarray, src_dev: DevPtr) -> None:
        self._bind_utils()
        if not dst_host.flags["C_CONTIGUOUS"]:
            raise ValueError("dst_host must be C-contiguous")
        st = self.lib.gpuarray_cuda_memcpy_d2h(
            c_void_p(int(dst_host.ctypes.data)),
            c_uint64(int(src_dev)),
            c_size_t(int(dst_host.nbytes)),
        )
        self._check("gpuarray_cuda_memcpy_d2h", st)

    def cuda_synchronize(self) -> None:
        self._bind_utils()
        self._check("gpuarray_cuda_synchronize", self.lib.gpuarray_cuda_synchronize())

    def matmul(
        self,
        *,
        a_dev: DevPtr,
        b_dev: DevPtr,
        c_dev: DevPtr,
        m: int,
        n: int,
        k: int,
        dtype: np.dtype,
    ) -> None:
        """
        Launch ``C[m, k] = A[m, n] @ B[n, k]``.

        Raises
        ------
        TypeError
            If `dtype` is not float32/float64.
        RuntimeError
            If the native kernel reports a non-zero status.
        """
        dtype = np.dtype(dtype)
        if dtype == np.float32:
            sym, arg_t = "gpuarray_cuda_matmul_f32", c_float
        elif dtype == np.float64:
            sym, arg_t = "gpuarray_cuda_matmul_f64", c_double
        else:
            raise TypeError(f"CUDA matmul supports float32/float64 only, got {dtype}")

        self._bind_matmul()
        ptr_t = ctypes.POINTER(arg_t)
        st = getattr(self.lib, sym)(
            ctypes.cast(c_void_p(int(a_dev)), ptr_t),
            ctypes.cast(c_void_p(int(b_dev)), ptr_t),
            ctypes.cast(c_void_p(int(c_dev)), ptr_t),
            c_int(int(m)),
            c_int(int(n)),
            c_int(int(k)),
        )
        self._check(sym, st)
