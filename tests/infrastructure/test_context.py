# tests/infrastructure/test_context.py
"""
Unit tests for ContextConfig and the Context lifecycle.

Covers backend selection, error translation of failing backends
(allocation, upload, readback, release, synchronize), teardown with live
tensors and finalizer frees.
"""

import gc
import logging
import unittest
from unittest import TestCase

import numpy as np

from gpuarray import (
    AllocationError,
    Array,
    Context,
    ContextConfig,
    ContextError,
    Device,
    DispatchError,
    HostBackend,
    Tensor,
    TensorMode,
    TensorReleasedError,
    TransferError,
)


class _FailingUploadBackend(HostBackend):
    def upload(self, handle, src_host):
        raise OSError("bus error")


class _FailingReadbackBackend(HostBackend):
    def readback(self, handle, dst_host):
        raise OSError("device lost")


class _FailingReleaseBackend(HostBackend):
    def release(self, handle):
        super().release(handle)
        raise OSError("free failed")


class _FailingSyncBackend(HostBackend):
    def synchronize(self):
        raise RuntimeError("queue hung up")


class _LockCheckingBackend(HostBackend):
    def __init__(self):
        super().__init__()
        self.context = None
        self.release_held_lock = []

    def release(self, handle):
        self.release_held_lock.append(self.context._lock._is_owned())
        super().release(handle)


class TestContextConfig(TestCase):
    def test_defaults(self):
        cfg = ContextConfig()
        self.assertEqual(cfg.device, "host")
        self.assertIsNone(cfg.native_lib_path)
        self.assertTrue(cfg.sync)
        self.assertEqual(cfg.parsed_device, Device("host"))

    def test_invalid_device(self):
        with self.assertRaises(ValueError):
            ContextConfig(device="tpu:0")

    def test_from_env(self):
        cfg = ContextConfig.from_env(
            {
                "GPUARRAY_DEVICE": "cuda:1",
                "GPUARRAY_CUDA_LIB": "/opt/lib/libgpuarray_cuda.so",
                "GPUARRAY_SYNC": "off",
            }
        )
        self.assertEqual(cfg.parsed_device, Device("cuda:1"))
        self.assertEqual(cfg.native_lib_path, "/opt/lib/libgpuarray_cuda.so")
        self.assertFalse(cfg.sync)

    def test_from_env_defaults(self):
        cfg = ContextConfig.from_env({})
        self.assertEqual(cfg, ContextConfig())

    def test_from_env_invalid_device(self):
        with self.assertRaises(ValueError):
            ContextConfig.from_env({"GPUARRAY_DEVICE": "gpu"})


class TestContext(TestCase):
    def test_default_backend_is_host(self):
        with Context() as ctx:
            self.assertIsInstance(ctx.backend, HostBackend)
            self.assertEqual(ctx.backend_name, "host")
            self.assertEqual(ctx.device, Device("host"))

    def test_injected_backend(self):
        backend = HostBackend()
        ctx = Context(backend=backend)
        self.assertIs(ctx.backend, backend)
        self.assertIsNone(ctx.device)

    def test_rejects_non_backend(self):
        with self.assertRaises(TypeError):
            Context(backend=object())

    def test_cuda_without_library(self):
        with self.assertRaises(FileNotFoundError):
            Context(ContextConfig(device="cuda:0", native_lib_path="/nonexistent/libgpuarray_cuda.so"))

    def test_allocation_error_translated(self):
        ctx = Context(backend=HostBackend(max_bytes=16))
        with self.assertRaises(AllocationError) as cm:
            Tensor.new(ctx, (8,), TensorMode.Out)
        self.assertIsInstance(cm.exception.__cause__, MemoryError)
        self.assertEqual(cm.exception.nbytes, 32)
        self.assertEqual(ctx.live_allocations, 0)

    def test_upload_failure_releases_storage(self):
        backend = _FailingUploadBackend()
        ctx = Context(backend=backend)
        with self.assertRaises(TransferError) as cm:
            Tensor.from_array(ctx, Array((2, 2), 1.0), TensorMode.In)
        self.assertIsInstance(cm.exception.__cause__, OSError)
        self.assertEqual(ctx.live_allocations, 0)
        self.assertEqual(backend.live_handles, frozenset())

    def test_live_allocations(self):
        ctx = Context()
        t1 = Tensor.new(ctx, (2, 2), TensorMode.Out)
        t2 = Tensor.new(ctx, (3,), TensorMode.Out)
        self.assertEqual(ctx.live_allocations, 2)
        t1.release()
        self.assertEqual(ctx.live_allocations, 1)
        t2.release()
        self.assertEqual(ctx.live_allocations, 0)

    def test_close_releases_live_storages(self):
        backend = HostBackend()
        ctx = Context(backend=backend)
        t = Tensor.from_array(ctx, Array((2, 2), 1.0), TensorMode.Mut)
        with self.assertLogs("gpuarray.infrastructure.context._context", level=logging.WARNING):
            ctx.close()
        self.assertTrue(ctx.is_closed)
        self.assertTrue(t.is_released)
        self.assertEqual(backend.live_handles, frozenset())

    def test_close_is_idempotent(self):
        ctx = Context()
        ctx.close()
        ctx.close()
        self.assertTrue(ctx.is_closed)

    def test_closed_context_refuses_work(self):
        ctx = Context()
        ctx.close()
        with self.assertRaises(ContextError):
            Tensor.new(ctx, (2,), TensorMode.Out)
        with self.assertRaises(ContextError):
            ctx.synchronize()

    def test_readback_after_close(self):
        ctx = Context()
        t = Tensor.from_array(ctx, Array((3,), 2.0), TensorMode.Mut)
        ctx.close()
        with self.assertRaises(TensorReleasedError):
            t.get(ctx)
        with self.assertRaises(TransferError):
            t.get(ctx)

    def test_upload_size_mismatch(self):
        ctx = Context()
        t = Tensor.new(ctx, (4,), TensorMode.Mut)
        with self.assertRaises(TransferError):
            ctx.upload(t.storage, np.zeros(3, dtype=np.float32))

    def test_failed_readback_is_transfer_error(self):
        ctx = Context(backend=_FailingReadbackBackend())
        t = Tensor.from_array(ctx, Array((2, 2), 1.0), TensorMode.Mut)
        with self.assertRaises(TransferError) as cm:
            t.get(ctx)
        self.assertIsInstance(cm.exception.__cause__, OSError)
        self.assertFalse(t.is_released)

    def test_failed_release_is_transfer_error(self):
        ctx = Context(backend=_FailingReleaseBackend())
        t = Tensor.new(ctx, (3,), TensorMode.Out)
        with self.assertRaises(TransferError) as cm:
            t.release()
        self.assertIsInstance(cm.exception.__cause__, OSError)
        self.assertTrue(t.is_released)
        self.assertEqual(ctx.live_allocations, 0)

    def test_failed_synchronize_is_dispatch_error(self):
        ctx = Context(backend=_FailingSyncBackend())
        with self.assertRaises(DispatchError) as cm:
            ctx.synchronize()
        self.assertEqual(cm.exception.kernel, "synchronize")
        self.assertIsInstance(cm.exception.__cause__, RuntimeError)

    def test_close_tolerates_concurrent_release(self):
        backend = HostBackend()
        ctx = Context(backend=backend)
        t1 = Tensor.new(ctx, (2,), TensorMode.Out)
        t2 = Tensor.new(ctx, (2,), TensorMode.Out)
        # Another thread has marked t1 released but not yet unregistered it.
        t1.storage._released = True
        with self.assertLogs("gpuarray.infrastructure.context._context", level=logging.WARNING):
            ctx.close()
        self.assertTrue(ctx.is_closed)
        self.assertTrue(t2.is_released)
        self.assertNotIn(t2.storage.handle, backend.live_handles)

    def test_finalizer_frees_under_context_lock(self):
        backend = _LockCheckingBackend()
        ctx = Context(backend=backend)
        backend.context = ctx
        t = Tensor.new(ctx, (4,), TensorMode.Out)
        handle = t.storage.handle
        del t
        gc.collect()
        self.assertEqual(backend.release_held_lock, [True])
        self.assertNotIn(handle, backend.live_handles)

    def test_finalizer_swallows_backend_errors(self):
        ctx = Context(backend=_FailingReleaseBackend())
        t = Tensor.new(ctx, (4,), TensorMode.Out)
        del t
        gc.collect()
        self.assertEqual(ctx.live_allocations, 0)

    def test_synchronize(self):
        with Context() as ctx:
            ctx.synchronize()

    def test_repr(self):
        ctx = Context()
        self.assertEqual(repr(ctx), "Context(host, live=0)")
        ctx.close()
        self.assertEqual(repr(ctx), "Context(host, closed)")


if __name__ == "__main__":
    unittest.main()
