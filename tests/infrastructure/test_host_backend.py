import unittest
from unittest import TestCase

import numpy as np
from numpy.testing import assert_allclose, assert_array_equal

from gpuarray import HostBackend, IBackend


class TestHostBackend(TestCase):
    def setUp(self):
        self.backend = HostBackend()

    def test_satisfies_protocol(self):
        self.assertIsInstance(self.backend, IBackend)

    def test_upload_readback_round_trip(self):
        src = np.arange(6, dtype=np.float32)
        h = self.backend.allocate(src.nbytes)
        self.backend.upload(h, src)
        out = np.empty_like(src)
        self.backend.readback(h, out)
        assert_array_equal(out, src)

    def test_handles_are_never_reused(self):
        h1 = self.backend.allocate(8)
        self.backend.release(h1)
        h2 = self.backend.allocate(8)
        self.assertNotEqual(h1, h2)

    def test_released_handle_is_invalid(self):
        h = self.backend.allocate(4)
        self.backend.release(h)
        with self.assertRaises(KeyError):
            self.backend.readback(h, np.empty(1, dtype=np.float32))
        with self.assertRaises(KeyError):
            self.backend.release(h)

    def test_size_mismatch(self):
        h = self.backend.allocate(8)
        with self.assertRaises(ValueError):
            self.backend.upload(h, np.zeros(3, dtype=np.float32))
        with self.assertRaises(ValueError):
            self.backend.readback(h, np.zeros(4, dtype=np.float32))

    def test_negative_allocation(self):
        with self.assertRaises(ValueError):
            self.backend.allocate(-1)

    def test_max_bytes(self):
        backend = HostBackend(max_bytes=16)
        h = backend.allocate(12)
        self.assertEqual(backend.bytes_in_use, 12)
        with self.assertRaises(MemoryError):
            backend.allocate(8)
        backend.release(h)
        self.assertEqual(backend.bytes_in_use, 0)
        backend.allocate(16)

    def test_live_handles(self):
        h1 = self.backend.allocate(4)
        h2 = self.backend.allocate(4)
        self.assertEqual(self.backend.live_handles, frozenset({h1, h2}))
        self.backend.release(h1)
        self.assertEqual(self.backend.live_handles, frozenset({h2}))

    def test_matmul(self):
        rng = np.random.default_rng(1)
        for dtype in (np.float32, np.float64, np.int32):
            a = (rng.standard_normal((4, 5)) * 4).astype(dtype)
            b = (rng.standard_normal((5, 3)) * 4).astype(dtype)
            ha = self.backend.allocate(a.nbytes)
            hb = self.backend.allocate(b.nbytes)
            hc = self.backend.allocate(4 * 3 * np.dtype(dtype).itemsize)
            self.backend.upload(ha, a)
            self.backend.upload(hb, b)
            self.backend.matmul(ha, hb, hc, 4, 5, 3, np.dtype(dtype))
            out = np.empty((4, 3), dtype=dtype)
            self.backend.readback(hc, out)
            assert_allclose(out, a @ b, rtol=1e-5, atol=1e-5)

    def test_matmul_rejects_short_buffers(self):
        ha = self.backend.allocate(4)
        hb = self.backend.allocate(4)
        hc = self.backend.allocate(4)
        with self.assertRaises(ValueError):
            self.backend.matmul(ha, hb, hc, 2, 2, 2, np.dtype(np.float32))


if __name__ == "__main__":
    unittest.main()
