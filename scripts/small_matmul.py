"""
scripts/small_matmul.py

Small end-to-end matmul demo (NOT a unit test) for gpuarray.

Builds the 2x3 matrix ``[[0, 1, 2], [3, 4, 5]]`` and a 3x1 matrix of ones,
uploads both as ``In`` tensors, dispatches ``C = A @ B`` into a ``Mut``
tensor, reads C back and prints all three with the rank-2 rendering.

Usage
-----
python scripts/small_matmul.py
python scripts/small_matmul.py --device cuda:0 --lib /path/to/gpuarray_cuda.so
python scripts/small_matmul.py --dtype float64 -v
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

import numpy as np

# -------------------------
# Make repo_root/src importable
# -------------------------
THIS_DIR = os.path.dirname(os.path.abspath(__file__))
ROOT_DIR = os.path.abspath(os.path.join(THIS_DIR, ".."))
SRC_DIR = os.path.join(ROOT_DIR, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from gpuarray import Array, Context, ContextConfig, Tensor, TensorMode, matmul


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="gpuarray 2x3 @ 3x1 matmul demo")
    p.add_argument(
        "--device",
        default=None,
        help="Device string: 'host' or 'cuda:<index>' (default: $GPUARRAY_DEVICE or host)",
    )
    p.add_argument(
        "--lib",
        default=None,
        help="Path to the native CUDA library (default: $GPUARRAY_CUDA_LIB)",
    )
    p.add_argument("--dtype", choices=["float32", "float64"], default="float32")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    return p.parse_args(argv)


def _build_config(args: argparse.Namespace) -> ContextConfig:
    base = ContextConfig.from_env()
    return ContextConfig(
        device=args.device or base.device,
        native_lib_path=args.lib or base.native_lib_path,
        sync=base.sync,
    )


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    dtype = np.dtype(args.dtype)

    a = Array.from_buffer((2, 3), [0, 1, 2, 3, 4, 5], dtype=dtype)
    b = Array((3, 1), 1, dtype=dtype)

    with Context(_build_config(args)) as ctx:
        with Tensor.from_array(ctx, a, TensorMode.In) as a_dev, Tensor.from_array(
            ctx, b, TensorMode.In
        ) as b_dev, Tensor.new(ctx, (2, 1), TensorMode.Mut, dtype=dtype) as c_dev:
            matmul(ctx, a_dev, b_dev, c_dev)
            c = c_dev.get(ctx)

    print(f"A = {a}")
    print(f"B = {b}")
    print(f"A * B = {c}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
