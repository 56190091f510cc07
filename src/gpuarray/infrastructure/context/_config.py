"""
Context configuration.

`ContextConfig` collects the knobs that decide which backend a `Context`
builds when none is injected explicitly. Values can be given directly or read
from the environment:

GPUARRAY_DEVICE : str, optional
    ``"host"`` (default) or ``"cuda:<index>"``.
GPUARRAY_CUDA_LIB : str, optional
    Path to the native CUDA shared library (required for ``cuda:<index>``).
GPUARRAY_SYNC : str, optional
    ``0``/``false``/``no``/``off`` makes native submissions non-blocking.
    Any other value, or unset, keeps them blocking.
"""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Mapping, Optional

from ...domain.device._device import Device
from ..backend._cuda_ctypes import LIB_PATH_ENV

DEVICE_ENV = "GPUARRAY_DEVICE"
SYNC_ENV = "GPUARRAY_SYNC"

_FALSY = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True)
class ContextConfig:
    """
    Immutable backend-selection settings for a `Context`.

    Attributes
    ----------
    device : str
        Device string, validated by `Device`.
    native_lib_path : Optional[str]
        Path to the CUDA shared library; only used for CUDA devices.
    sync : bool
        Whether native submissions block until completion.
    """

    device: str = "host"
    native_lib_path: Optional[str] = None
    sync: bool = True

    def __post_init__(self) -> None:
        # Fail fast on malformed device strings.
        Device(self.device)

    @property
    def parsed_device(self) -> Device:
        return Device(self.device)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ContextConfig":
        """
        Build a config from environment variables.

        Parameters
        ----------
        environ : Mapping[str, str], optional
            Mapping to read instead of `os.environ`.

        Raises
        ------
        ValueError
            If ``GPUARRAY_DEVICE`` is not a valid device string.
        """
        env = os.environ if environ is None else environ
        return cls(
            device=env.get(DEVICE_ENV, "host").strip() or "host",
            native_lib_path=env.get(LIB_PATH_ENV) or None,
            sync=env.get(SYNC_ENV, "1").strip().lower() not in _FALSY,
        )
