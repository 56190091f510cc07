"""
Compute-target descriptors.

A `Context` is bound to exactly one compute target, named by a short string:

- ``"host"``: the in-process NumPy backend
- ``"cuda:<index>"``: a CUDA device reached through the native library

`Device` parses and normalizes that string so configuration errors surface
when a `ContextConfig` is built rather than when the backend is loaded. It
holds no backend resources.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Union


class DeviceType(Enum):
    """
    Backend family a `Device` selects.

    Attributes
    ----------
    HOST : DeviceType
        In-process NumPy backend (reference implementation).
    CUDA : DeviceType
        Native CUDA backend reached through ctypes.
    """

    HOST = "host"
    CUDA = "cuda"


def _parse(spec: str) -> tuple[DeviceType, Optional[int]]:
    family, sep, ordinal = str(spec).partition(":")
    if family == DeviceType.HOST.value and not sep:
        return DeviceType.HOST, None
    if (
        family == DeviceType.CUDA.value
        and sep
        and ordinal.isascii()
        and ordinal.isdigit()
    ):
        return DeviceType.CUDA, int(ordinal)
    raise ValueError(
        f"Invalid device {spec!r}. Expected 'host' or 'cuda:<index>'"
    )


class Device:
    """
    Normalized compute-target descriptor.

    Parameters
    ----------
    device : str | Device
        ``"host"`` or ``"cuda:<index>"`` with a non-negative decimal index.
        An existing `Device` is copied.

    Attributes
    ----------
    type : DeviceType
        Backend family.
    index : Optional[int]
        CUDA ordinal; None for the host.

    Raises
    ------
    ValueError
        If the string names neither the host nor a CUDA ordinal.
    """

    __slots__ = ("type", "index")

    def __init__(self, device: Union[str, "Device"]) -> None:
        if isinstance(device, Device):
            self.type, self.index = device.type, device.index
        else:
            self.type, self.index = _parse(device)

    def __str__(self) -> str:
        if self.index is None:
            return self.type.value
        return f"{self.type.value}:{self.index}"

    def __repr__(self) -> str:
        return f"Device('{self}')"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Device):
            return NotImplemented
        return (self.type, self.index) == (other.type, other.index)

    def __hash__(self) -> int:
        return hash((self.type, self.index))

    def is_host(self) -> bool:
        return self.type is DeviceType.HOST

    def is_cuda(self) -> bool:
        return self.type is DeviceType.CUDA

    @property
    def ordinal(self) -> int:
        """
        Device ordinal passed to the backend.

        Returns
        -------
        int
            The CUDA index, or 0 for the host (which has a single target).
        """
        return 0 if self.index is None else self.index
