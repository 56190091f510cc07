"""
Transfer-mode tags for device tensors.

A `TensorMode` is attached to every device allocation and decides which
host/device synchronization directions are honored:

- ``In``:  host -> device only. Populated once from a host array at creation.
- ``Out``: device-only allocation meant to receive kernel output. Nothing is
  uploaded at creation; a readback is required to observe results.
- ``Mut``: bidirectional. May be uploaded at creation and read back later,
  supporting read-modify-write kernels.

The set is closed. Adding a member requires re-auditing every upload and
readback site in `infrastructure.tensor`.
"""

from enum import Enum


class TensorMode(Enum):
    """
    Closed enumeration of device-tensor transfer modes.

    Attributes
    ----------
    In : TensorMode
        Upload-only input tensor.
    Out : TensorMode
        Kernel output; no upload at creation.
    Mut : TensorMode
        Uploaded at creation and valid for readback.
    """

    In = "in"
    Out = "out"
    Mut = "mut"

    @property
    def uploads_on_create(self) -> bool:
        """Whether construction from a host array copies the data to device."""
        return self is not TensorMode.Out

    @property
    def is_writable(self) -> bool:
        """Whether kernels may use a tensor of this mode as their output."""
        return self is not TensorMode.In

    @property
    def reads_back(self) -> bool:
        """Whether a readback is meaningful for a tensor of this mode."""
        return self is not TensorMode.In

    def __str__(self) -> str:
        return self.name
