from ._device_storage import DeviceStorage
from ._tensor import Tensor

__all__ = [DeviceStorage.__name__, Tensor.__name__]
