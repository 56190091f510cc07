from ._config import ContextConfig
from ._context import Context

__all__ = [ContextConfig.__name__, Context.__name__]
