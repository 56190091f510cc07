from .matmul import matmul

__all__ = [matmul.__name__]
