from ._storage import Storage
from ._tensor import Tensor, DEFAULT_DTYPE

__all__ = [Storage.__name__, Tensor.__name__, "DEFAULT_DTYPE"]
