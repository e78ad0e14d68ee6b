from typing import Any, Optional, Sequence, Tuple, Union
import numpy as np

from tapegrad.config import get_config
from .memory import Handle, arena


class Tensor:
    """Immutable array value with a unique identity.

    Two tensors holding the same numbers are still distinct graph nodes: the
    arena handle, not the content, is what the tape and the gradient
    accumulator key on.
    """

    # Lets ``ndarray <op> Tensor`` fall through to the Tensor's reflected operator
    __array_priority__ = 1000

    def __init__(self, data: Any, dtype: Optional[Union[str, np.dtype]] = None):
        if isinstance(data, Tensor):
            array = data._data if dtype is None else data._data.astype(dtype)
        elif isinstance(data, (np.ndarray, np.generic)):
            array = np.array(data, dtype=dtype, copy=True)
        else:
            array = np.array(data, dtype=dtype or get_config().dtype)
        self._init_data(array)

    def _init_data(self, array: np.ndarray) -> None:
        array = np.asarray(array)
        if array.flags.writeable:
            array.flags.writeable = False
        self._data = array
        self.handle: Handle = arena.allocate(self)

    @classmethod
    def _wrap(cls, array: Any) -> 'Tensor':
        """Wrap the freshly computed result of a forward evaluator without copying."""
        tensor = cls.__new__(cls)
        tensor._init_data(array)
        return tensor

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._data.shape

    @property
    def ndim(self) -> int:
        return self._data.ndim

    @property
    def size(self) -> int:
        return self._data.size

    @property
    def dtype(self) -> np.dtype:
        return self._data.dtype

    def numpy(self) -> np.ndarray:
        return self._data.copy()

    def item(self) -> Union[int, float, bool]:
        return self._data.item()

    def tolist(self) -> Any:
        return self._data.tolist()

    def equals(self, other: Any) -> bool:
        other = as_tensor(other)
        return self.shape == other.shape and bool(np.array_equal(self._data, other._data))

    def __len__(self) -> int:
        if self.ndim == 0:
            raise TypeError("len() of a 0-d tensor")
        return self.shape[0]

    def __repr__(self) -> str:
        body = np.array2string(self._data, separator=', ', prefix='Tensor(')
        return f"Tensor({body}, dtype={self.dtype})"

    # Arithmetic
    def __add__(self, other): return ops.add(self, other)
    def __radd__(self, other): return ops.add(other, self)
    def __sub__(self, other): return ops.sub(self, other)
    def __rsub__(self, other): return ops.sub(other, self)
    def __mul__(self, other): return ops.mul(self, other)
    def __rmul__(self, other): return ops.mul(other, self)
    def __truediv__(self, other): return ops.div(self, other)
    def __rtruediv__(self, other): return ops.div(other, self)
    def __neg__(self): return ops.neg(self)
    def __pow__(self, exponent): return ops.power(self, exponent)
    def __rpow__(self, base): return ops.power(base, self)
    def __matmul__(self, other): return ops.matmul(self, other)
    def __rmatmul__(self, other): return ops.matmul(other, self)

    def __getitem__(self, index) -> 'Tensor':
        return ops.getitem(self, index)

    # Elementwise
    def exp(self) -> 'Tensor':
        return ops.exp(self)

    def log(self) -> 'Tensor':
        return ops.log(self)

    def sqrt(self) -> 'Tensor':
        return ops.sqrt(self)

    def sin(self) -> 'Tensor':
        return ops.sin(self)

    def cos(self) -> 'Tensor':
        return ops.cos(self)

    def tanh(self) -> 'Tensor':
        return ops.tanh(self)

    def sigmoid(self) -> 'Tensor':
        return ops.sigmoid(self)

    def relu(self) -> 'Tensor':
        return ops.relu(self)

    def abs(self) -> 'Tensor':
        return ops.abs(self)

    # Reductions
    def sum(self, axis: Optional[Union[int, Sequence[int]]] = None, keepdims: bool = False) -> 'Tensor':
        return ops.sum(self, axis=axis, keepdims=keepdims)

    def mean(self, axis: Optional[Union[int, Sequence[int]]] = None, keepdims: bool = False) -> 'Tensor':
        return ops.mean(self, axis=axis, keepdims=keepdims)

    def max(self, axis: Optional[int] = None, keepdims: bool = False) -> 'Tensor':
        return ops.max(self, axis=axis, keepdims=keepdims)

    def argmax(self, axis: Optional[int] = None) -> 'Tensor':
        return ops.argmax(self, axis=axis)

    # Shape
    def reshape(self, *shape) -> 'Tensor':
        if len(shape) == 1 and isinstance(shape[0], (tuple, list)):
            shape = tuple(shape[0])
        return ops.reshape(self, shape)

    def transpose(self, *axes) -> 'Tensor':
        if len(axes) == 1 and isinstance(axes[0], (tuple, list)):
            axes = tuple(axes[0])
        return ops.transpose(self, axes or None)

    @property
    def T(self) -> 'Tensor':
        return ops.transpose(self)

    def expand_dims(self, axis: int) -> 'Tensor':
        return ops.expand_dims(self, axis)

    def squeeze(self, axis: Optional[int] = None) -> 'Tensor':
        return ops.squeeze(self, axis)

    def broadcast_to(self, shape: Sequence[int]) -> 'Tensor':
        return ops.broadcast_to(self, shape)

    def matmul(self, other) -> 'Tensor':
        return ops.matmul(self, other)

    def detach(self) -> 'Tensor':
        return ops.stop_gradient(self)


def as_tensor(value: Any, dtype: Optional[Union[str, np.dtype]] = None) -> Tensor:
    if isinstance(value, Tensor) and (dtype is None or value.dtype == np.dtype(dtype)):
        return value
    return Tensor(value, dtype=dtype)


TensorLike = Union[Tensor, np.ndarray, float, int, Sequence]

from . import ops  # noqa: E402  (ops needs Tensor defined first)
