from typing import Optional, Sequence, Union
import numpy as np

from tapegrad.config import get_config
from tapegrad.core import ops
from tapegrad.core.tensor import Tensor, TensorLike, as_tensor

DType = Optional[Union[str, np.dtype]]


def tensor(data: TensorLike, dtype: DType = None) -> Tensor:
    return Tensor(data, dtype=dtype)


def zeros(shape: Sequence[int], dtype: DType = None) -> Tensor:
    return Tensor(np.zeros(shape), dtype=dtype or get_config().dtype)


def ones(shape: Sequence[int], dtype: DType = None) -> Tensor:
    return Tensor(np.ones(shape), dtype=dtype or get_config().dtype)


def zeros_like(x: TensorLike) -> Tensor:
    x = as_tensor(x)
    return Tensor(np.zeros(x.shape, dtype=x.dtype))


def ones_like(x: TensorLike) -> Tensor:
    x = as_tensor(x)
    return Tensor(np.ones(x.shape, dtype=x.dtype))


def linspace(start: float, stop: float, num: int = 50) -> Tensor:
    """``num`` evenly spaced samples over the closed interval [start, stop]."""
    if num <= 1:
        return tensor([start][:num])
    delta = (stop - start) / (num - 1)
    return tensor([start + i * delta for i in range(num)])


def arange(start: float, stop: Optional[float] = None, step: float = 1) -> Tensor:
    if stop is None:
        start, stop = 0, start
    if step == 0:
        raise ValueError("arange step must be non-zero")
    values = []
    value = start
    while (step > 0 and value < stop) or (step < 0 and value > stop):
        values.append(value)
        value += step
    return tensor(values)


def tanh(x: TensorLike) -> Tensor:
    return ops.tanh(x)


def concat(tensors: Sequence[TensorLike], axis: int = 0) -> Tensor:
    """Join tensors along an existing axis."""
    return ops.concat(tensors, axis=axis)


def stack(tensors: Sequence[TensorLike], axis: int = 0) -> Tensor:
    """Join tensors along a new axis inserted at ``axis``."""
    if axis < 0:
        raise ValueError("stack does not support negative axes")
    expanded = [ops.expand_dims(t, axis) for t in tensors]
    if len(expanded) > 1 and not all_equal(*[e.shape for e in expanded]):
        raise ValueError("stack requires tensors of identical shape")
    return ops.concat(expanded, axis=axis)


def all_equal(*tensors: TensorLike) -> bool:
    if len(tensors) <= 1:
        raise ValueError("all_equal called with less than two tensors")
    first = as_tensor(tensors[0])
    return all(first.equals(t) for t in tensors[1:])
