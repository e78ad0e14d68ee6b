"""Registered primitives.

Forward evaluators work on raw numpy arrays. Backward rules work on Tensors
and only use the public functions of this module, so whatever they compute is
itself recorded when an enclosing scope is active: that is what makes
gradients of gradients work. Rules may return gradients shaped like the
broadcast result; the engine sums them back down to each input's shape.
"""
import builtins
from typing import Optional, Sequence, Tuple, Union
import numpy as np

from .autograd import apply
from .registry import register_operation, registry
from .tensor import Tensor, as_tensor

Axis = Optional[Union[int, Sequence[int]]]


def _normalize_axes(axis: Axis, ndim: int) -> Optional[Tuple[int, ...]]:
    if axis is None:
        return None
    axes = (axis,) if isinstance(axis, (int, np.integer)) else tuple(axis)
    normalized = []
    for ax in axes:
        if not -ndim <= ax < builtins.max(ndim, 1):
            raise ValueError(f"axis {ax} is out of bounds for a tensor of dimension {ndim}")
        normalized.append(int(ax) % builtins.max(ndim, 1))
    return tuple(sorted(set(normalized)))


def _constant_like(value: np.ndarray, like: Tensor) -> Tensor:
    return Tensor._wrap(np.asarray(value, dtype=like.dtype))


# Identity and gradient barriers

def _identity_grad(ctx, grad):
    return (grad,)

@register_operation('identity', _identity_grad)
def _identity(ctx, a):
    return a


def _stop_gradient_grad(ctx, grad):
    return (None,)

@register_operation('stop_gradient', _stop_gradient_grad)
def _stop_gradient(ctx, a):
    return a


# Arithmetic

def _neg_grad(ctx, grad):
    return (neg(grad),)

@register_operation('neg', _neg_grad)
def _neg(ctx, a):
    return np.negative(a)


def _add_grad(ctx, grad):
    return grad, grad

@register_operation('add', _add_grad)
def _add(ctx, a, b):
    return np.add(a, b)


def _sub_grad(ctx, grad):
    return grad, neg(grad)

@register_operation('sub', _sub_grad)
def _sub(ctx, a, b):
    return np.subtract(a, b)


def _mul_grad(ctx, grad):
    a, b = ctx.inputs
    return mul(grad, b), mul(grad, a)

@register_operation('mul', _mul_grad)
def _mul(ctx, a, b):
    return np.multiply(a, b)


def _div_grad(ctx, grad):
    a, b = ctx.inputs
    return div(grad, b), neg(div(mul(grad, a), mul(b, b)))

@register_operation('div', _div_grad)
def _div(ctx, a, b):
    return np.true_divide(a, b)


def _power_grad(ctx, grad):
    x, = ctx.inputs
    exponent = ctx.params['exponent']
    if exponent == 0:
        return (mul(grad, 0.0),)
    return (mul(grad, mul(exponent, power(x, exponent - 1))),)

@register_operation('power', _power_grad)
def _power(ctx, a, exponent):
    return np.power(a, exponent)


# Elementwise functions

def _exp_grad(ctx, grad):
    return (mul(grad, ctx.outputs[0]),)

@register_operation('exp', _exp_grad)
def _exp(ctx, a):
    return np.exp(a)


def _log_grad(ctx, grad):
    return (div(grad, ctx.inputs[0]),)

@register_operation('log', _log_grad)
def _log(ctx, a):
    return np.log(a)


def _sqrt_grad(ctx, grad):
    return (div(grad, mul(ctx.outputs[0], 2.0)),)

@register_operation('sqrt', _sqrt_grad)
def _sqrt(ctx, a):
    return np.sqrt(a)


def _sin_grad(ctx, grad):
    return (mul(grad, cos(ctx.inputs[0])),)

@register_operation('sin', _sin_grad)
def _sin(ctx, a):
    return np.sin(a)


def _cos_grad(ctx, grad):
    return (neg(mul(grad, sin(ctx.inputs[0]))),)

@register_operation('cos', _cos_grad)
def _cos(ctx, a):
    return np.cos(a)


def _tanh_grad(ctx, grad):
    out = ctx.outputs[0]
    return (mul(grad, sub(1.0, mul(out, out))),)

@register_operation('tanh', _tanh_grad)
def _tanh(ctx, a):
    return np.tanh(a)


def _sigmoid_grad(ctx, grad):
    out = ctx.outputs[0]
    return (mul(grad, mul(out, sub(1.0, out))),)

@register_operation('sigmoid', _sigmoid_grad)
def _sigmoid(ctx, a):
    # tanh form avoids overflow in exp for large negative inputs
    return 0.5 * (np.tanh(0.5 * a) + 1.0)


def _abs_grad(ctx, grad):
    return (mul(grad, sign(ctx.inputs[0])),)

@register_operation('abs', _abs_grad)
def _abs(ctx, a):
    return np.abs(a)


def _no_grad_unary(ctx, grad):
    return (None,)

@register_operation('sign', _no_grad_unary)
def _sign(ctx, a):
    return np.sign(a)


@register_operation('step', _no_grad_unary)
def _step(ctx, a):
    return (a > 0).astype(a.dtype)


def _relu_grad(ctx, grad):
    return (mul(grad, step(ctx.inputs[0])),)

@register_operation('relu', _relu_grad)
def _relu(ctx, a):
    return np.maximum(a, 0)


# Linear algebra and shape

def _swap_last(x: Tensor) -> Tensor:
    axes = list(range(x.ndim))
    axes[-1], axes[-2] = axes[-2], axes[-1]
    return transpose(x, axes)

def _matmul_grad(ctx, grad):
    a, b = ctx.inputs
    return matmul(grad, _swap_last(b)), matmul(_swap_last(a), grad)

@register_operation('matmul', _matmul_grad)
def _matmul(ctx, a, b):
    return np.matmul(a, b)


def _transpose_grad(ctx, grad):
    axes = ctx.params['axes']
    if axes is None:
        return (transpose(grad),)
    return (transpose(grad, tuple(int(i) for i in np.argsort(axes))),)

@register_operation('transpose', _transpose_grad)
def _transpose(ctx, a, axes):
    return np.transpose(a, axes)


def _reshape_grad(ctx, grad):
    return (reshape(grad, ctx.inputs[0].shape),)

@register_operation('reshape', _reshape_grad)
def _reshape(ctx, a, shape):
    return np.reshape(a, shape)


def _broadcast_to_grad(ctx, grad):
    return (grad,)

@register_operation('broadcast_to', _broadcast_to_grad)
def _broadcast_to(ctx, a, shape):
    return np.broadcast_to(a, shape)


# Reductions

def _kept_shape(shape: Tuple[int, ...], axes: Optional[Tuple[int, ...]]) -> Tuple[int, ...]:
    if axes is None:
        return (1,) * len(shape)
    return tuple(1 if i in axes else dim for i, dim in enumerate(shape))

def _sum_grad(ctx, grad):
    x, = ctx.inputs
    axis, keepdims = ctx.params['axis'], ctx.params['keepdims']
    if axis is not None and not keepdims:
        grad = reshape(grad, _kept_shape(x.shape, axis))
    return (broadcast_to(grad, x.shape),)

@register_operation('sum', _sum_grad)
def _sum(ctx, a, axis, keepdims):
    return np.sum(a, axis=axis, keepdims=keepdims)


def _max_grad(ctx, grad):
    x, = ctx.inputs
    axis, keepdims = ctx.params['axis'], ctx.params['keepdims']
    if axis is not None and not keepdims:
        grad = reshape(grad, _kept_shape(x.shape, (axis,)))
    # Ties share the gradient evenly
    share = _constant_like(ctx.saved['share'], grad)
    return (mul(grad, share),)

@register_operation('max', _max_grad)
def _max(ctx, a, axis, keepdims):
    out = np.max(a, axis=axis, keepdims=True)
    mask = (a == out).astype(np.result_type(a, np.float32))
    ctx.save(share=mask / np.sum(mask, axis=axis, keepdims=True))
    return out if keepdims else np.squeeze(out, axis=axis)


@register_operation('argmax', _no_grad_unary)
def _argmax(ctx, a, axis):
    return np.argmax(a, axis=axis)


def _no_grad_binary(ctx, grad):
    return None, None

@register_operation('equal', _no_grad_binary)
def _equal(ctx, a, b):
    return np.equal(a, b).astype(np.result_type(a, b, np.float32))


def _where_grad(ctx, grad):
    condition = ctx.inputs[0]
    mask = _constant_like(condition.data.astype(bool), grad)
    return None, mul(grad, mask), mul(grad, sub(1.0, mask))

@register_operation('where', _where_grad)
def _where(ctx, condition, a, b):
    return np.where(condition.astype(bool), a, b)


# Indexing, joining and splitting

def _has_integer_array(index) -> bool:
    parts = index if isinstance(index, tuple) else (index,)
    for part in parts:
        if isinstance(part, (list, np.ndarray)) and np.asarray(part).dtype.kind in 'iu':
            return True
    return False

def _getitem_grad(ctx, grad):
    x, = ctx.inputs
    return (index_add(grad, x.shape, ctx.params['index']),)

@register_operation('getitem', _getitem_grad)
def _getitem(ctx, a, index):
    return a[index]


def _index_add_grad(ctx, grad):
    return (getitem(grad, ctx.params['index']),)

@register_operation('index_add', _index_add_grad)
def _index_add(ctx, values, shape, index):
    out = np.zeros(shape, dtype=values.dtype)
    if _has_integer_array(index):
        # Integer arrays may repeat positions; those must accumulate
        np.add.at(out, index, values)
    else:
        out[index] += values
    return out


def _concat_grad(ctx, grad):
    axis = ctx.params['axis']
    offsets = np.cumsum([t.shape[axis] for t in ctx.inputs])[:-1]
    return split(grad, [int(o) for o in offsets], axis=axis)

@register_operation('concat', _concat_grad)
def _concat(ctx, *arrays, axis):
    return np.concatenate(arrays, axis=axis)


def _split_grad(ctx, *grads):
    pieces = [
        g if g is not None else _constant_like(np.zeros(out.shape), out)
        for g, out in zip(grads, ctx.outputs)
    ]
    return (concat(pieces, axis=ctx.params['axis']),)

@register_operation('split', _split_grad)
def _split(ctx, a, indices_or_sections, axis):
    return tuple(np.split(a, indices_or_sections, axis=axis))


# Public functions

def identity(x) -> Tensor:
    return apply('identity', x)

def stop_gradient(x) -> Tensor:
    return apply('stop_gradient', x)

def neg(x) -> Tensor:
    return apply('neg', x)

def add(a, b) -> Tensor:
    return apply('add', a, b)

def sub(a, b) -> Tensor:
    return apply('sub', a, b)

def mul(a, b) -> Tensor:
    return apply('mul', a, b)

def div(a, b) -> Tensor:
    return apply('div', a, b)

def power(base, exponent) -> Tensor:
    if isinstance(exponent, (Tensor, np.ndarray, list)):
        # Tensor exponents go through exp/log, so the base must be positive
        return exp(mul(exponent, log(base)))
    return apply('power', base, exponent=float(exponent))

def exp(x) -> Tensor:
    return apply('exp', x)

def log(x) -> Tensor:
    return apply('log', x)

def sqrt(x) -> Tensor:
    return apply('sqrt', x)

def sin(x) -> Tensor:
    return apply('sin', x)

def cos(x) -> Tensor:
    return apply('cos', x)

def tanh(x) -> Tensor:
    return apply('tanh', x)

def sigmoid(x) -> Tensor:
    return apply('sigmoid', x)

def abs(x) -> Tensor:
    return apply('abs', x)

def sign(x) -> Tensor:
    return apply('sign', x)

def step(x) -> Tensor:
    return apply('step', x)

def relu(x) -> Tensor:
    return apply('relu', x)


def matmul(a, b) -> Tensor:
    """Matrix product with numpy's rules for 1-D operands."""
    a, b = as_tensor(a), as_tensor(b)
    if a.ndim == 0 or b.ndim == 0:
        raise ValueError("matmul does not accept 0-d operands")
    vector_a, vector_b = a.ndim == 1, b.ndim == 1
    if vector_a:
        a = reshape(a, (1, a.shape[0]))
    if vector_b:
        b = reshape(b, (b.shape[0], 1))
    out = apply('matmul', a, b)
    if vector_a and vector_b:
        return reshape(out, ())
    if vector_a:
        return reshape(out, out.shape[:-2] + out.shape[-1:])
    if vector_b:
        return reshape(out, out.shape[:-1])
    return out


def transpose(x, axes: Optional[Sequence[int]] = None) -> Tensor:
    return apply('transpose', x, axes=tuple(int(i) for i in axes) if axes is not None else None)

def reshape(x, shape: Sequence[int]) -> Tensor:
    shape = (int(shape),) if isinstance(shape, (int, np.integer)) else tuple(int(d) for d in shape)
    return apply('reshape', x, shape=shape)

def expand_dims(x, axis: int) -> Tensor:
    x = as_tensor(x)
    if not -x.ndim - 1 <= axis <= x.ndim:
        raise ValueError(f"axis {axis} is out of bounds for a tensor of dimension {x.ndim}")
    if axis < 0:
        axis += x.ndim + 1
    shape = list(x.shape)
    shape.insert(axis, 1)
    return reshape(x, shape)

def squeeze(x, axis: Optional[int] = None) -> Tensor:
    x = as_tensor(x)
    if axis is None:
        return reshape(x, [d for d in x.shape if d != 1])
    axis, = _normalize_axes(axis, x.ndim)
    if x.shape[axis] != 1:
        raise ValueError(f"cannot squeeze axis {axis} of size {x.shape[axis]}")
    return reshape(x, x.shape[:axis] + x.shape[axis + 1:])

def broadcast_to(x, shape: Sequence[int]) -> Tensor:
    return apply('broadcast_to', x, shape=tuple(int(d) for d in shape))


def sum(x, axis: Axis = None, keepdims: bool = False) -> Tensor:
    x = as_tensor(x)
    return apply('sum', x, axis=_normalize_axes(axis, x.ndim), keepdims=keepdims)

def mean(x, axis: Axis = None, keepdims: bool = False) -> Tensor:
    x = as_tensor(x)
    axes = _normalize_axes(axis, x.ndim)
    count = x.size if axes is None else int(np.prod([x.shape[i] for i in axes]))
    return div(sum(x, axes, keepdims), float(count))

def max(x, axis: Optional[int] = None, keepdims: bool = False) -> Tensor:
    x = as_tensor(x)
    if axis is not None:
        axis, = _normalize_axes(axis, x.ndim)
    return apply('max', x, axis=axis, keepdims=keepdims)

def argmax(x, axis: Optional[int] = None) -> Tensor:
    return apply('argmax', x, axis=axis)

def equal(a, b) -> Tensor:
    return apply('equal', a, b)

def where(condition, a, b) -> Tensor:
    return apply('where', condition, a, b)


def _index_array(t: Tensor) -> np.ndarray:
    data = t.data
    # Tensors built from Python ints get the float default dtype
    if data.dtype.kind == 'f' and np.all(np.mod(data, 1) == 0):
        return data.astype(np.intp)
    return data

def _plain_index(index):
    if isinstance(index, Tensor):
        return _index_array(index)
    if isinstance(index, tuple):
        return tuple(_index_array(part) if isinstance(part, Tensor) else part for part in index)
    return index

def getitem(x, index) -> Tensor:
    return apply('getitem', x, index=_plain_index(index))

def index_add(values, shape: Sequence[int], index) -> Tensor:
    """Scatter ``values`` into zeros of ``shape`` at ``index``, summing repeats."""
    return apply('index_add', values, shape=tuple(shape), index=_plain_index(index))

def concat(tensors: Sequence, axis: int = 0) -> Tensor:
    tensors = [as_tensor(t) for t in tensors]
    if not tensors:
        raise ValueError("concat needs at least one tensor")
    axis, = _normalize_axes(axis, tensors[0].ndim)
    return apply('concat', *tensors, axis=axis)

def split(x, indices_or_sections: Union[int, Sequence[int]], axis: int = 0) -> Tuple[Tensor, ...]:
    x = as_tensor(x)
    axis, = _normalize_axes(axis, x.ndim)
    if not isinstance(indices_or_sections, (int, np.integer)):
        indices_or_sections = [int(i) for i in indices_or_sections]
    out = apply('split', x, indices_or_sections=indices_or_sections, axis=axis)
    return out if isinstance(out, tuple) else (out,)


# Every primitive is registered; the dispatch table is read-only from here on
registry.seal()
