"""Differentiation entry points.

``grad`` and ``multigrad`` turn a function of tensors into a function that
returns gradients instead of values::

    f = lambda x: (x * x).sum()
    grad(f)(tensor([1., 2., 3.]))          # -> Tensor([2., 4., 6.])

Calls nest: the gradient function of a gradient function computes second
derivatives, because the inner backward pass is itself recorded on the tape
of the outer call.
"""
from contextlib import ExitStack
from functools import wraps
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union
import logging

from tapegrad.config import get_config
from . import ops
from .autograd import current_tape, recording_session, _set_tape
from .errors import NonScalarOutputError, StaleTapeError
from .gradient import compute_gradients
from .tape import RecordingScope, Tape
from .tensor import Tensor, as_tensor

logger = logging.getLogger(__name__)

ArgNums = Union[int, Sequence[int]]


def _normalize_argnums(argnums: ArgNums) -> Tuple[Tuple[int, ...], bool]:
    if isinstance(argnums, int):
        return (argnums,), True
    argnums = tuple(argnums)
    if not argnums:
        raise ValueError("argnums must name at least one argument")
    if len(set(argnums)) != len(argnums):
        raise ValueError(f"argnums contains duplicates: {argnums}")
    return argnums, False


def _resolve_zero_fill(zero_fill: Optional[bool]) -> bool:
    return get_config().zero_fill if zero_fill is None else zero_fill


def _check_output(value: Any, what: str) -> Tensor:
    if not isinstance(value, Tensor):
        raise TypeError(f"{what} must be a Tensor, got {type(value).__name__}")
    return value


def _differentiate(f: Callable, args: tuple, kwargs: dict, argnums: Tuple[int, ...],
                   select: Callable, zero_fill: bool) -> Tuple[List[Optional[Tensor]], Any]:
    args = list(args)
    for i in argnums:
        if not -len(args) <= i < len(args):
            raise ValueError(f"argnum {i} is out of range for a call with {len(args)} positional arguments")

    with recording_session() as tape:
        # A fresh identity per target; an enclosing scope still sees the
        # link back to the caller's tensor through the recorded identity op.
        targets = []
        for i in argnums:
            args[i] = ops.identity(args[i])
            targets.append(args[i])

        with tape.scope() as scope:
            value = f(*args, **kwargs)

        outputs, seeds = select(value)
        gradients = compute_gradients(tape, scope, outputs, seeds, targets, zero_fill)
    return gradients, value


def grad_and_value(f: Callable, argnums: ArgNums = 0, zero_fill: Optional[bool] = None) -> Callable:
    argnums, single = _normalize_argnums(argnums)

    def select(value):
        output = _check_output(value, "the differentiated function's result")
        if output.size != 1:
            raise NonScalarOutputError(output.shape)
        return [output], [None]

    @wraps(f)
    def gradfn(*args, **kwargs):
        gradients, value = _differentiate(
            f, args, kwargs, argnums, select, _resolve_zero_fill(zero_fill))
        return (gradients[0] if single else tuple(gradients)), value
    return gradfn


def grad(f: Callable, argnums: ArgNums = 0, zero_fill: Optional[bool] = None) -> Callable:
    """Gradient of a scalar-valued ``f`` with respect to the arguments in ``argnums``.

    Returns a single gradient for an int ``argnums`` and a tuple for a
    sequence. Arguments never used to compute the result get ``None``
    unless ``zero_fill`` asks for zeros.
    """
    gradfn = grad_and_value(f, argnums, zero_fill)

    @wraps(f)
    def wrapper(*args, **kwargs):
        return gradfn(*args, **kwargs)[0]
    return wrapper


def multigrad_and_value(f: Callable, output_indices: ArgNums, argnums: ArgNums = 0,
                        zero_fill: Optional[bool] = None) -> Callable:
    output_indices, _ = _normalize_argnums(output_indices)
    argnums, _ = _normalize_argnums(argnums)

    @wraps(f)
    def gradfn(*args, cotangents: Sequence = None, **kwargs):
        if cotangents is None or len(cotangents) != len(output_indices):
            raise TypeError(
                f"multigrad needs one cotangent per differentiated output "
                f"({len(output_indices)}), got {0 if cotangents is None else len(cotangents)}"
            )

        def select(value):
            values = (value,) if isinstance(value, Tensor) else tuple(value)
            outputs = []
            for i in output_indices:
                if not -len(values) <= i < len(values):
                    raise ValueError(f"output index {i} is out of range for {len(values)} outputs")
                outputs.append(_check_output(values[i], f"output {i}"))
            return outputs, list(cotangents)

        gradients, value = _differentiate(
            f, args, kwargs, argnums, select, _resolve_zero_fill(zero_fill))
        return tuple(gradients), value
    return gradfn


def multigrad(f: Callable, output_indices: ArgNums, argnums: ArgNums = 0,
              zero_fill: Optional[bool] = None) -> Callable:
    """Vector-Jacobian product of several outputs of ``f`` at once.

    The returned function takes ``f``'s arguments plus a keyword-only
    ``cotangents`` sequence holding one seed per selected output, each shaped
    exactly like that output. The result always is a tuple with one gradient
    per entry of ``argnums``.
    """
    gradfn = multigrad_and_value(f, output_indices, argnums, zero_fill)

    @wraps(f)
    def wrapper(*args, cotangents: Sequence = None, **kwargs):
        return gradfn(*args, cotangents=cotangents, **kwargs)[0]
    return wrapper


class GradientTape:
    """Context manager recording everything executed inside the block.

    Example::

        with GradientTape() as tape:
            x = tape.watch([1., 2.])
            y = (x * x).sum()
        dx, = tape.gradient(y, [x])

    A non-persistent tape releases its recording after the first call to
    :meth:`gradient`; calling it again raises :class:`StaleTapeError`.
    """

    def __init__(self, persistent: bool = False):
        self.persistent = persistent
        self._tape: Optional[Tape] = None
        self._scope: Optional[RecordingScope] = None
        self._owns_tape = False
        self._stack: Optional[ExitStack] = None
        self._consumed = False

    def __enter__(self) -> 'GradientTape':
        if self._stack is not None:
            raise RuntimeError("GradientTape is already recording")
        tape = current_tape()
        self._owns_tape = tape is None
        if tape is None:
            tape = Tape()
            _set_tape(tape)
        self._tape = tape
        self._stack = ExitStack()
        self._scope = self._stack.enter_context(tape.scope())
        return self

    def __exit__(self, *exc_info) -> None:
        try:
            self._stack.close()
        finally:
            self._stack = None
            if self._owns_tape:
                _set_tape(None)

    def watch(self, value: Any) -> Tensor:
        """Return ``value`` as a fresh leaf tensor to use as a gradient source."""
        return ops.identity(as_tensor(value))

    def gradient(self, target, sources, output_gradients=None, zero_fill: Optional[bool] = None):
        if self._tape is None:
            raise RuntimeError("GradientTape.gradient called before anything was recorded")
        if self._consumed and not self.persistent:
            raise StaleTapeError(
                "a non-persistent GradientTape can only compute gradients once; "
                "create it with persistent=True to reuse the recording"
            )

        single_target = isinstance(target, Tensor)
        outputs = [target] if single_target else list(target)
        if output_gradients is None:
            seeds = [None] * len(outputs)
            for output in outputs:
                if output.size != 1:
                    raise NonScalarOutputError(output.shape)
        else:
            seeds = [output_gradients] if single_target else list(output_gradients)

        single_source = isinstance(sources, Tensor)
        targets = [sources] if single_source else list(sources)

        gradients = compute_gradients(self._tape, self._scope, outputs, seeds, targets,
                                      _resolve_zero_fill(zero_fill))
        if not self.persistent:
            self._consumed = True
            if self._stack is None:
                self._tape.release(self._scope.marker)
        return gradients[0] if single_source else gradients

    def release(self) -> None:
        """Drop the saved tensors of a persistent tape's recording."""
        if self._tape is not None and self._stack is None:
            self._tape.release(self._scope.marker)
