from contextlib import contextmanager
from typing import Iterator, Optional, Tuple, Union
import logging
import threading

from .context import Context
from .registry import registry
from .tape import Tape
from .tensor import Tensor, as_tensor

logger = logging.getLogger(__name__)

# Each thread owns the tape of the differentiation session running on it
_local = threading.local()


def current_tape() -> Optional[Tape]:
    return getattr(_local, 'tape', None)


def _set_tape(tape: Optional[Tape]) -> None:
    _local.tape = tape


def is_recording() -> bool:
    tape = current_tape()
    return tape is not None and tape.is_recording()


@contextmanager
def recording_session() -> Iterator[Tape]:
    """Yield the thread's tape, installing a fresh one for a top-level session.

    A nested session (a differentiation call made while another one is
    running on this thread) shares the enclosing tape. The session that
    installed the tape uninstalls it and releases its entries on exit, on the
    error path as well.
    """
    tape = current_tape()
    if tape is not None:
        yield tape
        return

    tape = Tape()
    _set_tape(tape)
    logger.debug("installed tape %x on thread %s", id(tape), threading.current_thread().name)
    try:
        yield tape
    finally:
        _set_tape(None)
        tape.release()


@contextmanager
def no_grad() -> Iterator[None]:
    """Run the block without recording operations on the current tape."""
    tape = current_tape()
    if tape is None:
        yield
        return
    with tape.pause():
        yield


def apply(op_id: str, *inputs, **params) -> Union[Tensor, Tuple[Tensor, ...]]:
    operation = registry.lookup(op_id)
    tensors = tuple(as_tensor(x) for x in inputs)
    ctx = Context(op_id, params=params, inputs=tensors)

    result = operation.forward(ctx, *(t.data for t in tensors), **params)
    multi = isinstance(result, (tuple, list))
    outputs = tuple(Tensor._wrap(r) for r in (result if multi else (result,)))

    tape = current_tape()
    if tape is not None and tape.is_recording():
        ctx.outputs = outputs
        tape.record(op_id, tensors, outputs, ctx)

    return outputs if multi else outputs[0]
