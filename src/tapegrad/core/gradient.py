from typing import Dict, List, Optional, Sequence, Tuple
import logging
import numpy as np

from . import ops
from .errors import AutogradError, ShapeMismatchError, StaleTapeError
from .graph import GradientGraph
from .memory import Handle
from .registry import registry
from .tape import RecordingScope, Tape, TapeEntry
from .tensor import Tensor, as_tensor

logger = logging.getLogger(__name__)


class GradientAccumulator:
    """Per-handle gradient sums. A handle consumed twice gets both contributions."""

    def __init__(self):
        self._gradients: Dict[Handle, Tensor] = {}

    def accumulate(self, handle: Handle, gradient: Tensor) -> None:
        existing = self._gradients.get(handle)
        self._gradients[handle] = gradient if existing is None else ops.add(existing, gradient)

    def get(self, handle: Handle) -> Optional[Tensor]:
        return self._gradients.get(handle)

    def discard(self, handle: Handle) -> None:
        self._gradients.pop(handle, None)

    def __contains__(self, handle: object) -> bool:
        return handle in self._gradients


def unbroadcast(gradient: Tensor, shape: Tuple[int, ...]) -> Tensor:
    """Sum ``gradient`` over the axes a forward broadcast expanded from ``shape``."""
    shape = tuple(shape)
    if gradient.shape == shape:
        return gradient
    try:
        compatible = np.broadcast_shapes(shape, gradient.shape) == gradient.shape
    except ValueError:
        compatible = False
    if not compatible:
        raise ShapeMismatchError(
            f"gradient of shape {gradient.shape} cannot be reduced to input shape {shape}",
            expected=shape, actual=gradient.shape,
        )
    lead = gradient.ndim - len(shape)
    axes = tuple(range(lead)) + tuple(
        lead + i for i, dim in enumerate(shape) if dim == 1 and gradient.shape[lead + i] != 1
    )
    if axes:
        gradient = ops.sum(gradient, axis=axes, keepdims=True)
    return ops.reshape(gradient, shape)


def _seed(output: Tensor, seed) -> Tensor:
    if seed is None:
        return Tensor._wrap(np.ones(output.shape, dtype=output.dtype))
    seed = as_tensor(seed)
    if seed.shape != output.shape:
        raise ShapeMismatchError(
            f"seed cotangent of shape {seed.shape} does not match output shape {output.shape}",
            expected=output.shape, actual=seed.shape,
        )
    return seed


def _backward(entry: TapeEntry, grads_out: List[Optional[Tensor]]) -> Sequence[Optional[Tensor]]:
    if entry.released:
        raise StaleTapeError(
            f"entry #{entry.index} ({entry.op_id}) was released by an earlier backward pass; "
            "use a persistent GradientTape to differentiate the same recording twice"
        )
    operation = registry.lookup(entry.op_id)
    grads_in = operation.backward(entry.context, *grads_out)
    if not isinstance(grads_in, (tuple, list)):
        grads_in = (grads_in,)
    if len(grads_in) != len(entry.inputs):
        raise AutogradError(
            f"backward rule of '{entry.op_id}' returned {len(grads_in)} gradients "
            f"for {len(entry.inputs)} inputs"
        )
    return grads_in


def compute_gradients(tape: Tape, scope: RecordingScope, outputs: Sequence[Tensor],
                      seeds: Sequence, targets: Sequence[Tensor],
                      zero_fill: bool = False) -> List[Optional[Tensor]]:
    """Reverse-mode pass over the entries ``scope`` recorded on ``tape``.

    Returns one gradient per target, in order. A target with no path to any
    output gets ``None`` (or zeros shaped like it when ``zero_fill`` is set).
    """
    if len(seeds) != len(outputs):
        raise ValueError(f"expected {len(outputs)} seeds, got {len(seeds)}")

    output_handles = [t.handle for t in outputs]
    target_handles = [t.handle for t in targets]
    keep = set(target_handles)

    graph = GradientGraph(tape.entries_in(scope))
    entries = graph.relevant_entries(output_handles, target_handles)
    logger.debug("backward pass: %d of %d entries relevant", len(entries), len(graph.entries))

    accumulator = GradientAccumulator()
    for output, seed in zip(outputs, seeds):
        accumulator.accumulate(output.handle, _seed(output, seed))

    # Every consumer of a value was recorded after its producer, so walking
    # the log back to front sees each output's gradient fully accumulated.
    for entry in reversed(entries):
        grads_out = [accumulator.get(h) for h in entry.outputs]
        if all(g is None for g in grads_out):
            continue
        grads_in = _backward(entry, grads_out)
        for handle, shape, gradient in zip(entry.inputs, entry.input_shapes, grads_in):
            if gradient is None:
                continue
            accumulator.accumulate(handle, unbroadcast(as_tensor(gradient), shape))
        for handle in entry.outputs:
            if handle not in keep:
                accumulator.discard(handle)

    results: List[Optional[Tensor]] = []
    for target in targets:
        gradient = accumulator.get(target.handle)
        if gradient is None and zero_fill:
            logger.debug("target %s unreached, zero-filling", target.handle)
            gradient = Tensor._wrap(np.zeros(target.shape, dtype=target.dtype))
        results.append(gradient)
    return results
