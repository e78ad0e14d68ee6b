from .tensor import Tensor, as_tensor
from .memory import Handle, TensorArena, arena
from .context import Context
from .registry import Operation, OperationRegistry, registry, register_operation
from .tape import RecordingScope, Tape, TapeEntry
from .autograd import apply, current_tape, is_recording, no_grad, recording_session
from .gradient import GradientAccumulator, compute_gradients, unbroadcast
from .backprop import GradientTape, grad, grad_and_value, multigrad, multigrad_and_value
from .errors import (
    AutogradError,
    DuplicateOperationError,
    NonScalarOutputError,
    RegistrySealedError,
    ShapeMismatchError,
    StaleTapeError,
    UnknownOperationError,
)
from . import ops

__all__ = [
    "Tensor", "as_tensor",
    "Handle", "TensorArena", "arena",
    "Context",
    "Operation", "OperationRegistry", "registry", "register_operation",
    "RecordingScope", "Tape", "TapeEntry",
    "apply", "current_tape", "is_recording", "no_grad", "recording_session",
    "GradientAccumulator", "compute_gradients", "unbroadcast",
    "GradientTape", "grad", "grad_and_value", "multigrad", "multigrad_and_value",
    "AutogradError", "DuplicateOperationError", "NonScalarOutputError",
    "RegistrySealedError", "ShapeMismatchError", "StaleTapeError", "UnknownOperationError",
    "ops",
]
