from typing import Optional, Tuple


class AutogradError(Exception):
    """Base class for every error raised by the differentiation core."""


class UnknownOperationError(AutogradError, LookupError):
    def __init__(self, op_id: str):
        super().__init__(f"No operation registered under '{op_id}'")
        self.op_id = op_id


class DuplicateOperationError(AutogradError, ValueError):
    def __init__(self, op_id: str):
        super().__init__(f"Operation '{op_id}' is already registered")
        self.op_id = op_id


class RegistrySealedError(AutogradError, RuntimeError):
    def __init__(self, op_id: str):
        super().__init__(f"Cannot register '{op_id}': the operation registry is sealed")
        self.op_id = op_id


class ShapeMismatchError(AutogradError, ValueError):
    """Raised when a gradient cannot be brought to the shape it must have.

    Covers caller-supplied seed cotangents whose shape differs from the
    output they seed, and backward rules that return gradients which are not
    broadcast-reducible to the shape of the corresponding forward input.
    """

    def __init__(self, message: str, expected: Optional[Tuple[int, ...]] = None,
                 actual: Optional[Tuple[int, ...]] = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class NonScalarOutputError(AutogradError, ValueError):
    def __init__(self, shape: Tuple[int, ...]):
        super().__init__(
            f"grad requires a scalar-shaped output but the function returned shape {shape}; "
            "supply explicit cotangents (multigrad / GradientTape.gradient) instead"
        )
        self.shape = shape


class StaleTapeError(AutogradError, RuntimeError):
    """Raised on a backward pass over entries whose saved tensors were released."""
