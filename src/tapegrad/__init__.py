"""tapegrad: tensors with tape-based reverse-mode automatic differentiation."""
import logging

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from tapegrad.config import Config, config_override, get_config, load_config, set_config

from tapegrad.core import (
    Tensor,
    as_tensor,
    grad,
    grad_and_value,
    multigrad,
    multigrad_and_value,
    GradientTape,
    no_grad,
    registry,
    register_operation,
    AutogradError,
    DuplicateOperationError,
    NonScalarOutputError,
    RegistrySealedError,
    ShapeMismatchError,
    StaleTapeError,
    UnknownOperationError,
)
from tapegrad.core.ops import (
    exp, log, sqrt, sin, cos, sigmoid, relu, matmul, reshape, transpose,
    expand_dims, squeeze, where, split,
)

from tapegrad.api import (
    tensor, zeros, ones, zeros_like, ones_like,
    linspace, arange, tanh, concat, stack, all_equal,
)

__all__ = [
    "Config", "config_override", "get_config", "load_config", "set_config",
    "Tensor", "as_tensor",
    "grad", "grad_and_value", "multigrad", "multigrad_and_value",
    "GradientTape", "no_grad", "registry", "register_operation",
    "AutogradError", "DuplicateOperationError", "NonScalarOutputError",
    "RegistrySealedError", "ShapeMismatchError", "StaleTapeError", "UnknownOperationError",
    "exp", "log", "sqrt", "sin", "cos", "sigmoid", "relu", "matmul", "reshape", "transpose",
    "expand_dims", "squeeze", "where", "split",
    "tensor", "zeros", "ones", "zeros_like", "ones_like",
    "linspace", "arange", "tanh", "concat", "stack", "all_equal",
]
