from dataclasses import dataclass, field
from typing import Any, Dict, Tuple


@dataclass(eq=False)
class Context:
    """Saved state handed to an operation's backward rule.

    ``inputs`` and ``outputs`` hold the Tensors the forward evaluation consumed
    and produced. ``params`` keeps the non-tensor arguments (axes, shapes,
    exponents, indices). Forward evaluators may stash extra arrays with
    :meth:`save`.
    """

    op_id: str
    params: Dict[str, Any] = field(default_factory=dict)
    inputs: Tuple[Any, ...] = ()
    outputs: Tuple[Any, ...] = ()
    saved: Dict[str, Any] = field(default_factory=dict)
    released: bool = False

    def save(self, **values: Any) -> None:
        self.saved.update(values)

    def release(self) -> None:
        self.inputs = ()
        self.outputs = ()
        self.saved.clear()
        self.released = True
