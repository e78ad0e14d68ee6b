from dataclasses import dataclass
from typing import Callable, Dict, Iterator
import logging

from .errors import DuplicateOperationError, RegistrySealedError, UnknownOperationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Operation:
    op_id: str
    forward: Callable
    backward: Callable


class OperationRegistry:
    """Maps operation ids to their forward evaluator and backward rule.

    Populated at import time by :mod:`tapegrad.core.ops`, which seals the
    global instance when it is done. A sealed registry is read-only and
    lookups need no locking.
    """

    def __init__(self):
        self._operations: Dict[str, Operation] = {}
        self._sealed = False

    def register(self, op_id: str, forward: Callable, backward: Callable) -> Operation:
        if self._sealed:
            raise RegistrySealedError(op_id)
        if op_id in self._operations:
            raise DuplicateOperationError(op_id)
        operation = Operation(op_id, forward, backward)
        self._operations[op_id] = operation
        logger.debug("registered operation %r", op_id)
        return operation

    def lookup(self, op_id: str) -> Operation:
        try:
            return self._operations[op_id]
        except KeyError:
            raise UnknownOperationError(op_id) from None

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    def __contains__(self, op_id: object) -> bool:
        return op_id in self._operations

    def __len__(self) -> int:
        return len(self._operations)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._operations))


registry = OperationRegistry()


def register_operation(op_id: str, backward: Callable):
    def decorator(forward: Callable) -> Callable:
        registry.register(op_id, forward, backward)
        return forward
    return decorator
