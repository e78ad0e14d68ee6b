from collections import deque
from typing import Any, Deque, Dict, List, NamedTuple, Optional
import threading
import weakref


class Handle(NamedTuple):
    """Generation-stamped slot index identifying one tensor value."""
    index: int
    generation: int


class TensorArena:
    def __init__(self):
        self._lock = threading.Lock()
        self._generations: List[int] = []
        self._free: List[int] = []
        self._refs: Dict[int, weakref.ref] = {}
        # Filled from finalizers, which may run in the middle of allocate()
        self._pending: Deque[Handle] = deque()

    def allocate(self, tensor: Any) -> Handle:
        with self._lock:
            self._drain()
            if self._free:
                index = self._free.pop()
                self._generations[index] += 1
            else:
                index = len(self._generations)
                self._generations.append(0)
            handle = Handle(index, self._generations[index])
            self._refs[index] = weakref.ref(tensor)
        finalizer = weakref.finalize(tensor, self._pending.append, handle)
        finalizer.atexit = False
        return handle

    def _drain(self) -> None:
        while self._pending:
            handle = self._pending.popleft()
            if self._generations[handle.index] != handle.generation:
                continue
            self._refs.pop(handle.index, None)
            self._free.append(handle.index)

    def resolve(self, handle: Handle) -> Optional[Any]:
        """Return the tensor behind ``handle`` or None if it has been reclaimed."""
        if handle.index >= len(self._generations):
            return None
        if self._generations[handle.index] != handle.generation:
            return None
        ref = self._refs.get(handle.index)
        return ref() if ref is not None else None

    def is_live(self, handle: Handle) -> bool:
        return self.resolve(handle) is not None

    def live_count(self) -> int:
        with self._lock:
            self._drain()
            refs = list(self._refs.values())
        return sum(1 for ref in refs if ref() is not None)

    def memory_usage(self) -> int:
        with self._lock:
            self._drain()
            refs = list(self._refs.values())
        total = 0
        for ref in refs:
            tensor = ref()
            if tensor is not None:
                total += tensor.data.nbytes
        return total


arena = TensorArena()
