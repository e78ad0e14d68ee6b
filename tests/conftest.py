import pytest
import numpy as np


@pytest.fixture
def rng():
    return np.random.default_rng(0)


@pytest.fixture
def numeric_grad():
    """Central finite differences of a scalar function of one float64 array."""
    def estimate(f, x, eps=1e-6):
        x = np.array(x, dtype=np.float64)
        result = np.zeros_like(x)
        for index in np.ndindex(x.shape):
            plus, minus = x.copy(), x.copy()
            plus[index] += eps
            minus[index] -= eps
            result[index] = (f(plus) - f(minus)) / (2 * eps)
        return result
    return estimate


@pytest.fixture
def fresh_config(monkeypatch):
    """Forget the loaded configuration so the next get_config() reloads it."""
    import tapegrad.config as config_module
    monkeypatch.setattr(config_module, "_config", None)
    for name in ("TAPEGRAD_CONFIG", "TAPEGRAD_DTYPE", "TAPEGRAD_ZERO_FILL", "TAPEGRAD_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return config_module


@pytest.fixture
def scratch_registry(monkeypatch):
    """Unsealed copy of the global registry, used by apply and the engine for one test."""
    import tapegrad.core.autograd as autograd_module
    import tapegrad.core.gradient as gradient_module
    from tapegrad.core.registry import OperationRegistry, registry

    scratch = OperationRegistry()
    for op_id in registry:
        operation = registry.lookup(op_id)
        scratch.register(op_id, operation.forward, operation.backward)
    monkeypatch.setattr(autograd_module, "registry", scratch)
    monkeypatch.setattr(gradient_module, "registry", scratch)
    return scratch
