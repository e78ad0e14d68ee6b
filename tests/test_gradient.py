import pytest
import numpy as np

from tapegrad import Tensor, grad, config_override
from tapegrad.core.autograd import apply, recording_session
from tapegrad.core.errors import AutogradError, ShapeMismatchError, StaleTapeError
from tapegrad.core.gradient import GradientAccumulator, compute_gradients, unbroadcast


def _run(f, *leaves, seeds=None, zero_fill=False):
    with recording_session() as tape:
        with tape.scope() as scope:
            out = f(*leaves)
        outputs = out if isinstance(out, (tuple, list)) else [out]
        seeds = seeds if seeds is not None else [None] * len(outputs)
        return compute_gradients(tape, scope, outputs, seeds, list(leaves), zero_fill)


def test_accumulator_sums_contributions():
    acc = GradientAccumulator()
    x = Tensor([1.0, 2.0])
    acc.accumulate(x.handle, Tensor([1.0, 1.0]))
    acc.accumulate(x.handle, Tensor([0.5, 2.0]))
    np.testing.assert_allclose(acc.get(x.handle).numpy(), [1.5, 3.0])
    assert x.handle in acc
    acc.discard(x.handle)
    assert acc.get(x.handle) is None


@pytest.mark.parametrize('combine', [
    lambda a, b: a + b,
    lambda a, b: a * b,
    lambda a, b: a - b,
    lambda a, b: a / b,
])
def test_diamond_accumulation(combine):
    x = Tensor(np.array([0.3, 1.2, 2.5]))

    def f(x):
        return combine(x.sin(), x.exp()).sum()

    dx, = _run(f, x)

    s, e = np.sin(x.data), np.exp(x.data)
    ds, de = np.cos(x.data), np.exp(x.data)
    eps = 1e-6
    left = combine(Tensor(s + eps * ds), Tensor(e + eps * de)).numpy()
    right = combine(Tensor(s - eps * ds), Tensor(e - eps * de)).numpy()
    np.testing.assert_allclose(dx.numpy(), (left - right) / (2 * eps), rtol=1e-5)


def test_diamond_on_reused_leaf():
    x = Tensor(np.array([2.0]))
    dx, = _run(lambda x: (x * 3.0 + x * x).sum(), x)
    # d/dx (3x + x^2) = 3 + 2x
    np.testing.assert_allclose(dx.numpy(), [7.0])


def test_reverse_order_chain_rule():
    x = Tensor(np.array([0.1, 0.5, 0.9]))
    dx, = _run(lambda x: (x * 2.0).sin().exp().sum(), x)
    v = x.data
    expected = np.exp(np.sin(2 * v)) * np.cos(2 * v) * 2
    np.testing.assert_allclose(dx.numpy(), expected, rtol=1e-10)


def test_broadcast_reduction_restores_input_shape(rng):
    x = Tensor(rng.standard_normal((3, 1)))
    w = Tensor(rng.standard_normal((3, 4)))
    dx, dw = _run(lambda x, w: (x * w).sum(), x, w)
    assert dx.shape == (3, 1)
    np.testing.assert_allclose(dx.numpy(), w.data.sum(axis=1, keepdims=True))
    assert dw.shape == (3, 4)
    np.testing.assert_allclose(dw.numpy(), np.broadcast_to(x.data, (3, 4)))


def test_broadcast_reduction_of_leading_axes():
    b = Tensor(np.array([1.0, 2.0]))
    m = Tensor(np.ones((2, 3, 2)))
    db, = _run(lambda b: (m + b).sum(), b)
    assert db.shape == (2,)
    np.testing.assert_allclose(db.numpy(), [6.0, 6.0])


def test_unreachable_target_is_none():
    x = Tensor(np.array([1.0, 2.0]))
    unused = Tensor(np.array([5.0]))
    dx, du = _run(lambda x, u: (x * x).sum(), x, unused)
    np.testing.assert_allclose(dx.numpy(), [2.0, 4.0])
    assert du is None


def test_unreachable_target_zero_fill():
    x = Tensor(np.array([1.0, 2.0]))
    unused = Tensor(np.array([[5.0, 6.0]]))
    _, du = _run(lambda x, u: (x * x).sum(), x, unused, zero_fill=True)
    assert du.shape == (1, 2)
    np.testing.assert_array_equal(du.numpy(), np.zeros((1, 2)))


def test_explicit_seed():
    x = Tensor(np.array([1.0, 2.0, 3.0]))
    dx, = _run(lambda x: x * x, x, seeds=[Tensor(np.array([1.0, 0.0, 2.0]))])
    np.testing.assert_allclose(dx.numpy(), [2.0, 0.0, 12.0])


def test_seed_shape_mismatch():
    x = Tensor(np.array([1.0, 2.0, 3.0]))
    with pytest.raises(ShapeMismatchError) as excinfo:
        _run(lambda x: x * x, x, seeds=[Tensor(np.ones((3, 1)))])
    assert excinfo.value.expected == (3,)
    assert excinfo.value.actual == (3, 1)


def test_unbroadcast_rejects_incompatible_shapes():
    with pytest.raises(ShapeMismatchError):
        unbroadcast(Tensor(np.ones((3, 4))), (2, 4))
    with pytest.raises(ShapeMismatchError):
        unbroadcast(Tensor(np.ones((4,))), (3, 4))


def test_unbroadcast_sums_expanded_axes():
    g = Tensor(np.arange(24, dtype=np.float64).reshape(2, 3, 4))
    reduced = unbroadcast(g, (3, 1))
    np.testing.assert_allclose(reduced.numpy(), g.data.sum(axis=(0, 2)).reshape(3, 1))


def _bad_forward(ctx, a, b):
    return a + b


def _bad_backward(ctx, grad):
    return (grad,)


def _wide_backward(ctx, grad):
    return (Tensor(np.ones((5, 5))),)


def test_backward_rule_with_wrong_arity(scratch_registry):
    scratch_registry.register('bad_arity', _bad_forward, _bad_backward)
    x = Tensor(np.ones(2))
    with pytest.raises(AutogradError):
        _run(lambda x: apply('bad_arity', x, x).sum(), x)


def test_backward_rule_with_unreducible_shape(scratch_registry):
    scratch_registry.register('bad_shape', lambda ctx, a: a, _wide_backward)
    x = Tensor(np.ones(2))
    with pytest.raises(ShapeMismatchError):
        _run(lambda x: apply('bad_shape', x).sum(), x)


def test_released_entries_are_stale():
    x = Tensor(np.array([1.0, 2.0]))
    with recording_session() as tape:
        with tape.scope() as scope:
            y = (x * x).sum()
    # the session released its entries on exit
    with pytest.raises(StaleTapeError):
        compute_gradients(tape, scope, [y], [None], [x])


def test_only_relevant_entries_are_differentiated(scratch_registry):
    calls = []

    def counting_backward(ctx, grad):
        calls.append(ctx.op_id)
        return (grad,)

    scratch_registry.register('counting', lambda ctx, a: a, counting_backward)

    x = Tensor(np.array([1.0]))
    other = Tensor(np.array([2.0]))

    def f(x, other):
        apply('counting', other)
        return (apply('counting', x) * 2.0).sum()

    dx, dother = _run(f, x, other)
    np.testing.assert_allclose(dx.numpy(), [2.0])
    assert dother is None
    assert calls == ['counting']


def test_zero_fill_default_comes_from_config():
    with config_override(zero_fill=True):
        dy = grad(lambda x, y: (x * x).sum(), argnums=1)(Tensor([1.0]), Tensor([3.0, 4.0]))
    np.testing.assert_array_equal(dy.numpy(), [0.0, 0.0])
