import pytest
import numpy as np

from tapegrad import Tensor, no_grad
from tapegrad.core.autograd import _set_tape, current_tape, is_recording, recording_session
from tapegrad.core.tape import Tape


def test_nothing_recorded_without_scope():
    with recording_session() as tape:
        x = Tensor([1.0, 2.0])
        _ = x * x
        assert len(tape) == 0
        assert not tape.is_recording()


def test_record_and_entries_since():
    with recording_session() as tape:
        x = Tensor([1.0, 2.0])
        with tape.scope() as scope:
            y = x * x
            z = y + 1.0
        entries = list(tape.entries_since(scope.marker))
    assert [e.op_id for e in entries] == ['mul', 'add']
    assert entries[0].inputs == (x.handle, x.handle)
    assert entries[0].outputs == (y.handle,)
    assert entries[1].outputs == (z.handle,)
    assert entries[1].input_shapes == ((2,), ())


def test_nested_scopes_share_entries():
    with recording_session() as tape:
        x = Tensor(3.0)
        with tape.scope() as outer:
            a = x * 2.0
            with tape.scope() as inner:
                assert tape.depth == 2
                b = a * a
            c = b + a
        assert tape.depth == 0
        outer_ops = [e.op_id for e in tape.entries_since(outer.marker)]
        inner_ops = [e.op_id for e in tape.entries_since(inner.marker)]
    assert outer_ops == ['mul', 'mul', 'add']
    assert inner_ops == ['mul', 'add']
    assert c.item() == pytest.approx(42.0)


def test_entries_since_is_a_snapshot():
    with recording_session() as tape:
        x = Tensor(1.0)
        with tape.scope():
            _ = x + x
            seen = []
            for entry in tape.entries_since(0):
                seen.append(entry.op_id)
                _ = x * x
        assert seen == ['add']
        assert len(tape) == 2


def test_scope_popped_on_error():
    with recording_session() as tape:
        with pytest.raises(ZeroDivisionError):
            with tape.scope():
                assert tape.is_recording()
                1 / 0
        assert tape.depth == 0
        assert not tape.is_recording()


def test_output_recorded_twice_is_rejected():
    tape = Tape()
    x = Tensor(1.0)
    y = Tensor(2.0)
    with tape.scope():
        tape.record('identity', [x], [y], context=None)
        with pytest.raises(ValueError):
            tape.record('identity', [x], [y], context=None)


def test_no_grad_pauses_recording():
    with recording_session() as tape:
        x = Tensor(1.0)
        with tape.scope():
            with no_grad():
                assert not is_recording()
                _ = x + x
            _ = x * x
        assert [e.op_id for e in tape.entries_since(0)] == ['mul']


def test_session_installs_and_removes_tape():
    assert current_tape() is None
    with recording_session() as outer:
        assert current_tape() is outer
        with recording_session() as nested:
            assert nested is outer
        assert current_tape() is outer
    assert current_tape() is None


def test_session_releases_entries_on_exit():
    with recording_session() as tape:
        x = Tensor(np.ones(3))
        with tape.scope():
            _ = x * 2.0
        entry = next(tape.entries_since(0))
        assert not entry.released
    assert entry.released
    assert entry.context.inputs == ()


def test_release_waits_for_open_scopes():
    tape = Tape()
    x = Tensor(1.0)
    with tape.scope():
        _set_tape(tape)
        try:
            _ = x + x
        finally:
            _set_tape(None)
        assert tape.release() is False
    assert tape.release() is True
    assert all(e.released for e in tape.entries_since(0))


def test_scope_opened_while_paused_records_for_itself_only():
    with recording_session() as tape:
        x = Tensor(2.0)
        with tape.scope() as outer:
            with no_grad():
                _ = x + x
                with tape.scope() as inner:
                    assert tape.is_recording()
                    _ = x * x
                assert not tape.is_recording()
                assert [e.op_id for e in tape.entries_in(inner)] == ['mul']
            _ = x - x
        assert [e.op_id for e in tape.entries_in(outer)] == ['sub']


def test_out_of_order_exit_keeps_original_error():
    tape = Tape()
    first, second = tape.scope(), tape.scope()
    first.__enter__()
    second.__enter__()
    error = ZeroDivisionError("division by zero")
    assert first.__exit__(ZeroDivisionError, error, None) is False
    assert tape.depth == 1
    second.__exit__(None, None, None)
    assert tape.depth == 0


def test_out_of_order_exit_is_reported_after_popping():
    tape = Tape()
    first, second = tape.scope(), tape.scope()
    first.__enter__()
    second.__enter__()
    with pytest.raises(RuntimeError):
        first.__exit__(None, None, None)
    assert tape.depth == 1
    second.__exit__(None, None, None)
    assert tape.depth == 0


def test_release_drops_saved_values():
    with recording_session() as tape:
        x = Tensor(np.array([1.0, 3.0, 3.0]))
        with tape.scope():
            _ = x.max()
        entry = next(tape.entries_since(0))
        np.testing.assert_allclose(entry.context.saved['share'], [0.0, 0.5, 0.5])
    assert entry.released
    assert entry.context.saved == {}
