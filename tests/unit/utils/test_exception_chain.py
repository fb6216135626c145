from __future__ import annotations

from afailsafe.utils import add_previous_failure, iter_exception_chain


def chain_of(*errors: BaseException) -> BaseException:
    for outer, inner in zip(errors, errors[1:]):
        outer.__cause__ = inner
    return errors[0]


def test_iter_exception_chain_single() -> None:
    error = ValueError()
    assert list(iter_exception_chain(error, 10)) == [error]


def test_iter_exception_chain_cause() -> None:
    errors = (RuntimeError(), OSError(), KeyError())
    assert list(iter_exception_chain(chain_of(*errors), 10)) == list(errors)


def test_iter_exception_chain_limit() -> None:
    errors = (RuntimeError(), OSError(), KeyError())
    assert list(iter_exception_chain(chain_of(*errors), 2)) == list(errors[:2])


def test_iter_exception_chain_cycle() -> None:
    first, second = RuntimeError(), OSError()
    first.__cause__ = second
    second.__cause__ = first
    assert list(iter_exception_chain(first, 10)) == [first, second]


def test_iter_exception_chain_suppressed_context() -> None:
    try:
        try:
            raise KeyError
        except KeyError:
            raise ValueError from None
    except ValueError as exc:
        error = exc
    assert list(iter_exception_chain(error, 10)) == [error]


def test_add_previous_failure() -> None:
    error = OSError("last")
    add_previous_failure(error, ValueError("bad value"), 5)
    assert error.__notes__ == ["Previous attempt failed with ValueError: bad value"]


def test_add_previous_failure_same_exception() -> None:
    """Test that an exception is never recorded on itself."""
    error = OSError()
    add_previous_failure(error, error, 5)
    assert not hasattr(error, "__notes__")


def test_add_previous_failure_cap_ignores_other_notes() -> None:
    error = OSError()
    error.add_note("user note")
    for i in range(3):
        add_previous_failure(error, OSError(str(i)), 2)
    assert error.__notes__ == [
        "user note",
        "Previous attempt failed with OSError: 0",
        "Previous attempt failed with OSError: 1",
    ]
