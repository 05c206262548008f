"""Unit tests for the owner loop."""

from __future__ import annotations

import threading

import pytest

from forecast_workflow.workflow.errors import ContractViolation
from forecast_workflow.workflow.owner import OwnerLoop


def test_rejects_non_positive_poll_interval() -> None:
    with pytest.raises(ValueError):
        OwnerLoop(poll_interval=0)


def test_post_runs_in_order_on_drain(owner: OwnerLoop) -> None:
    seen: list[int] = []
    owner.post(lambda: seen.append(1))
    owner.post(lambda: seen.append(2))

    assert seen == []
    assert owner.run_pending() == 2
    assert seen == [1, 2]


def test_call_runs_inline_on_owner(owner: OwnerLoop) -> None:
    assert owner.call(lambda: 42) == 42
    assert owner.run_pending() == 0


def test_call_from_worker_runs_on_owner_thread(owner: OwnerLoop) -> None:
    results: list[object] = []

    def worker() -> None:
        results.append(owner.call(lambda: threading.current_thread().name))

    thread = threading.Thread(target=worker, name="worker")
    thread.start()

    assert owner.run_until(lambda: bool(results), timeout=5.0)
    thread.join(timeout=5.0)
    assert results == [owner.owner_name]


def test_call_reraises_in_worker(owner: OwnerLoop) -> None:
    caught: list[BaseException] = []

    def boom() -> None:
        raise RuntimeError("boom")

    def worker() -> None:
        try:
            owner.call(boom)
        except RuntimeError as exc:
            caught.append(exc)

    thread = threading.Thread(target=worker)
    thread.start()

    assert owner.run_until(lambda: bool(caught), timeout=5.0)
    thread.join(timeout=5.0)
    assert str(caught[0]) == "boom"


def test_run_until_times_out(owner: OwnerLoop) -> None:
    assert owner.run_until(lambda: False, timeout=0.05) is False


def test_assert_owner_off_thread(owner: OwnerLoop) -> None:
    caught: list[BaseException] = []

    def worker() -> None:
        try:
            owner.run_pending()
        except ContractViolation as exc:
            caught.append(exc)

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()

    assert owner.is_owner_thread()
    assert len(caught) == 1
