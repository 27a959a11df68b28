from threading import Event

import pytest

from stackvm.errors import ControlPlaneError, OperationCancelled, WaitTimeoutError
from stackvm.waiters import poll_until


def statuses(*values):
    it = iter(values)
    return lambda: next(it)


def test_returns_on_success():
    result = poll_until(
        statuses("CREATE_IN_PROGRESS", "CREATE_IN_PROGRESS", "CREATE_COMPLETE"),
        success={"CREATE_COMPLETE"},
        failure={"ROLLBACK_COMPLETE"},
        operation="create stack",
        resource="stackvm-web",
        timeout=5,
        delay=0,
    )
    assert result == "CREATE_COMPLETE"


def test_failure_status_raises():
    with pytest.raises(ControlPlaneError, match="ROLLBACK_COMPLETE"):
        poll_until(
            statuses("CREATE_IN_PROGRESS", "ROLLBACK_COMPLETE"),
            success={"CREATE_COMPLETE"},
            failure={"ROLLBACK_COMPLETE"},
            operation="create stack",
            resource="stackvm-web",
            timeout=5,
            delay=0,
        )


def test_timeout_names_operation_and_resource():
    with pytest.raises(WaitTimeoutError) as exc:
        poll_until(
            lambda: "CREATE_IN_PROGRESS",
            success={"CREATE_COMPLETE"},
            failure=set(),
            operation="create stack",
            resource="stackvm-web",
            timeout=0.05,
            delay=0.01,
        )
    assert exc.value.operation == "create stack"
    assert exc.value.resource == "stackvm-web"
    assert isinstance(exc.value, TimeoutError)


def test_cancel_before_first_poll():
    cancel = Event()
    cancel.set()
    checks = []
    with pytest.raises(OperationCancelled):
        poll_until(
            lambda: checks.append(1) or "PENDING",
            success={"DONE"},
            failure=set(),
            operation="wait for VPC",
            resource="vpc-1",
            timeout=5,
            cancel=cancel,
        )
    assert checks == []


def test_cancel_during_wait():
    cancel = Event()

    def check():
        cancel.set()
        return "pending"

    with pytest.raises(OperationCancelled):
        poll_until(
            check,
            success={"available"},
            failure=set(),
            operation="wait for VPC",
            resource="vpc-1",
            timeout=60,
            delay=30,
            cancel=cancel,
        )
