"""Bounded polling for long-running control-plane operations."""

import time
from threading import Event
from typing import Callable

from .errors import ControlPlaneError, OperationCancelled, WaitTimeoutError
from .utils import debug

DEFAULT_DELAY = 5.0


def poll_until(
    check: Callable[[], str],
    *,
    success: set[str],
    failure: set[str],
    operation: str,
    resource: str,
    timeout: float,
    delay: float = DEFAULT_DELAY,
    cancel: Event | None = None,
) -> str:
    """Call ``check`` until it reports a terminal status.

    :param check: Returns the current status string of the resource
    :param success: Statuses that end the wait successfully
    :param failure: Statuses the control plane reports for a failed operation
    :param operation: Verb used in error messages (e.g. "create stack")
    :param resource: Resource name used in error messages
    :param timeout: Seconds to wait before giving up
    :param delay: Seconds between polls
    :param cancel: Event that aborts the wait when set
    :return: The terminal success status
    :raises ControlPlaneError: On a failure status
    :raises WaitTimeoutError: When the deadline passes first
    :raises OperationCancelled: When ``cancel`` is set
    """
    cancel = cancel or Event()
    deadline = time.monotonic() + timeout
    while True:
        if cancel.is_set():
            raise OperationCancelled(operation, resource)
        status = check()
        debug(f"{resource}: {status}")
        if status in success:
            return status
        if status in failure:
            raise ControlPlaneError(operation, resource, f"reached state {status}")
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise WaitTimeoutError(operation, resource, timeout)
        if cancel.wait(min(delay, remaining)):
            raise OperationCancelled(operation, resource)
