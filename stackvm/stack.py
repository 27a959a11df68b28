"""CloudFormation stack lifecycle."""

from threading import Event

from .clients import StackService
from .types import StackOutputs
from .utils import log

STACK_PREFIX = "stackvm"
STACK_TIMEOUT = 600.0


def build_stack_name(vm_name: str) -> str:
    return f"{STACK_PREFIX}-{vm_name}"


class StackLifecycleManager:
    def __init__(
        self,
        stacks: StackService,
        *,
        timeout: float = STACK_TIMEOUT,
        cancel: Event | None = None,
    ):
        self.stacks = stacks
        self.timeout = timeout
        self.cancel = cancel

    def create(self, name: str, template: str, parameters: dict[str, str]) -> str:
        """Submit the stack and return its id without waiting."""
        log(f"Creating stack '{name}'...")
        stack_id = self.stacks.create_stack(name, template, parameters)
        log(f"Submitted stack '{stack_id}'")
        return stack_id

    def wait_for_create_complete(self, name: str) -> None:
        log(f"Waiting for stack '{name}' to finish creating...")
        self.stacks.wait_for_create(name, self.timeout, self.cancel)
        log(f"Stack '{name}' created")

    def describe(self, name: str) -> StackOutputs:
        return self.stacks.describe_stack(name)

    def delete(self, name: str) -> None:
        log(f"Deleting stack '{name}'...")
        self.stacks.delete_stack(name)

    def wait_for_delete_complete(self, name: str) -> None:
        log(f"Waiting for stack '{name}' to finish deleting...")
        self.stacks.wait_for_delete(name, self.timeout, self.cancel)
        log(f"Stack '{name}' deleted")
