"""Stack folder layout and ProvisioningState persistence."""

import json
import os
import shutil
from pathlib import Path

from dotenv import load_dotenv

from .errors import ValidationError
from .types import ProvisioningState

DEFAULT_STACK_FOLDER = "stacks"
PROVIDER_DIR = "aws"


def resolve_stack_folder(folder: str | Path | None = None) -> Path:
    """:return: Explicit folder, else STACKVM_STACK_FOLDER, else ./stacks"""
    if folder:
        return Path(folder)
    load_dotenv()
    return Path(os.getenv("STACKVM_STACK_FOLDER", DEFAULT_STACK_FOLDER))


def vm_dir(folder: str | Path, name: str) -> Path:
    return Path(folder) / name


def config_path(folder: str | Path, name: str) -> Path:
    return vm_dir(folder, name) / "config.json"


def startup_script_path(folder: str | Path, name: str) -> Path | None:
    """:return: The VM's startup.sh if it exists, else None"""
    path = vm_dir(folder, name) / "startup.sh"
    return path if path.is_file() else None


def state_path(folder: str | Path, name: str) -> Path:
    return vm_dir(folder, name) / PROVIDER_DIR / "state.json"


def has_state(folder: str | Path, name: str) -> bool:
    return state_path(folder, name).is_file()


def load_state(folder: str | Path, name: str) -> ProvisioningState:
    """Load persisted state for a VM.

    :param folder: Stack folder
    :param name: VM name
    :return: The saved ProvisioningState
    :raises ValidationError: If the state file is missing or not valid JSON
    """
    path = state_path(folder, name)
    if not path.is_file():
        raise ValidationError(f"State file not found: '{path}'")
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in '{path}': {e}") from e
    return ProvisioningState.from_dict(data)


def save_state(folder: str | Path, name: str, state: ProvisioningState) -> Path:
    """Save state as JSON, creating the state directory if needed.

    :return: Path written
    """
    path = state_path(folder, name)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state.to_dict(), indent=2) + "\n")
    return path


def clear_state(folder: str | Path, name: str) -> None:
    shutil.rmtree(state_path(folder, name).parent, ignore_errors=True)
