#!/usr/bin/env python3
"""Provision single VMs on AWS through CloudFormation.

Prerequisites: AWS credentials (profile or environment), a Route53 hosted zone
for any domain used in a config.

Usage: uv run stackvm <noun> <verb> <name> [options]

Each VM lives in its own folder under the stack folder (default: ./stacks):

    stacks/<name>/config.json     VM and DNS settings
    stacks/<name>/startup.sh      optional cloud-init user data
    stacks/<name>/aws/state.json  written by create, removed by delete

Examples:
    uv run stackvm instance create devbox
    uv run stackvm instance status devbox
    uv run stackvm instance ssh devbox
    uv run stackvm dns swap devbox-green
    uv run stackvm instance delete devbox --force
"""

import signal
import subprocess
import sys
from pathlib import Path
from threading import Event

import cyclopts
from rich import print

from .config import load_config
from .dns_records import resolve_a_record
from .errors import ProvisioningError, StackVMError
from .orchestrator import ProvisioningOrchestrator
from .providers import ProviderName, build_registry
from .state import (
    clear_state,
    config_path,
    has_state,
    load_state,
    resolve_stack_folder,
    save_state,
    startup_script_path,
)
from .types import ProvisioningState
from .utils import error, get_ssh_user, log, setup_logging, warn

app = cyclopts.App(
    name="stackvm", help="Provision single VMs with CloudFormation", sort_key=None
)

instance_app = cyclopts.App(name="instance", help="Manage VM instances", sort_key=1)
dns_app = cyclopts.App(name="dns", help="Manage DNS records", sort_key=2)

app.command(instance_app)
app.command(dns_app)


def get_orchestrator(
    region: str | None,
    profile: str | None,
    provider: ProviderName = "aws",
) -> ProvisioningOrchestrator:
    """Build the orchestrator, exiting on bad credentials.

    Ctrl-C sets the cancel event, so in-flight waits stop and the
    partial state is still saved.
    """
    cancel = Event()
    signal.signal(signal.SIGINT, lambda *_: cancel.set())
    try:
        return build_registry().get(
            provider, region=region, profile=profile, cancel=cancel
        )
    except StackVMError as e:
        error(str(e))


def get_state(folder: Path, name: str) -> ProvisioningState:
    if not has_state(folder, name):
        error(
            f"No state for '{name}' in '{folder}'\n"
            f"Create it first with: stackvm instance create {name}"
        )
    try:
        return load_state(folder, name)
    except StackVMError as e:
        error(str(e))


@instance_app.command(name="create")
def create_instance(
    name: str,
    *,
    folder: Path | None = None,
    region: str | None = None,
    profile: str | None = None,
    verbose: bool = False,
):
    """Create a VM from <folder>/<name>/config.json.

    :param name: VM name (folder under the stack folder)
    :param folder: Stack folder (default: STACKVM_STACK_FOLDER or ./stacks)
    :param region: AWS region (default: config vm.region)
    :param profile: AWS profile (default: AWS_PROFILE)
    :param verbose: Debug logging
    """
    setup_logging("DEBUG" if verbose else "INFO")
    folder = resolve_stack_folder(folder)

    if has_state(folder, name):
        error(
            f"State already exists for '{name}': delete it first with "
            f"stackvm instance delete {name}"
        )
    try:
        spec = load_config(config_path(folder, name))
    except StackVMError as e:
        error(str(e))
    if spec.name != name:
        warn(f"Config names VM '{spec.name}', folder is '{name}'")

    region = region or spec.region
    orchestrator = get_orchestrator(region, profile)

    log(f"Creating '{spec.name}' in '{region}' ('{spec.instance_type}', '{spec.os}')...")
    state = ProvisioningState()
    try:
        orchestrator.create(spec, startup_script_path(folder, name), state)
    except ProvisioningError as e:
        error(
            f"Create failed after '{e.phase.value}': {e}\n"
            f"Partial state saved, clean up with: stackvm instance delete {name}"
        )
    except StackVMError as e:
        error(str(e))
    finally:
        if not state.is_empty:
            path = save_state(folder, name, state)
            log(f"Saved state to '{path}'")

    log("Instance ready!")
    print(f"  IP: {state.stack.public_ip}")
    if state.dns.fqdn:
        print(f"  DNS: {state.dns.fqdn}")
    print(f"  SSH: ssh {get_ssh_user(spec.os)}@{state.stack.public_ip}")


@instance_app.command(name="delete")
def delete_instance(
    name: str,
    *,
    folder: Path | None = None,
    profile: str | None = None,
    force: bool = False,
    verbose: bool = False,
):
    """Delete a VM's DNS records, stack and any network created for it.

    :param name: VM name
    :param folder: Stack folder (default: STACKVM_STACK_FOLDER or ./stacks)
    :param profile: AWS profile (default: AWS_PROFILE)
    :param force: Skip confirmation prompt
    :param verbose: Debug logging
    """
    setup_logging("DEBUG" if verbose else "INFO")
    folder = resolve_stack_folder(folder)
    state = get_state(folder, name)

    print("[yellow]VM to delete:[/yellow]")
    print(f"  Name: {state.vm_name}")
    print(f"  Stack: {state.stack.stack_name or '-'}")
    print(f"  Instance: {state.stack.instance_id or '-'}")
    print(f"  IP: {state.stack.public_ip or '-'}")
    if state.dns.records:
        print(f"  DNS records: {', '.join(r.name for r in state.dns.records)}")
    if state.network.created:
        print(f"  Network: {state.network.network_id}")

    if not force:
        confirm = input("Delete this VM? (yes/no): ")
        if confirm != "yes":
            log("Cancelled")
            return

    orchestrator = get_orchestrator(state.region, profile)
    try:
        report = orchestrator.delete(state)
    except StackVMError as e:
        save_state(folder, name, state)
        error(f"Delete of '{name}' failed: {e}")

    if state.is_empty:
        clear_state(folder, name)
        log("VM deleted")
        return

    save_state(folder, name, state)
    for failure in report.failures:
        print(f"  [red]{failure}[/red]")
    warn(f"Some resources remain, state kept for '{name}'")


@instance_app.command(name="status")
def instance_status(
    name: str,
    *,
    folder: Path | None = None,
    profile: str | None = None,
):
    """Show a VM's power state and public IP.

    :param name: VM name
    :param folder: Stack folder (default: STACKVM_STACK_FOLDER or ./stacks)
    :param profile: AWS profile (default: AWS_PROFILE)
    """
    setup_logging()
    folder = resolve_stack_folder(folder)
    state = get_state(folder, name)
    orchestrator = get_orchestrator(state.region, profile)
    try:
        status = orchestrator.status(state)
    except StackVMError as e:
        error(str(e))

    print(f"[bold]{status.name}[/bold]")
    print(f"  State: {status.state}")
    print(f"  IP: {status.public_ip or '-'}")
    if state.dns.fqdn:
        print(f"  DNS: {state.dns.fqdn}")


@instance_app.command(name="stop")
def stop_instance(
    name: str,
    *,
    folder: Path | None = None,
    profile: str | None = None,
):
    """Stop a VM. Its public IP is released until it starts again.

    :param name: VM name
    :param folder: Stack folder (default: STACKVM_STACK_FOLDER or ./stacks)
    :param profile: AWS profile (default: AWS_PROFILE)
    """
    setup_logging()
    folder = resolve_stack_folder(folder)
    state = get_state(folder, name)
    try:
        get_orchestrator(state.region, profile).stop(state)
    except StackVMError as e:
        error(str(e))


@instance_app.command(name="start")
def start_instance(
    name: str,
    *,
    folder: Path | None = None,
    profile: str | None = None,
):
    """Start a stopped VM and record its new public IP.

    :param name: VM name
    :param folder: Stack folder (default: STACKVM_STACK_FOLDER or ./stacks)
    :param profile: AWS profile (default: AWS_PROFILE)
    """
    setup_logging()
    folder = resolve_stack_folder(folder)
    state = get_state(folder, name)
    orchestrator = get_orchestrator(state.region, profile)
    try:
        orchestrator.start(state)
        if orchestrator.refresh_address(state):
            save_state(folder, name, state)
            if state.dns.records:
                warn(f"DNS still points at the old IP: run stackvm dns swap {name}")
    except StackVMError as e:
        error(str(e))


@instance_app.command(name="ssh")
def ssh_instance(name: str, *, folder: Path | None = None):
    """Open an interactive SSH session to a VM.

    :param name: VM name
    :param folder: Stack folder (default: STACKVM_STACK_FOLDER or ./stacks)
    """
    setup_logging()
    folder = resolve_stack_folder(folder)
    state = get_state(folder, name)
    ip = state.stack.public_ip
    if not ip:
        error(f"No public IP recorded for '{name}': check it with: stackvm instance status {name}")

    target = f"{get_ssh_user(state.os)}@{ip}"
    log(f"Connecting to '{target}'...")
    result = subprocess.run(["ssh", target])
    if result.returncode != 0:
        sys.exit(result.returncode)


@dns_app.command(name="swap")
def dns_swap(
    name: str,
    *,
    folder: Path | None = None,
    profile: str | None = None,
):
    """Point the VM's DNS names at this VM (blue-green cutover).

    :param name: VM name whose instance should receive traffic
    :param folder: Stack folder (default: STACKVM_STACK_FOLDER or ./stacks)
    :param profile: AWS profile (default: AWS_PROFILE)
    """
    setup_logging()
    folder = resolve_stack_folder(folder)
    state = get_state(folder, name)
    orchestrator = get_orchestrator(state.region, profile)
    try:
        records = orchestrator.swap(state)
    except StackVMError as e:
        save_state(folder, name, state)
        error(str(e))

    save_state(folder, name, state)
    for record in records:
        print(f"  {record.type} {record.name} -> {record.value}")


@dns_app.command(name="check")
def dns_check(name: str, *, folder: Path | None = None):
    """Check whether the VM's DNS name resolves to its recorded IP.

    :param name: VM name
    :param folder: Stack folder (default: STACKVM_STACK_FOLDER or ./stacks)
    """
    setup_logging()
    folder = resolve_stack_folder(folder)
    state = get_state(folder, name)
    if not state.dns.fqdn:
        error(f"No DNS records recorded for '{name}'")

    resolved = resolve_a_record(state.dns.fqdn)
    if resolved is None:
        warn(f"'{state.dns.fqdn}' does not resolve yet")
    elif resolved == state.stack.public_ip:
        log(f"'{state.dns.fqdn}' -> '{resolved}'")
    else:
        warn(
            f"'{state.dns.fqdn}' resolves to '{resolved}', "
            f"expected '{state.stack.public_ip}'"
        )


if __name__ == "__main__":
    app()
