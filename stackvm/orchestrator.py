"""Create, delete and re-point a single VM and its supporting resources."""

import base64
from pathlib import Path
from threading import Event

from .clients import ComputeService, DNSService, ParameterService, StackService
from .dns_records import DNSRecordManager
from .errors import (
    BestEffortFailure,
    DeleteReport,
    ProvisioningError,
    StackVMError,
    ValidationError,
)
from .images import ImageResolver, lookup_image_path
from .network import NETWORK_AVAILABLE_TIMEOUT, NetworkResolver
from .stack import STACK_TIMEOUT, StackLifecycleManager, build_stack_name
from .template import build_parameters, render_template
from .types import (
    CreatePhase,
    DNSRecord,
    InstanceStatus,
    ProvisioningState,
    VMSpecification,
)
from .utils import log, warn


def read_startup_script(path: str | Path | None) -> str:
    """Read and base64-encode the startup script.

    :param path: Script file, or None for no script
    :return: Base64 text ("" when there is no script)
    :raises ValidationError: If the path does not exist
    """
    if path is None:
        return ""
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"startup script not found: '{path}'")
    return base64.b64encode(path.read_bytes()).decode()


class ProvisioningOrchestrator:
    """Sequence image, network, stack and DNS for one VM.

    All cloud access goes through the four injected services.

    :param stacks: Stack service
    :param compute: Compute/network service
    :param dns: DNS service
    :param parameters: Parameter service
    :param cancel: Event that aborts any in-flight wait when set
    """

    def __init__(
        self,
        stacks: StackService,
        compute: ComputeService,
        dns: DNSService,
        parameters: ParameterService,
        *,
        cancel: Event | None = None,
        stack_timeout: float = STACK_TIMEOUT,
        network_timeout: float = NETWORK_AVAILABLE_TIMEOUT,
    ):
        self.compute = compute
        self.cancel = cancel or Event()
        self.images = ImageResolver(parameters)
        self.network = NetworkResolver(
            compute, available_timeout=network_timeout, cancel=self.cancel
        )
        self.stacks = StackLifecycleManager(
            stacks, timeout=stack_timeout, cancel=self.cancel
        )
        self.dns = DNSRecordManager(dns)

    def create(
        self,
        spec: VMSpecification,
        startup_script_path: str | Path | None = None,
        state: ProvisioningState | None = None,
    ) -> ProvisioningState:
        """Provision the VM described by ``spec``.

        Progress is recorded into ``state`` as each resource comes into
        existence, so a caller that keeps a reference can persist it even
        if the process is interrupted.

        :param spec: VM specification
        :param startup_script_path: Startup script to pass as user data
        :param state: State object to populate (a new one if omitted)
        :return: The populated state
        :raises ValidationError: Bad input, before any remote call
        :raises ProvisioningError: A remote step failed; carries partial state
        """
        lookup_image_path(spec.os)
        user_data = read_startup_script(startup_script_path)

        if state is None:
            state = ProvisioningState()
        state.vm_name = spec.name
        state.region = spec.region
        state.os = spec.os
        state.dns_settings = spec.dns

        phase = CreatePhase.START
        try:
            state.image_id = self.images.resolve(spec.os)
            phase = CreatePhase.IMAGE_RESOLVED

            self.network.resolve(spec, state.network)
            phase = CreatePhase.NETWORK_RESOLVED

            stack_name = build_stack_name(spec.name)
            parameters = build_parameters(
                state.image_id,
                spec.instance_type,
                state.network.network_id,
                state.network.subnet_id,
                user_data,
            )
            state.stack.stack_name = stack_name
            state.stack.stack_id = self.stacks.create(
                stack_name, render_template(), parameters
            )
            phase = CreatePhase.STACK_SUBMITTED

            self.stacks.wait_for_create_complete(stack_name)
            phase = CreatePhase.STACK_COMPLETE

            outputs = self.stacks.describe(stack_name)
            state.stack.instance_id = outputs.instance_id
            state.stack.public_ip = outputs.public_ip
            state.stack.security_group_id = outputs.security_group_id
            phase = CreatePhase.OUTPUTS_CAPTURED
            log(f"Instance '{outputs.instance_id}' is up at '{outputs.public_ip}'")

            if spec.dns and spec.dns.domain:
                settings = spec.dns
                state.dns.zone_id = self.dns.resolve_zone(
                    settings.domain, state.dns.zone_id
                )
                self.dns.create_records(
                    state.dns,
                    settings.hostname_for(spec.name),
                    settings.domain,
                    state.stack.public_ip,
                    settings.ttl,
                    settings.is_apex,
                    settings.aliases,
                )
                phase = CreatePhase.DNS_CREATED
        except StackVMError as e:
            warn(f"Create of '{spec.name}' failed after phase '{phase.value}': {e}")
            raise ProvisioningError(e, state, phase) from e

        log(f"Created '{spec.name}'")
        return state

    def delete(self, state: ProvisioningState) -> DeleteReport:
        """Tear down everything recorded in ``state``.

        DNS record and network cleanup are best effort: their failures are
        reported, not raised. Stack deletion failure is raised, and leaves
        the network alone. Records and network ids are dropped from
        ``state`` as each is confirmed gone, so a repeated delete only
        retries what is left.

        :param state: State recorded by create
        :return: Report of the best-effort steps that failed
        """
        report = DeleteReport()

        if state.dns.records:
            report.failures.extend(self._delete_dns(state))
        if not state.dns.records:
            state.dns.clear()

        stack_name = state.stack.stack_name or (
            build_stack_name(state.vm_name) if state.vm_name else ""
        )
        if stack_name:
            self.stacks.delete(stack_name)
            self.stacks.wait_for_delete_complete(stack_name)
        state.stack.clear()
        state.image_id = ""

        if state.network.created:
            report.failures.extend(self.network.teardown(state.network))
        else:
            state.network.clear()

        if report.ok:
            log(f"Deleted '{state.vm_name}'")
        else:
            warn(
                f"Deleted '{state.vm_name}' with {len(report.failures)} cleanup failure(s)"
            )
        return report

    def _delete_dns(self, state: ProvisioningState) -> list[BestEffortFailure]:
        zone_id = state.dns.zone_id
        if not zone_id:
            domain = state.dns_settings.domain if state.dns_settings else ""
            if not domain:
                warn("DNS records recorded without a hosted zone, skipping")
                return [
                    BestEffortFailure(
                        "delete DNS records for", state.dns.fqdn, "no hosted zone recorded"
                    )
                ]
            try:
                zone_id = self.dns.resolve_zone(domain)
            except StackVMError as e:
                warn(f"DNS record deletion skipped: {e}")
                return [BestEffortFailure.from_error("find hosted zone for", domain, e)]
        state.dns.records, failures = self.dns.delete_records(zone_id, state.dns.records)
        return failures

    def status(self, state: ProvisioningState) -> InstanceStatus:
        instance_id = self._require_instance(state)
        power_state, public_ip = self.compute.describe_instance(instance_id)
        return InstanceStatus(name=state.vm_name, state=power_state, public_ip=public_ip)

    def stop(self, state: ProvisioningState) -> None:
        instance_id = self._require_instance(state)
        self.compute.stop_instance(instance_id)
        log(f"Stopping instance '{instance_id}'")

    def start(self, state: ProvisioningState) -> None:
        instance_id = self._require_instance(state)
        self.compute.start_instance(instance_id)
        log(f"Starting instance '{instance_id}'")

    def refresh_address(self, state: ProvisioningState) -> bool:
        """Record the instance's current public ip.

        :return: True if the address changed
        """
        current = self.status(state).public_ip
        if not current or current == state.stack.public_ip:
            return False
        log(f"Public IP changed: '{state.stack.public_ip}' -> '{current}'")
        state.stack.public_ip = current
        return True

    def swap(self, state: ProvisioningState) -> list[DNSRecord]:
        """Point the configured DNS names at this state's instance.

        Only ``state.dns`` is modified.

        :return: The records written
        :raises ValidationError: No DNS settings or no public ip recorded
        """
        settings = state.dns_settings
        if settings is None or not settings.domain:
            raise ValidationError(
                f"DNS settings required for swap of '{state.vm_name}': add a 'dns' section"
            )
        if not state.stack.public_ip:
            raise ValidationError(
                f"no public IP recorded for '{state.vm_name}': VM must be running for swap"
            )

        records = self.dns.swap(
            state.dns,
            settings.hostname_for(state.vm_name),
            settings.domain,
            state.stack.public_ip,
            settings.ttl,
            settings.is_apex,
            settings.aliases,
            cached_zone_id=state.dns.zone_id,
        )
        log(f"Swapped '{state.dns.fqdn}' -> '{state.stack.public_ip}'")
        return records

    def _require_instance(self, state: ProvisioningState) -> str:
        if not state.stack.instance_id:
            raise ValidationError(
                f"no instance ID recorded for '{state.vm_name}': "
                "VM may not have been created"
            )
        return state.stack.instance_id
