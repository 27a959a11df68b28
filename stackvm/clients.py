"""Capability interfaces for the cloud control plane.

The orchestrator only talks to these; ``stackvm.aws`` implements them on
boto3 and the tests implement them in memory. Every method raises
ControlPlaneError on a remote failure, and the waiters raise
WaitTimeoutError or OperationCancelled.
"""

from threading import Event
from typing import Protocol

from .types import RecordType, StackOutputs


class StackService(Protocol):
    def create_stack(self, name: str, template: str, parameters: dict[str, str]) -> str: ...

    def delete_stack(self, name: str) -> None: ...

    def wait_for_create(
        self, name: str, timeout: float, cancel: Event | None = None
    ) -> None: ...

    def wait_for_delete(
        self, name: str, timeout: float, cancel: Event | None = None
    ) -> None: ...

    def describe_stack(self, name: str) -> StackOutputs: ...


class ComputeService(Protocol):
    def find_default_network(self) -> str | None: ...

    def find_subnet(self, network_id: str) -> str: ...

    def create_network(self, cidr: str) -> str: ...

    def wait_network_available(
        self, network_id: str, timeout: float, cancel: Event | None = None
    ) -> None: ...

    def enable_dns_hostnames(self, network_id: str) -> None: ...

    def create_gateway(self) -> str: ...

    def attach_gateway(self, gateway_id: str, network_id: str) -> None: ...

    def list_zones(self) -> list[str]: ...

    def create_subnet(self, network_id: str, cidr: str, zone: str) -> str: ...

    def enable_public_assign(self, subnet_id: str) -> None: ...

    def create_route_table(self, network_id: str) -> str: ...

    def create_default_route(self, route_table_id: str, gateway_id: str) -> None: ...

    def associate_route_table(self, route_table_id: str, subnet_id: str) -> str: ...

    def disassociate_route_table(self, association_id: str) -> None: ...

    def delete_route_table(self, route_table_id: str) -> None: ...

    def delete_subnet(self, subnet_id: str) -> None: ...

    def detach_gateway(self, gateway_id: str, network_id: str) -> None: ...

    def delete_gateway(self, gateway_id: str) -> None: ...

    def delete_network(self, network_id: str) -> None: ...

    def stop_instance(self, instance_id: str) -> None: ...

    def start_instance(self, instance_id: str) -> None: ...

    def describe_instance(self, instance_id: str) -> tuple[str, str]:
        """:return: (power state, public ip or "")"""
        ...


class DNSService(Protocol):
    def find_zone(self, domain: str) -> str: ...

    def upsert_record(
        self, zone_id: str, name: str, type: RecordType, value: str, ttl: int
    ) -> None: ...

    def delete_record(
        self, zone_id: str, name: str, type: RecordType, value: str, ttl: int
    ) -> None: ...


class ParameterService(Protocol):
    def get_parameter(self, path: str) -> str: ...
