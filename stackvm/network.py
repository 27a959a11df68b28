"""Network discovery, creation and teardown."""

from threading import Event
from typing import Callable

from .clients import ComputeService
from .errors import BestEffortFailure, ControlPlaneError, StackVMError
from .types import NetworkTopology, VMSpecification
from .utils import log, warn

NETWORK_CIDR = "10.0.0.0/16"
SUBNET_CIDR = "10.0.1.0/24"
NETWORK_AVAILABLE_TIMEOUT = 120.0


class NetworkResolver:
    def __init__(
        self,
        compute: ComputeService,
        *,
        available_timeout: float = NETWORK_AVAILABLE_TIMEOUT,
        cancel: Event | None = None,
    ):
        self.compute = compute
        self.available_timeout = available_timeout
        self.cancel = cancel

    def resolve(
        self, spec: VMSpecification, topology: NetworkTopology | None = None
    ) -> NetworkTopology:
        """Pick the network and subnet the instance will live in.

        An explicit network and subnet on ``spec`` always win. Otherwise the
        default network is reused, and only when there is none is a new
        topology built. ``topology`` is filled in place, so on failure the
        caller still holds the ids of everything that was created.

        :param spec: VM specification
        :param topology: Object to populate (a new one if omitted)
        :return: The populated topology
        """
        topology = topology if topology is not None else NetworkTopology()

        if spec.has_explicit_network:
            log(f"Using configured network '{spec.network_id}' / '{spec.subnet_id}'")
            topology.network_id = spec.network_id
            topology.subnet_id = spec.subnet_id
            topology.created = False
            return topology

        network_id = self.compute.find_default_network()
        if network_id:
            subnet_id = self.compute.find_subnet(network_id)
            log(f"Using default network '{network_id}' with subnet '{subnet_id}'")
            topology.network_id = network_id
            topology.subnet_id = subnet_id
            topology.created = False
            return topology

        log("No default network found, creating one...")
        self.create_network(topology)
        return topology

    def create_network(self, topology: NetworkTopology) -> None:
        compute = self.compute

        topology.network_id = compute.create_network(NETWORK_CIDR)
        topology.created = True
        log(f"Created network '{topology.network_id}'")
        compute.wait_network_available(
            topology.network_id, self.available_timeout, self.cancel
        )
        compute.enable_dns_hostnames(topology.network_id)

        topology.internet_gateway_id = compute.create_gateway()
        compute.attach_gateway(topology.internet_gateway_id, topology.network_id)
        log(f"Attached internet gateway '{topology.internet_gateway_id}'")

        zones = compute.list_zones()
        if not zones:
            raise ControlPlaneError("list availability zones for", topology.network_id, "none available")
        zone = zones[0]

        topology.subnet_id = compute.create_subnet(topology.network_id, SUBNET_CIDR, zone)
        compute.enable_public_assign(topology.subnet_id)
        log(f"Created subnet '{topology.subnet_id}' in '{zone}'")

        topology.route_table_id = compute.create_route_table(topology.network_id)
        compute.create_default_route(topology.route_table_id, topology.internet_gateway_id)
        topology.route_table_association_id = compute.associate_route_table(
            topology.route_table_id, topology.subnet_id
        )
        log(f"Created route table '{topology.route_table_id}'")

    def teardown(self, topology: NetworkTopology) -> list[BestEffortFailure]:
        """Delete a tool-created network in reverse creation order.

        Every step is attempted even when an earlier one failed. Each id is
        blanked once its resource is deleted, and the whole topology is
        cleared when nothing is left, so a retry only repeats failed steps.

        :param topology: Topology recorded at create time
        :return: The steps that failed (empty on full success)
        """
        compute = self.compute
        failures: list[BestEffortFailure] = []
        network_id = topology.network_id

        def attempt(
            step: str, field: str, fn: Callable[[str], None], clear: bool = True
        ) -> None:
            resource = getattr(topology, field)
            if not resource:
                return
            try:
                fn(resource)
            except StackVMError as e:
                warn(f"{step} '{resource}' failed: {e}")
                failures.append(BestEffortFailure.from_error(step, resource, e))
                return
            if clear:
                setattr(topology, field, "")

        attempt(
            "disassociate route table",
            "route_table_association_id",
            compute.disassociate_route_table,
        )
        attempt("delete route table", "route_table_id", compute.delete_route_table)
        attempt("delete subnet", "subnet_id", compute.delete_subnet)
        if topology.network_id:
            # the gateway id is still needed for the delete below
            attempt(
                "detach internet gateway",
                "internet_gateway_id",
                lambda gateway_id: compute.detach_gateway(gateway_id, topology.network_id),
                clear=False,
            )
        attempt("delete internet gateway", "internet_gateway_id", compute.delete_gateway)
        attempt("delete network", "network_id", compute.delete_network)

        if topology.is_empty:
            topology.clear()
            log(f"Network '{network_id}' removed")
        return failures
