"""In-memory control-plane fakes, plus a session fixture for live AWS tests."""

from itertools import count
from pathlib import Path
from uuid import uuid4

import pytest

from stackvm.errors import ControlPlaneError
from stackvm.images import OS_PARAMETER_PATHS
from stackvm.orchestrator import ProvisioningOrchestrator
from stackvm.types import DNSSettings, StackOutputs, VMSpecification


class FakeCloud:
    """Shared call log and failure injection for the fake services.

    ``fail_on["delete_record"] = ControlPlaneError(...)`` makes every call of
    that method raise. Use ``fail_when`` to fail only for matching arguments.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}
        self.fail_when: dict[str, tuple] = {}
        self._ids = count(1)

    def record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        if method in self.fail_on:
            raise self.fail_on[method]
        if method in self.fail_when:
            match, exc = self.fail_when[method]
            if match(*args):
                raise exc

    def new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids):04d}"

    def methods(self) -> list[str]:
        return [c[0] for c in self.calls]


class FakeStackService:
    def __init__(self, cloud: FakeCloud):
        self.cloud = cloud
        self.stacks: dict[str, dict] = {}

    def create_stack(self, name, template, parameters):
        self.cloud.record("create_stack", name, parameters)
        stack_id = f"arn:aws:cloudformation:us-east-1:123456789012:stack/{name}/{uuid4()}"
        self.stacks[name] = {"id": stack_id, "parameters": parameters}
        return stack_id

    def delete_stack(self, name):
        self.cloud.record("delete_stack", name)
        self.stacks.pop(name, None)

    def wait_for_create(self, name, timeout, cancel=None):
        self.cloud.record("wait_for_create", name)

    def wait_for_delete(self, name, timeout, cancel=None):
        self.cloud.record("wait_for_delete", name)

    def describe_stack(self, name):
        self.cloud.record("describe_stack", name)
        number = list(self.stacks).index(name) + 10
        return StackOutputs(
            instance_id=f"i-{number:04d}",
            public_ip=f"54.0.0.{number}",
            security_group_id=f"sg-{number:04d}",
        )


class FakeComputeService:
    def __init__(self, cloud: FakeCloud, default_network: str | None = "vpc-default"):
        self.cloud = cloud
        self.default_network = default_network
        self.zones = ["us-east-1a", "us-east-1b"]
        self.instances: dict[str, tuple[str, str]] = {}

    def find_default_network(self):
        self.cloud.record("find_default_network")
        return self.default_network

    def find_subnet(self, network_id):
        self.cloud.record("find_subnet", network_id)
        return "subnet-default"

    def create_network(self, cidr):
        self.cloud.record("create_network", cidr)
        return self.cloud.new_id("vpc")

    def wait_network_available(self, network_id, timeout, cancel=None):
        self.cloud.record("wait_network_available", network_id)

    def enable_dns_hostnames(self, network_id):
        self.cloud.record("enable_dns_hostnames", network_id)

    def create_gateway(self):
        self.cloud.record("create_gateway")
        return self.cloud.new_id("igw")

    def attach_gateway(self, gateway_id, network_id):
        self.cloud.record("attach_gateway", gateway_id, network_id)

    def list_zones(self):
        self.cloud.record("list_zones")
        return list(self.zones)

    def create_subnet(self, network_id, cidr, zone):
        self.cloud.record("create_subnet", network_id, cidr, zone)
        return self.cloud.new_id("subnet")

    def enable_public_assign(self, subnet_id):
        self.cloud.record("enable_public_assign", subnet_id)

    def create_route_table(self, network_id):
        self.cloud.record("create_route_table", network_id)
        return self.cloud.new_id("rtb")

    def create_default_route(self, route_table_id, gateway_id):
        self.cloud.record("create_default_route", route_table_id, gateway_id)

    def associate_route_table(self, route_table_id, subnet_id):
        self.cloud.record("associate_route_table", route_table_id, subnet_id)
        return self.cloud.new_id("rtbassoc")

    def disassociate_route_table(self, association_id):
        self.cloud.record("disassociate_route_table", association_id)

    def delete_route_table(self, route_table_id):
        self.cloud.record("delete_route_table", route_table_id)

    def delete_subnet(self, subnet_id):
        self.cloud.record("delete_subnet", subnet_id)

    def detach_gateway(self, gateway_id, network_id):
        self.cloud.record("detach_gateway", gateway_id, network_id)

    def delete_gateway(self, gateway_id):
        self.cloud.record("delete_gateway", gateway_id)

    def delete_network(self, network_id):
        self.cloud.record("delete_network", network_id)

    def stop_instance(self, instance_id):
        self.cloud.record("stop_instance", instance_id)
        self.instances[instance_id] = ("stopping", "")

    def start_instance(self, instance_id):
        self.cloud.record("start_instance", instance_id)

    def describe_instance(self, instance_id):
        self.cloud.record("describe_instance", instance_id)
        return self.instances.get(instance_id, ("running", "54.0.0.10"))


class FakeDNSService:
    def __init__(self, cloud: FakeCloud, zones: dict[str, str] | None = None):
        self.cloud = cloud
        self.zones = zones if zones is not None else {"example.com": "Z123"}
        self.records: dict[tuple[str, str, str], str] = {}

    def find_zone(self, domain):
        self.cloud.record("find_zone", domain)
        if domain not in self.zones:
            raise ControlPlaneError("find hosted zone for", domain, "no such zone")
        return self.zones[domain]

    def upsert_record(self, zone_id, name, type, value, ttl):
        self.cloud.record("upsert_record", zone_id, name, type, value, ttl)
        self.records[(zone_id, name, type)] = value

    def delete_record(self, zone_id, name, type, value, ttl):
        self.cloud.record("delete_record", zone_id, name, type, value, ttl)
        self.records.pop((zone_id, name, type), None)


class FakeParameterService:
    def __init__(self, cloud: FakeCloud):
        self.cloud = cloud

    def get_parameter(self, path):
        self.cloud.record("get_parameter", path)
        os_name = next(k for k, v in OS_PARAMETER_PATHS.items() if v == path)
        return f"ami-{os_name.replace('.', '')}"


@pytest.fixture
def cloud():
    return FakeCloud()


@pytest.fixture
def stacks(cloud):
    return FakeStackService(cloud)


@pytest.fixture
def compute(cloud):
    return FakeComputeService(cloud)


@pytest.fixture
def dns_service(cloud):
    return FakeDNSService(cloud)


@pytest.fixture
def parameters(cloud):
    return FakeParameterService(cloud)


@pytest.fixture
def orchestrator(stacks, compute, dns_service, parameters):
    return ProvisioningOrchestrator(stacks, compute, dns_service, parameters)


@pytest.fixture
def devbox_spec():
    return VMSpecification(
        name="devbox",
        dns=DNSSettings(domain="example.com", hostname="dev", aliases=["www", "api"]),
    )


# Live AWS fixtures, only used by tests marked integration.


def pytest_addoption(parser):
    parser.addoption(
        "--region",
        default="us-east-1",
        help="AWS region for integration tests (default: us-east-1)",
    )
    parser.addoption(
        "--domain",
        default=None,
        help="Route53 hosted zone for integration DNS tests (skipped if unset)",
    )


@pytest.fixture(scope="session")
def region(request):
    return request.config.getoption("--region")


@pytest.fixture(scope="session")
def live_domain(request):
    return request.config.getoption("--domain")


@pytest.fixture(scope="session")
def live_stack_folder(tmp_path_factory) -> Path:
    return tmp_path_factory.mktemp("stacks")
