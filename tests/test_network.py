import pytest

from stackvm.errors import BestEffortFailure, ControlPlaneError, WaitTimeoutError
from stackvm.network import NETWORK_CIDR, SUBNET_CIDR, NetworkResolver
from stackvm.types import NetworkTopology, VMSpecification

CREATE_METHODS = {
    "create_network",
    "create_gateway",
    "create_subnet",
    "create_route_table",
    "associate_route_table",
}


def test_explicit_network_is_used_as_is(cloud, compute):
    spec = VMSpecification(name="web", network_id="vpc-abc", subnet_id="subnet-abc")
    topology = NetworkResolver(compute).resolve(spec)

    assert topology.network_id == "vpc-abc"
    assert topology.subnet_id == "subnet-abc"
    assert topology.created is False
    assert cloud.calls == []


def test_default_network_is_reused(cloud, compute):
    topology = NetworkResolver(compute).resolve(VMSpecification(name="web"))

    assert topology.network_id == "vpc-default"
    assert topology.subnet_id == "subnet-default"
    assert topology.created is False
    assert not CREATE_METHODS & set(cloud.methods())


def test_missing_default_network_builds_one(cloud, compute):
    compute.default_network = None
    topology = NetworkResolver(compute).resolve(VMSpecification(name="web"))

    assert topology.created is True
    assert all(
        [
            topology.network_id,
            topology.subnet_id,
            topology.internet_gateway_id,
            topology.route_table_id,
            topology.route_table_association_id,
        ]
    )
    assert ("create_network", NETWORK_CIDR) in cloud.calls
    assert (
        "create_subnet",
        topology.network_id,
        SUBNET_CIDR,
        "us-east-1a",
    ) in cloud.calls
    assert (
        "create_default_route",
        topology.route_table_id,
        topology.internet_gateway_id,
    ) in cloud.calls
    methods = cloud.methods()
    assert methods.index("wait_network_available") < methods.index("create_gateway")


def test_partial_creation_keeps_ids_for_cleanup(cloud, compute):
    compute.default_network = None
    cloud.fail_on["create_subnet"] = ControlPlaneError("create subnet in", "vpc", "boom")
    topology = NetworkTopology()

    with pytest.raises(ControlPlaneError):
        NetworkResolver(compute).resolve(VMSpecification(name="web"), topology)

    assert topology.created is True
    assert topology.network_id.startswith("vpc-")
    assert topology.internet_gateway_id.startswith("igw-")
    assert topology.subnet_id == ""


def test_no_zones_fails(compute):
    compute.default_network = None
    compute.zones = []
    with pytest.raises(ControlPlaneError, match="availability zones"):
        NetworkResolver(compute).resolve(VMSpecification(name="web"))


def test_teardown_runs_in_reverse_order(cloud, compute):
    topology = NetworkTopology(
        network_id="vpc-1",
        subnet_id="subnet-1",
        internet_gateway_id="igw-1",
        route_table_id="rtb-1",
        route_table_association_id="rtbassoc-1",
        created=True,
    )
    failures = NetworkResolver(compute).teardown(topology)

    assert failures == []
    assert cloud.methods() == [
        "disassociate_route_table",
        "delete_route_table",
        "delete_subnet",
        "detach_gateway",
        "delete_gateway",
        "delete_network",
    ]


def test_teardown_continues_past_failures(cloud, compute):
    cloud.fail_on["delete_subnet"] = ControlPlaneError("delete subnet", "subnet-1", "DependencyViolation")
    topology = NetworkTopology(
        network_id="vpc-1",
        subnet_id="subnet-1",
        internet_gateway_id="igw-1",
        route_table_id="rtb-1",
        route_table_association_id="rtbassoc-1",
        created=True,
    )
    failures = NetworkResolver(compute).teardown(topology)

    assert [f.resource for f in failures] == ["subnet-1"]
    assert failures[0].error == "DependencyViolation"
    assert "delete_network" in cloud.methods()
    assert topology == NetworkTopology(subnet_id="subnet-1", created=True)


def test_teardown_retry_repeats_only_failed_steps(cloud, compute):
    cloud.fail_on["delete_gateway"] = ControlPlaneError("delete internet gateway", "igw-1", "Throttling")
    cloud.fail_on["delete_network"] = ControlPlaneError("delete VPC", "vpc-1", "DependencyViolation")
    topology = NetworkTopology(
        network_id="vpc-1",
        subnet_id="subnet-1",
        internet_gateway_id="igw-1",
        route_table_id="rtb-1",
        route_table_association_id="rtbassoc-1",
        created=True,
    )
    resolver = NetworkResolver(compute)
    resolver.teardown(topology)

    cloud.fail_on.clear()
    cloud.calls.clear()
    failures = resolver.teardown(topology)

    assert failures == []
    assert cloud.calls == [
        ("detach_gateway", "igw-1", "vpc-1"),
        ("delete_gateway", "igw-1"),
        ("delete_network", "vpc-1"),
    ]
    assert topology.is_empty
    assert topology.created is False


def test_teardown_skips_missing_ids(cloud, compute):
    topology = NetworkTopology(network_id="vpc-1", internet_gateway_id="igw-1", created=True)
    NetworkResolver(compute).teardown(topology)
    assert cloud.methods() == ["detach_gateway", "delete_gateway", "delete_network"]


def test_teardown_failure_keeps_full_text_of_other_errors(cloud, compute):
    cloud.fail_on["delete_network"] = WaitTimeoutError("delete VPC", "vpc-1", 30)
    topology = NetworkTopology(network_id="vpc-1", created=True)

    failures = NetworkResolver(compute).teardown(topology)

    assert failures == [
        BestEffortFailure(
            "delete network", "vpc-1", "timed out after 30s waiting to delete VPC vpc-1"
        )
    ]
    assert topology.network_id == "vpc-1"
