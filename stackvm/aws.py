"""AWS implementations of the control-plane services on boto3."""

import configparser
import os
from datetime import datetime, timezone
from threading import Event

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

from .errors import ControlPlaneError, ValidationError
from .template import OUTPUT_INSTANCE_ID, OUTPUT_PUBLIC_IP, OUTPUT_SECURITY_GROUP_ID
from .types import RecordType, StackOutputs
from .utils import log
from .waiters import poll_until

MANAGED_BY = "stackvm"

STACK_CREATE_FAILED = {
    "CREATE_FAILED",
    "ROLLBACK_IN_PROGRESS",
    "ROLLBACK_FAILED",
    "ROLLBACK_COMPLETE",
    "DELETE_IN_PROGRESS",
    "DELETE_FAILED",
    "DELETE_COMPLETE",
}
STACK_DELETE_FAILED = {"DELETE_FAILED"}
STACK_GONE = "DELETE_COMPLETE"


def get_aws_config(profile: str | None = None, region: str | None = None) -> dict:
    """Load AWS configuration for boto3 session initialization.

    Reads profile and region from config files and environment variables.
    Does not validate credentials.

    :param profile: Explicit AWS profile name (overrides AWS_PROFILE env var)
    :param region: Explicit region (overrides AWS_REGION env var)
    :return: Dict with profile_name and/or region_name keys for boto3.Session()
    """
    load_dotenv()

    aws_config = {}
    available_profiles = set()
    for path in ["~/.aws/credentials", "~/.aws/config"]:
        path = os.path.expanduser(path)
        if os.path.exists(path):
            cfg = configparser.ConfigParser()
            cfg.read(path)
            for section in cfg.sections():
                if section.startswith("profile "):
                    available_profiles.add(section[8:])
                else:
                    available_profiles.add(section)

    profile_name = profile or os.getenv("AWS_PROFILE")
    if profile_name:
        if profile_name in available_profiles:
            aws_config["profile_name"] = profile_name
        else:
            log(f"AWS profile '{profile_name}' not found, using default credential chain...")
            os.environ.pop("AWS_PROFILE", None)

    region = region or os.getenv("AWS_REGION")
    if region:
        aws_config["region_name"] = region

    return aws_config


def _tags(resource_type: str, name: str) -> list[dict]:
    return [
        {
            "ResourceType": resource_type,
            "Tags": [
                {"Key": "Name", "Value": name},
                {"Key": "ManagedBy", "Value": MANAGED_BY},
                {"Key": "CreatedAt", "Value": datetime.now(timezone.utc).isoformat()},
            ],
        }
    ]


def _detail(e: Exception) -> str:
    if isinstance(e, ClientError):
        err = e.response.get("Error", {})
        return f"{err.get('Code', 'Unknown')}: {err.get('Message', str(e))}"
    return str(e)


def _ec2_gone(e: ClientError) -> bool:
    code = e.response.get("Error", {}).get("Code", "")
    return code.endswith(".NotFound") or code == "Gateway.NotAttached"


def _record_gone(e: ClientError) -> bool:
    err = e.response.get("Error", {})
    return err.get("Code") == "InvalidChangeBatch" and "not found" in err.get("Message", "")


class _Calls:
    """Wraps boto3 errors into ControlPlaneError naming operation and resource."""

    def _call(self, operation: str, resource: str, fn, **kwargs):
        try:
            return fn(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise ControlPlaneError(operation, resource, _detail(e)) from e

    def _remove(self, operation: str, resource: str, gone, fn, **kwargs) -> None:
        """Like _call, but a ClientError matching ``gone`` counts as removed."""
        try:
            fn(**kwargs)
        except ClientError as e:
            if not gone(e):
                raise ControlPlaneError(operation, resource, _detail(e)) from e
            log(f"'{resource}' already gone: {_detail(e)}")
        except BotoCoreError as e:
            raise ControlPlaneError(operation, resource, _detail(e)) from e


class CloudFormationStackService(_Calls):
    def __init__(self, client, *, poll_delay: float = 10.0):
        self.client = client
        self.poll_delay = poll_delay

    def create_stack(self, name: str, template: str, parameters: dict[str, str]) -> str:
        response = self._call(
            "create stack",
            name,
            self.client.create_stack,
            StackName=name,
            TemplateBody=template,
            Parameters=[
                {"ParameterKey": key, "ParameterValue": value}
                for key, value in parameters.items()
            ],
            Tags=[{"Key": "ManagedBy", "Value": MANAGED_BY}],
        )
        return response["StackId"]

    def delete_stack(self, name: str) -> None:
        self._call("delete stack", name, self.client.delete_stack, StackName=name)

    def _stack_status(self, name: str, missing: str | None = None) -> str:
        try:
            stacks = self.client.describe_stacks(StackName=name)["Stacks"]
        except ClientError as e:
            if missing and "does not exist" in _detail(e):
                return missing
            raise ControlPlaneError("describe stack", name, _detail(e)) from e
        except BotoCoreError as e:
            raise ControlPlaneError("describe stack", name, _detail(e)) from e
        if not stacks:
            if missing:
                return missing
            raise ControlPlaneError("describe stack", name, "not found")
        return stacks[0]["StackStatus"]

    def wait_for_create(self, name: str, timeout: float, cancel: Event | None = None) -> None:
        poll_until(
            lambda: self._stack_status(name),
            success={"CREATE_COMPLETE"},
            failure=STACK_CREATE_FAILED,
            operation="create stack",
            resource=name,
            timeout=timeout,
            delay=self.poll_delay,
            cancel=cancel,
        )

    def wait_for_delete(self, name: str, timeout: float, cancel: Event | None = None) -> None:
        poll_until(
            lambda: self._stack_status(name, missing=STACK_GONE),
            success={STACK_GONE},
            failure=STACK_DELETE_FAILED,
            operation="delete stack",
            resource=name,
            timeout=timeout,
            delay=self.poll_delay,
            cancel=cancel,
        )

    def describe_stack(self, name: str) -> StackOutputs:
        stacks = self._call(
            "describe stack", name, self.client.describe_stacks, StackName=name
        )["Stacks"]
        if not stacks:
            raise ControlPlaneError("describe stack", name, "not found")
        outputs = {
            o["OutputKey"]: o["OutputValue"] for o in stacks[0].get("Outputs") or []
        }
        if not outputs:
            raise ControlPlaneError("read outputs of stack", name, "stack has no outputs")
        return StackOutputs(
            instance_id=outputs.get(OUTPUT_INSTANCE_ID, ""),
            public_ip=outputs.get(OUTPUT_PUBLIC_IP, ""),
            security_group_id=outputs.get(OUTPUT_SECURITY_GROUP_ID, ""),
        )


class EC2ComputeService(_Calls):
    def __init__(self, client, *, poll_delay: float = 5.0):
        self.client = client
        self.poll_delay = poll_delay

    def find_default_network(self) -> str | None:
        vpcs = self._call(
            "describe",
            "default VPC",
            self.client.describe_vpcs,
            Filters=[{"Name": "is-default", "Values": ["true"]}],
        )["Vpcs"]
        return vpcs[0]["VpcId"] if vpcs else None

    def find_subnet(self, network_id: str) -> str:
        """Return a subnet in the VPC, preferring one that maps public IPs."""
        subnets = self._call(
            "describe subnets of",
            network_id,
            self.client.describe_subnets,
            Filters=[{"Name": "vpc-id", "Values": [network_id]}],
        )["Subnets"]
        if not subnets:
            raise ControlPlaneError("find a subnet in", network_id, "VPC has no subnets")
        public = [s for s in subnets if s.get("MapPublicIpOnLaunch")]
        chosen = public[0] if public else subnets[0]
        return chosen["SubnetId"]

    def create_network(self, cidr: str) -> str:
        response = self._call(
            "create VPC",
            cidr,
            self.client.create_vpc,
            CidrBlock=cidr,
            TagSpecifications=_tags("vpc", f"{MANAGED_BY}-vpc"),
        )
        return response["Vpc"]["VpcId"]

    def _vpc_state(self, network_id: str) -> str:
        vpcs = self._call(
            "describe VPC", network_id, self.client.describe_vpcs, VpcIds=[network_id]
        )["Vpcs"]
        return vpcs[0]["State"] if vpcs else "missing"

    def wait_network_available(
        self, network_id: str, timeout: float, cancel: Event | None = None
    ) -> None:
        poll_until(
            lambda: self._vpc_state(network_id),
            success={"available"},
            failure={"missing"},
            operation="wait for VPC",
            resource=network_id,
            timeout=timeout,
            delay=self.poll_delay,
            cancel=cancel,
        )

    def enable_dns_hostnames(self, network_id: str) -> None:
        self._call(
            "enable DNS hostnames on",
            network_id,
            self.client.modify_vpc_attribute,
            VpcId=network_id,
            EnableDnsHostnames={"Value": True},
        )

    def create_gateway(self) -> str:
        response = self._call(
            "create",
            "internet gateway",
            self.client.create_internet_gateway,
            TagSpecifications=_tags("internet-gateway", f"{MANAGED_BY}-igw"),
        )
        return response["InternetGateway"]["InternetGatewayId"]

    def attach_gateway(self, gateway_id: str, network_id: str) -> None:
        self._call(
            "attach internet gateway",
            gateway_id,
            self.client.attach_internet_gateway,
            InternetGatewayId=gateway_id,
            VpcId=network_id,
        )

    def list_zones(self) -> list[str]:
        zones = self._call(
            "describe",
            "availability zones",
            self.client.describe_availability_zones,
            Filters=[{"Name": "state", "Values": ["available"]}],
        )["AvailabilityZones"]
        return [z["ZoneName"] for z in zones]

    def create_subnet(self, network_id: str, cidr: str, zone: str) -> str:
        response = self._call(
            "create subnet in",
            network_id,
            self.client.create_subnet,
            VpcId=network_id,
            CidrBlock=cidr,
            AvailabilityZone=zone,
            TagSpecifications=_tags("subnet", f"{MANAGED_BY}-public-subnet"),
        )
        return response["Subnet"]["SubnetId"]

    def enable_public_assign(self, subnet_id: str) -> None:
        self._call(
            "enable public IP assignment on",
            subnet_id,
            self.client.modify_subnet_attribute,
            SubnetId=subnet_id,
            MapPublicIpOnLaunch={"Value": True},
        )

    def create_route_table(self, network_id: str) -> str:
        response = self._call(
            "create route table in",
            network_id,
            self.client.create_route_table,
            VpcId=network_id,
            TagSpecifications=_tags("route-table", f"{MANAGED_BY}-public-rt"),
        )
        return response["RouteTable"]["RouteTableId"]

    def create_default_route(self, route_table_id: str, gateway_id: str) -> None:
        self._call(
            "create default route in",
            route_table_id,
            self.client.create_route,
            RouteTableId=route_table_id,
            DestinationCidrBlock="0.0.0.0/0",
            GatewayId=gateway_id,
        )

    def associate_route_table(self, route_table_id: str, subnet_id: str) -> str:
        response = self._call(
            "associate route table",
            route_table_id,
            self.client.associate_route_table,
            RouteTableId=route_table_id,
            SubnetId=subnet_id,
        )
        return response["AssociationId"]

    def disassociate_route_table(self, association_id: str) -> None:
        self._remove(
            "disassociate route table",
            association_id,
            _ec2_gone,
            self.client.disassociate_route_table,
            AssociationId=association_id,
        )

    def delete_route_table(self, route_table_id: str) -> None:
        self._remove(
            "delete route table",
            route_table_id,
            _ec2_gone,
            self.client.delete_route_table,
            RouteTableId=route_table_id,
        )

    def delete_subnet(self, subnet_id: str) -> None:
        self._remove(
            "delete subnet",
            subnet_id,
            _ec2_gone,
            self.client.delete_subnet,
            SubnetId=subnet_id,
        )

    def detach_gateway(self, gateway_id: str, network_id: str) -> None:
        self._remove(
            "detach internet gateway",
            gateway_id,
            _ec2_gone,
            self.client.detach_internet_gateway,
            InternetGatewayId=gateway_id,
            VpcId=network_id,
        )

    def delete_gateway(self, gateway_id: str) -> None:
        self._remove(
            "delete internet gateway",
            gateway_id,
            _ec2_gone,
            self.client.delete_internet_gateway,
            InternetGatewayId=gateway_id,
        )

    def delete_network(self, network_id: str) -> None:
        self._remove(
            "delete VPC", network_id, _ec2_gone, self.client.delete_vpc, VpcId=network_id
        )

    def stop_instance(self, instance_id: str) -> None:
        self._call(
            "stop instance",
            instance_id,
            self.client.stop_instances,
            InstanceIds=[instance_id],
        )

    def start_instance(self, instance_id: str) -> None:
        self._call(
            "start instance",
            instance_id,
            self.client.start_instances,
            InstanceIds=[instance_id],
        )

    def describe_instance(self, instance_id: str) -> tuple[str, str]:
        reservations = self._call(
            "describe instance",
            instance_id,
            self.client.describe_instances,
            InstanceIds=[instance_id],
        )["Reservations"]
        if not reservations or not reservations[0]["Instances"]:
            raise ControlPlaneError("describe instance", instance_id, "not found")
        instance = reservations[0]["Instances"][0]
        return instance["State"]["Name"], instance.get("PublicIpAddress", "")


def _with_dot(name: str) -> str:
    return name if name.endswith(".") else name + "."


class Route53DNSService(_Calls):
    def __init__(self, client):
        self.client = client

    def find_zone(self, domain: str) -> str:
        """Find the hosted zone whose name is exactly ``domain``.

        :return: Zone id without the ``/hostedzone/`` prefix
        """
        dns_name = _with_dot(domain)
        zones = self._call(
            "find hosted zone for",
            domain.rstrip("."),
            self.client.list_hosted_zones_by_name,
            DNSName=dns_name,
        )["HostedZones"]
        for zone in zones:
            if zone["Name"] == dns_name:
                return zone["Id"].removeprefix("/hostedzone/")
        raise ControlPlaneError("find hosted zone for", domain.rstrip("."), "no such zone")

    def _change(
        self, action: str, zone_id: str, name: str, type: RecordType, value: str, ttl: int
    ) -> None:
        if type == "CNAME":
            value = _with_dot(value)
        operation = f"{action.lower()} {type} record"
        request = dict(
            HostedZoneId=zone_id,
            ChangeBatch={
                "Changes": [
                    {
                        "Action": action,
                        "ResourceRecordSet": {
                            "Name": _with_dot(name),
                            "Type": type,
                            "TTL": ttl,
                            "ResourceRecords": [{"Value": value}],
                        },
                    }
                ]
            },
        )
        fn = self.client.change_resource_record_sets
        if action == "DELETE":
            self._remove(operation, name, _record_gone, fn, **request)
        else:
            self._call(operation, name, fn, **request)

    def upsert_record(
        self, zone_id: str, name: str, type: RecordType, value: str, ttl: int
    ) -> None:
        self._change("UPSERT", zone_id, name, type, value, ttl)

    def delete_record(
        self, zone_id: str, name: str, type: RecordType, value: str, ttl: int
    ) -> None:
        self._change("DELETE", zone_id, name, type, value, ttl)


class SSMParameterService(_Calls):
    def __init__(self, client):
        self.client = client

    def get_parameter(self, path: str) -> str:
        response = self._call(
            "get parameter", path, self.client.get_parameter, Name=path
        )
        return response["Parameter"]["Value"]


class AWSServices:
    """The four services built from one boto3 session."""

    def __init__(self, region: str | None = None, profile: str | None = None):
        self.aws_config = get_aws_config(profile=profile, region=region)
        self.session = boto3.Session(**self.aws_config)
        self.region = self.session.region_name
        self.stacks = CloudFormationStackService(self.session.client("cloudformation"))
        self.compute = EC2ComputeService(self.session.client("ec2"))
        self.dns = Route53DNSService(self.session.client("route53"))
        self.parameters = SSMParameterService(self.session.client("ssm"))

    def validate_auth(self) -> None:
        """Fail fast with a clear error if credentials are missing or expired.

        :raises ValidationError: If the caller identity cannot be read
        """
        profile = self.aws_config.get("profile_name")
        try:
            identity = self.session.client("sts").get_caller_identity()
        except ClientError as e:
            code = e.response["Error"]["Code"]
            if code in ("ExpiredToken", "ExpiredTokenException"):
                login_cmd = f"aws sso login --profile {profile}" if profile else "aws sso login"
                raise ValidationError(f"AWS credentials expired. Run:\n  {login_cmd}") from e
            raise ValidationError(f"AWS authentication failed ({code}): {e}") from e
        except BotoCoreError as e:
            raise ValidationError(f"AWS authentication failed: {e}") from e
        account = identity.get("Account", "unknown")
        log(f"AWS: region={self.region}  profile={profile or 'default'}  account={account}")
