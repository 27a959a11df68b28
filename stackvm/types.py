"""Type definitions for stackvm.

``ProvisioningState`` is persisted between invocations, so every stateful
type here round-trips through ``to_dict()`` / ``from_dict()``.
"""

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Literal

RecordType = Literal["A", "CNAME"]

DEFAULT_INSTANCE_TYPE = "t3.micro"
DEFAULT_OS = "ubuntu-24.04"
DEFAULT_REGION = "us-east-1"
DEFAULT_TTL = 300


def _known(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class DNSSettings:
    """Requested DNS layout for a VM."""

    domain: str
    hostname: str = ""
    ttl: int = DEFAULT_TTL
    is_apex: bool = False
    aliases: list[str] = field(default_factory=list)

    def hostname_for(self, vm_name: str) -> str:
        return self.hostname or vm_name

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DNSSettings":
        data = _known(cls, data)
        data["aliases"] = list(data.get("aliases") or [])
        return cls(**data)


@dataclass(frozen=True)
class VMSpecification:
    """Immutable input to ProvisioningOrchestrator.create."""

    name: str
    instance_type: str = DEFAULT_INSTANCE_TYPE
    os: str = DEFAULT_OS
    region: str = DEFAULT_REGION
    network_id: str = ""
    subnet_id: str = ""
    dns: DNSSettings | None = None

    @property
    def has_explicit_network(self) -> bool:
        return bool(self.network_id and self.subnet_id)


@dataclass
class NetworkTopology:
    network_id: str = ""
    subnet_id: str = ""
    internet_gateway_id: str = ""
    route_table_id: str = ""
    route_table_association_id: str = ""
    created: bool = False  # this tool owns the network and must tear it down

    @property
    def is_empty(self) -> bool:
        return not any(
            [
                self.network_id,
                self.subnet_id,
                self.internet_gateway_id,
                self.route_table_id,
                self.route_table_association_id,
            ]
        )

    def clear(self) -> None:
        self.network_id = ""
        self.subnet_id = ""
        self.internet_gateway_id = ""
        self.route_table_id = ""
        self.route_table_association_id = ""
        self.created = False

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "NetworkTopology":
        return cls(**_known(cls, data))


@dataclass
class StackOutputs:
    instance_id: str
    public_ip: str
    security_group_id: str


@dataclass
class StackState:
    stack_id: str = ""
    stack_name: str = ""
    instance_id: str = ""
    public_ip: str = ""
    security_group_id: str = ""

    @property
    def is_empty(self) -> bool:
        return not any(
            [
                self.stack_id,
                self.stack_name,
                self.instance_id,
                self.public_ip,
                self.security_group_id,
            ]
        )

    def clear(self) -> None:
        self.stack_id = ""
        self.stack_name = ""
        self.instance_id = ""
        self.public_ip = ""
        self.security_group_id = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "StackState":
        return cls(**_known(cls, data))


@dataclass
class DNSRecord:
    name: str
    type: RecordType
    value: str
    ttl: int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "DNSRecord":
        return cls(**_known(cls, data))


@dataclass
class DNSRecordSet:
    """Records actually written, in write order, plus the zone they live in."""

    zone_id: str = ""
    fqdn: str = ""
    records: list[DNSRecord] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.zone_id or self.fqdn or self.records)

    def clear(self) -> None:
        self.zone_id = ""
        self.fqdn = ""
        self.records = []

    def to_dict(self) -> dict:
        return {
            "zone_id": self.zone_id,
            "fqdn": self.fqdn,
            "records": [r.to_dict() for r in self.records],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DNSRecordSet":
        return cls(
            zone_id=data.get("zone_id", ""),
            fqdn=data.get("fqdn", ""),
            records=[DNSRecord.from_dict(r) for r in data.get("records") or []],
        )


@dataclass
class ProvisioningState:
    """Everything create recorded; the only handle later commands have."""

    vm_name: str = ""
    region: str = ""
    os: str = ""
    image_id: str = ""
    dns_settings: DNSSettings | None = None
    network: NetworkTopology = field(default_factory=NetworkTopology)
    stack: StackState = field(default_factory=StackState)
    dns: DNSRecordSet = field(default_factory=DNSRecordSet)

    @property
    def is_empty(self) -> bool:
        return self.network.is_empty and self.stack.is_empty and self.dns.is_empty

    def clear(self) -> None:
        self.image_id = ""
        self.network.clear()
        self.stack.clear()
        self.dns.clear()

    def to_dict(self) -> dict:
        return {
            "vm_name": self.vm_name,
            "region": self.region,
            "os": self.os,
            "image_id": self.image_id,
            "dns_settings": self.dns_settings.to_dict() if self.dns_settings else None,
            "network": self.network.to_dict(),
            "stack": self.stack.to_dict(),
            "dns": self.dns.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ProvisioningState":
        dns_settings = data.get("dns_settings")
        return cls(
            vm_name=data.get("vm_name", ""),
            region=data.get("region", ""),
            os=data.get("os", ""),
            image_id=data.get("image_id", ""),
            dns_settings=DNSSettings.from_dict(dns_settings) if dns_settings else None,
            network=NetworkTopology.from_dict(data.get("network") or {}),
            stack=StackState.from_dict(data.get("stack") or {}),
            dns=DNSRecordSet.from_dict(data.get("dns") or {}),
        )


@dataclass
class InstanceStatus:
    name: str
    state: str
    public_ip: str


class CreatePhase(str, Enum):
    """Creation progress; a failure leaves the last phase reached."""

    START = "start"
    IMAGE_RESOLVED = "image-resolved"
    NETWORK_RESOLVED = "network-resolved"
    STACK_SUBMITTED = "stack-submitted"
    STACK_COMPLETE = "stack-complete"
    OUTPUTS_CAPTURED = "outputs-captured"
    DNS_CREATED = "dns-created"
    DONE = "done"
