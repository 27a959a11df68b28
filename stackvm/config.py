"""Load a VM configuration file into a VMSpecification."""

import json
import re
from pathlib import Path

from .errors import ValidationError
from .types import (
    DEFAULT_INSTANCE_TYPE,
    DEFAULT_OS,
    DEFAULT_REGION,
    DEFAULT_TTL,
    DNSSettings,
    VMSpecification,
)

# The name ends up in a CloudFormation stack name and a DNS label.
VALID_NAME = re.compile(r"^[a-zA-Z][a-zA-Z0-9-]{0,62}$")
VALID_LABEL = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")


def parse_config(data: dict, source: str = "config") -> VMSpecification:
    """Build a VMSpecification from a config dict, applying defaults.

    Expected shape::

        {"vm": {"name": ..., "instance_type": ..., "os": ..., "region": ...,
                "vpc_id": ..., "subnet_id": ...},
         "dns": {"domain": ..., "hostname": ..., "ttl": ...,
                 "is_apex_domain": ..., "cname_aliases": [...]}}

    :param data: Parsed JSON
    :param source: Name used in error messages
    :raises ValidationError: If required fields are missing or inconsistent
    """
    vm = data.get("vm")
    if not isinstance(vm, dict):
        raise ValidationError(f"{source}: missing required 'vm' section")

    name = vm.get("name", "")
    if not name:
        raise ValidationError(f"{source}: missing required field vm.name")
    if not VALID_NAME.match(name):
        raise ValidationError(
            f"{source}: invalid vm.name '{name}': must start with a letter and "
            "contain only letters, digits and hyphens"
        )

    network_id = vm.get("vpc_id", "")
    subnet_id = vm.get("subnet_id", "")
    if bool(network_id) != bool(subnet_id):
        raise ValidationError(f"{source}: vm.vpc_id and vm.subnet_id must be set together")

    return VMSpecification(
        name=name,
        instance_type=vm.get("instance_type") or DEFAULT_INSTANCE_TYPE,
        os=vm.get("os") or DEFAULT_OS,
        region=vm.get("region") or DEFAULT_REGION,
        network_id=network_id,
        subnet_id=subnet_id,
        dns=_parse_dns(data.get("dns"), source),
    )


def _parse_dns(dns: dict | None, source: str) -> DNSSettings | None:
    if not dns:
        return None

    domain = dns.get("domain", "").rstrip(".")
    aliases = list(dns.get("cname_aliases") or [])
    is_apex = bool(dns.get("is_apex_domain", False))
    if not domain:
        if aliases:
            raise ValidationError(f"{source}: dns.cname_aliases requires dns.domain")
        if is_apex:
            raise ValidationError(f"{source}: dns.is_apex_domain requires dns.domain")
        return None

    ttl = dns.get("ttl") or DEFAULT_TTL
    if not isinstance(ttl, int) or ttl <= 0:
        raise ValidationError(f"{source}: dns.ttl must be a positive integer")

    hostname = dns.get("hostname", "")
    for label in ([hostname] if hostname else []) + aliases:
        if not VALID_LABEL.match(label):
            raise ValidationError(f"{source}: invalid DNS label '{label}'")

    return DNSSettings(
        domain=domain, hostname=hostname, ttl=ttl, is_apex=is_apex, aliases=aliases
    )


def load_config(path: str | Path) -> VMSpecification:
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"Config file not found: create '{path}'")
    try:
        data = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON in '{path}': {e}") from e
    return parse_config(data, source=str(path))
