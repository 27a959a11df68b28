"""Hosted-zone resolution and record management."""

import dns.exception
import dns.resolver

from .clients import DNSService
from .errors import BestEffortFailure, StackVMError
from .types import DNSRecord, DNSRecordSet
from .utils import log, warn


def build_fqdn(hostname: str, domain: str) -> str:
    return f"{hostname}.{domain}"


def normalize_domain(name: str) -> str:
    """Strip the trailing root dot so names compare equal across conventions."""
    return name.rstrip(".")


class DNSRecordManager:
    def __init__(self, dns_service: DNSService):
        self.dns = dns_service

    def resolve_zone(self, domain: str, cached_zone_id: str = "") -> str:
        """Return the hosted zone id for ``domain``, reusing a cached id.

        :param domain: Zone apex (with or without trailing dot)
        :param cached_zone_id: Zone id from a previous resolution, if any
        :return: Hosted zone id
        """
        if cached_zone_id:
            return cached_zone_id
        zone_id = self.dns.find_zone(normalize_domain(domain))
        log(f"Found hosted zone '{zone_id}' for '{domain}'")
        return zone_id

    def create_records(
        self,
        record_set: DNSRecordSet,
        hostname: str,
        domain: str,
        ip: str,
        ttl: int,
        is_apex: bool = False,
        aliases: list[str] | None = None,
    ) -> list[DNSRecord]:
        """Upsert the address and alias records for one host.

        Order is hostname A record, apex A record (if ``is_apex``), then one
        CNAME per alias. Each record is appended to ``record_set.records``
        only after its upsert succeeded. ``record_set.zone_id`` must already
        be resolved.

        :return: The records written
        """
        domain = normalize_domain(domain)
        fqdn = build_fqdn(hostname, domain)
        record_set.fqdn = fqdn

        self._write(record_set, DNSRecord(fqdn, "A", ip, ttl))
        if is_apex:
            self._write(record_set, DNSRecord(domain, "A", ip, ttl))
        for alias in aliases or []:
            self._write(record_set, DNSRecord(build_fqdn(alias, domain), "CNAME", fqdn, ttl))

        log(f"DNS: '{fqdn}' -> '{ip}' ({len(record_set.records)} record(s))")
        return record_set.records

    def _write(self, record_set: DNSRecordSet, record: DNSRecord) -> None:
        self.dns.upsert_record(
            record_set.zone_id, record.name, record.type, record.value, record.ttl
        )
        record_set.records.append(record)

    def delete_records(
        self, zone_id: str, records: list[DNSRecord]
    ) -> tuple[list[DNSRecord], list[BestEffortFailure]]:
        """Delete every stored record, continuing past individual failures.

        :return: (records still in the zone, one failure per such record)
        """
        remaining = []
        failures = []
        for record in records:
            step = f"delete {record.type} record"
            try:
                self.dns.delete_record(
                    zone_id, record.name, record.type, record.value, record.ttl
                )
                log(f"Deleted {record.type} record '{record.name}'")
            except StackVMError as e:
                warn(f"{step} '{record.name}' failed: {e}")
                remaining.append(record)
                failures.append(BestEffortFailure.from_error(step, record.name, e))
        return remaining, failures

    def swap(
        self,
        record_set: DNSRecordSet,
        hostname: str,
        domain: str,
        ip: str,
        ttl: int,
        is_apex: bool = False,
        aliases: list[str] | None = None,
        cached_zone_id: str = "",
    ) -> list[DNSRecord]:
        """Re-point an existing host's records at ``ip``.

        Upserts are idempotent, so this is safe to repeat. The record list is
        replaced by what this call wrote.
        """
        record_set.zone_id = self.resolve_zone(domain, cached_zone_id)
        written = DNSRecordSet(zone_id=record_set.zone_id)
        try:
            return self.create_records(written, hostname, domain, ip, ttl, is_apex, aliases)
        finally:
            record_set.fqdn = written.fqdn
            record_set.records = _merge(record_set.records, written.records)


def _merge(previous: list[DNSRecord], written: list[DNSRecord]) -> list[DNSRecord]:
    """Written records replace previous ones of the same name and type."""
    keys = {(r.name, r.type) for r in written}
    kept = [r for r in previous if (r.name, r.type) not in keys]
    return written + kept


def resolve_a_record(name: str, nameserver: str = "8.8.8.8") -> str | None:
    """Resolve a name to its first IPv4 address through a public resolver.

    :param nameserver: DNS nameserver IP (default: 8.8.8.8)
    :return: First A record IP or None
    """
    try:
        resolver = dns.resolver.Resolver()
        resolver.nameservers = [nameserver]
        answer = resolver.resolve(name, "A")
        return str(answer[0]) if answer else None
    except dns.exception.DNSException:
        return None
