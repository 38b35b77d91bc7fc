"""
dnsmasqmgr/address.py - Address triples and match levels
"""

from dataclasses import dataclass, field
from enum import IntEnum
from ipaddress import IPv4Address, IPv6Address, ip_address
import logging

from dnsmasqmgr.exceptions import MalformedAddress, MalformedRequest


logger = logging.getLogger("address")


class Key(IntEnum):
    HOSTNAME = 0
    MACADDR = 1
    IPADDR = 2


class Match(IntEnum):
    NONE = 0
    PARTIAL = 1
    FULL = 2


def parse_ip(value: str) -> IPv4Address | IPv6Address:
    """
    Parse an IP address.

    IPv4-mapped IPv6 addresses are returned as plain IPv4 addresses so that
    both notations of the same address compare equal.
    """
    try:
        ip = ip_address(value.strip() if isinstance(value, str) else value)
    except ValueError:
        raise MalformedAddress(f"'{value}' does not appear to be an IP address")
    if isinstance(ip, IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


@dataclass
class Address:
    hostname: str = ""
    macaddr: str = ""
    ipaddr: str = ""

    def to_dict(self) -> dict:
        return {
            "hostname": self.hostname,
            "mac": self.macaddr,
            "ip": self.ipaddr,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Address":
        values = {}
        for attr, key in (("hostname", "hostname"), ("macaddr", "mac"), ("ipaddr", "ip")):
            value = data.get(key, "")
            if not isinstance(value, str):
                raise MalformedRequest(f"{key} must be a string")
            values[attr] = value
        return cls(**values)


@dataclass
class AddressReply:
    addr: Address = field(default_factory=Address)
    match: Match = Match.NONE
    key: Key = Key.HOSTNAME

    def escalate(self, key: Key, value: str):
        """
        Raise the match level after a collision on ``key``.

        The first collision makes the match partial and records the key, the
        second makes it full. The level never goes down.
        """
        if self.match == Match.NONE:
            self.match = Match.PARTIAL
            self.key = key
        elif self.match == Match.PARTIAL:
            self.match = Match.FULL
        logger.info(f"{key.name} {value} already present, skipped")

    def to_dict(self) -> dict:
        return {
            "address": self.addr.to_dict(),
            "match": self.match.name,
            "key": self.key.name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AddressReply":
        return cls(
            addr=Address.from_dict(data.get("address", {})),
            match=Match[data.get("match", "NONE")],
            key=Key[data.get("key", "HOSTNAME")],
        )
