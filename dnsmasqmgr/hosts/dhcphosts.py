"""
dnsmasqmgr/hosts/dhcphosts.py - dhcp-hostsfile (see man 8 dnsmasq) binding store

Only the ``<mac>,<ip>`` form is supported. Bindings are kept in an insertion
ordered dict keyed by the canonical form of the MAC address.
"""

from dataclasses import dataclass
from ipaddress import IPv4Address, IPv6Address
import logging

from dnsmasqmgr.address import parse_ip
from dnsmasqmgr.exceptions import (
    DuplicateEntry,
    MalformedBinding,
    MissingKey,
    NotFound,
)
from dnsmasqmgr.hosts.eui import EUI


logger = logging.getLogger("dhcphosts")


@dataclass
class Binding:
    """
    The binding between a MAC and an IP.
    """
    hw: EUI
    ip: IPv4Address | IPv6Address

    def __str__(self):
        return f"{self.hw},{self.ip}"

    def duplicate(self, other: "Binding") -> str | None:
        if self.hw == other.hw:
            return "mac"
        if self.ip == other.ip:
            return "ip"
        return None


def parse_binding(hw: str, ip: str) -> Binding:
    if not hw:
        raise MissingKey("missing hardware address")
    return Binding(EUI(hw.strip()), parse_ip(ip))


def parse_binding_string(s: str) -> Binding:
    fields = s.split(",")
    if len(fields) != 2:
        raise MalformedBinding(f"malformed binding pair '{s}'")
    return parse_binding(*fields)


class BindingsConf:
    """
    The configured bindings.
    """
    def __init__(self):
        self.bindings: dict[str, Binding] = {}

    def __len__(self):
        return len(self.bindings)

    def __iter__(self):
        return iter(self.bindings.values())

    def __str__(self):
        return "".join(f"{binding}\n" for binding in self.bindings.values())

    def duplicate(self, binding: Binding) -> tuple[str, Binding] | None:
        for existing in self.bindings.values():
            field_name = existing.duplicate(binding)
            if field_name:
                return field_name, existing
        return None

    def insert(self, binding: Binding):
        found = self.duplicate(binding)
        if found:
            raise DuplicateEntry(*found)
        self.bindings[str(binding.hw)] = binding
        logger.debug(f"added [[{binding}]]")

    def add(self, mac: str, ip: str) -> Binding:
        """
        Add a binding.

        Raises ``MalformedAddress`` if either address does not parse,
        ``MissingKey`` if the MAC is empty and ``DuplicateEntry`` if the MAC
        or the IP is already bound.
        """
        binding = parse_binding(mac, ip)
        self.insert(binding)
        return binding

    def remove(self, mac: str) -> tuple[Binding | None, bool]:
        binding = self.bindings.pop(str(EUI(mac)), None)
        logger.debug(f"removed [[{binding}]] -> {binding is not None}")
        return binding, binding is not None

    def get_by_hw_addr(self, mac: str) -> Binding:
        try:
            binding = self.bindings[str(EUI(mac))]
        except KeyError:
            raise NotFound(f"hardware address {mac} not found")
        logger.debug(f"GetByHWAddr({mac}) -> {binding}")
        return binding

    def get_by_ip(self, address: str) -> Binding:
        ip = parse_ip(address)
        for binding in self.bindings.values():
            if binding.ip == ip:
                logger.debug(f"GetByIP({address}) -> {binding}")
                return binding
        raise NotFound(f"IP address {address} not found")


def parse(lines) -> BindingsConf:
    """
    Create a BindingsConf from an iterable of lines in dhcp-hostsfile format.

    Blank lines are ignored and duplicate bindings are skipped with a
    warning. Any other malformed line aborts the parse.
    """
    conf = BindingsConf()
    for lineno, line in enumerate(lines, 1):
        line = line.strip()
        if not line:
            continue
        binding = parse_binding_string(line)
        try:
            conf.insert(binding)
        except DuplicateEntry as e:
            logger.warning(f"skipping line {lineno}: {e}")
    return conf


def parse_file(path) -> BindingsConf:
    with open(path) as f:
        return parse(f)
