"""
dnsmasqmgr/hosts/etchosts.py - Hosts file (see man 5 hosts) binding store

Entries are kept in an insertion ordered dict keyed by canonical hostname.
Collision checks are linear scans, which is plenty for the few thousand
entries a local network has.
"""

from dataclasses import dataclass, field
from ipaddress import IPv4Address, IPv6Address
import logging
import re

from dnsmasqmgr.address import parse_ip
from dnsmasqmgr.exceptions import (
    DuplicateEntry,
    MalformedAddress,
    MissingKey,
    NotFound,
)


logger = logging.getLogger("etchosts")


# Dot separated labels of letters, digits, hyphens and underscores
HOSTNAME_LABEL_RE = re.compile(r"[A-Za-z0-9_]([A-Za-z0-9_-]{0,61}[A-Za-z0-9_])?")
HOSTNAME_MAX_LENGTH = 253


@dataclass
class Host:
    """
    A single entry of a hosts file.
    """
    address: IPv4Address | IPv6Address
    canonical_hostname: str
    aliases: list[str] = field(default_factory=list)

    def __str__(self):
        s = f"{self.address}\t{self.canonical_hostname}"
        if self.aliases:
            s += "\t" + " ".join(self.aliases)
        return s

    def duplicate(self, other: "Host") -> str | None:
        """
        Return the name of the first field colliding with ``other``, if any.

        Aliases collide by position.
        """
        if self.canonical_hostname == other.canonical_hostname:
            return "hostname"
        if self.address == other.address:
            return "ip"
        for alias, other_alias in zip(self.aliases, other.aliases):
            if alias == other_alias:
                return "alias"
        return None


def check_hostname(name: str):
    """
    Raise ``MalformedAddress`` unless ``name`` is a valid hostname.
    """
    if not isinstance(name, str) or len(name) > HOSTNAME_MAX_LENGTH:
        raise MalformedAddress(f"invalid hostname {name!r}")
    for label in name.rstrip(".").split("."):
        if not HOSTNAME_LABEL_RE.fullmatch(label):
            raise MalformedAddress(f"invalid hostname {name!r}")


def parse_host(address: str, name: str, aliases=()) -> Host:
    if not name:
        raise MissingKey("missing canonical hostname")
    check_hostname(name)
    aliases = list(aliases)
    for alias in aliases:
        check_hostname(alias)
    return Host(parse_ip(address), name, aliases)


def parse_host_string(s: str) -> Host | None:
    """
    Parse a hosts file line. Returns None for blank and comment lines.
    """
    s = s.split("#", 1)[0]
    fields = s.split()
    if not fields:
        return None
    if len(fields) < 2:
        raise MalformedAddress(f"missing hostname in '{s.strip()}'")
    return parse_host(fields[0], fields[1], fields[2:])


class HostsConf:
    """
    The configured hosts.
    """
    def __init__(self):
        self.hosts: dict[str, Host] = {}

    def __len__(self):
        return len(self.hosts)

    def __iter__(self):
        return iter(self.hosts.values())

    def __str__(self):
        return "".join(f"{host}\n" for host in self.hosts.values())

    def duplicate(self, host: Host) -> tuple[str, Host] | None:
        for existing in self.hosts.values():
            field_name = existing.duplicate(host)
            if field_name:
                return field_name, existing
        return None

    def insert(self, host: Host):
        found = self.duplicate(host)
        if found:
            raise DuplicateEntry(*found)
        self.hosts[host.canonical_hostname] = host
        logger.debug(f"added [[{host}]]")

    def add(self, name: str, address: str, aliases=()) -> Host:
        """
        Add a host.

        Raises ``MalformedAddress`` if the address does not parse,
        ``MissingKey`` if the name is empty and ``DuplicateEntry`` if the
        name, the address or a positional alias is already in use.
        """
        host = parse_host(address, name, aliases)
        self.insert(host)
        return host

    def remove(self, name: str) -> tuple[Host | None, bool]:
        host = self.hosts.pop(name, None)
        logger.debug(f"removed [[{host}]] -> {host is not None}")
        return host, host is not None

    def get_by_hostname(self, name: str) -> Host:
        try:
            return self.hosts[name]
        except KeyError:
            raise NotFound(f"hostname {name} not found")

    def get_by_address(self, address: str) -> Host:
        ip = parse_ip(address)
        for host in self.hosts.values():
            if host.address == ip:
                return host
        raise NotFound(f"IP address {address} not found")

    def get_by_alias(self, alias: str) -> Host:
        for host in self.hosts.values():
            if alias in host.aliases:
                return host
        raise NotFound(f"alias {alias} not found")


def parse(lines) -> HostsConf:
    """
    Create a HostsConf from an iterable of lines in hosts file format.

    Malformed and duplicate lines are skipped with a warning.
    """
    conf = HostsConf()
    for lineno, line in enumerate(lines, 1):
        try:
            host = parse_host_string(line)
            if host is not None:
                conf.insert(host)
        except (MalformedAddress, MissingKey, DuplicateEntry) as e:
            logger.warning(f"skipping line {lineno}: {e}")
    return conf


def parse_file(path) -> HostsConf:
    with open(path) as f:
        return parse(f)
