"""
dnsmasqmgr/iprange/iprange.py - Contiguous IP address ranges
"""

from ipaddress import IPv4Address, IPv6Address, ip_network

from dnsmasqmgr.address import parse_ip
from dnsmasqmgr.exceptions import InvalidRange, MalformedAddress


# Prefix of IPv4-mapped IPv6 addresses
IPV4_MAPPED = 0xffff << 32


def ip_to_int(ip: IPv4Address | IPv6Address) -> int:
    """
    Return the integer value of the 16 byte representation of ``ip``.
    """
    if isinstance(ip, IPv4Address):
        return IPV4_MAPPED | int(ip)
    return int(ip)


def splice_ip(base: str, partial: str) -> str:
    """
    Complete a partial dotted address with the leading parts of ``base``.

    ``splice_ip("10.0.0.2", "5")`` is ``"10.0.0.5"``.
    """
    base_parts = base.split(".")
    partial_parts = partial.split(".")
    return ".".join(base_parts[:len(base_parts) - len(partial_parts)] + partial_parts)


class IPRange:
    """
    An inclusive range of IP addresses.
    """
    def __init__(self, start, end=None, network=None):
        self.start = start
        self.end = start if end is None else end
        self.network = network

    def __str__(self):
        if self.start == self.end:
            s = str(self.start)
        else:
            s = f"{self.start}-{self.end}"
        if self.network is not None:
            s += f"/{self.network.prefixlen}"
        return s

    def __repr__(self):
        return f"IPRange('{self}')"

    def __eq__(self, other):
        if not isinstance(other, IPRange):
            return NotImplemented
        return (self.start, self.end) == (other.start, other.end)

    def __len__(self):
        return ip_to_int(self.end) - ip_to_int(self.start) + 1

    def __iter__(self):
        start_int = ip_to_int(self.start)
        for offset in range(len(self)):
            yield self.address_at(start_int + offset)

    @property
    def is_ipv4(self):
        return isinstance(self.start, IPv4Address)

    def address_at(self, value: int):
        """
        Convert an integer back into an address of the range's family.
        """
        if self.is_ipv4:
            return IPv4Address(value & 0xffffffff)
        return IPv6Address(value)

    def contains(self, ip) -> bool:
        value = ip_to_int(ip)
        return ip_to_int(self.start) <= value <= ip_to_int(self.end)

    def __contains__(self, ip):
        return self.contains(ip)

    def overlaps(self, other: "IPRange") -> bool:
        return (
            ip_to_int(other.start) <= ip_to_int(self.end)
            and ip_to_int(other.end) >= ip_to_int(self.start)
        )


def parse_ip_range(s: str) -> IPRange:
    """
    Parse a range in the form ``start[-end][/bits]``.

    The end address may be given partially, in which case the missing leading
    parts are taken from the start address. If a prefix length is given, both
    ends must be inside the network it defines.
    """
    network = None
    bits = None
    if "/" in s:
        parts = s.split("/")
        if len(parts) != 2:
            raise InvalidRange("expected only one '/' within the provided string")
        s, bits = parts
        try:
            bits = int(bits)
        except ValueError as e:
            raise InvalidRange(f"failed to parse the network mask: {e}")

    ips = s.split("-")
    if len(ips) > 2:
        raise InvalidRange("unexpected number of IPs specified in the provided string")

    try:
        start = parse_ip(ips[0])
        if len(ips) > 1:
            end = parse_ip(splice_ip(ips[0].strip(), ips[1].strip()))
        else:
            end = start
    except MalformedAddress as e:
        raise InvalidRange(str(e))

    if type(start) is not type(end):
        raise InvalidRange("the start and the end of the range must be of the same family")

    if end < start:
        raise InvalidRange("the end of the range cannot be less than the start of the range")

    if bits is not None:
        try:
            network = ip_network(f"{start}/{bits}", strict=False)
        except ValueError as e:
            raise InvalidRange(f"failed to parse the network mask: {e}")
        if end not in network:
            raise InvalidRange("the provided IP ranges are not within the provided network mask")

    return IPRange(start, end, network)
