from ipaddress import IPv4Address, IPv6Address
import pytest

from dnsmasqmgr.exceptions import InvalidRange
from dnsmasqmgr.iprange.iprange import IPRange, ip_to_int, parse_ip_range, splice_ip


@pytest.mark.parametrize(
    ("value", "start", "end"),
    [
        ("10.0.0.1", "10.0.0.1", "10.0.0.1"),
        ("10.0.0.2-10.0.0.5", "10.0.0.2", "10.0.0.5"),
        ("10.0.0.2-5", "10.0.0.2", "10.0.0.5"),
        ("10.0.0.250-1.5", "10.0.0.250", "10.0.1.5"),
        (" 10.0.0.2 - 10.0.0.5 ", "10.0.0.2", "10.0.0.5"),
        ("10.0.0.2-10.0.0.5/24", "10.0.0.2", "10.0.0.5"),
        ("10.0.0.0/30", "10.0.0.0", "10.0.0.0"),
        ("fe80::1-fe80::5", "fe80::1", "fe80::5"),
    ],
)
def test_parse(value, start, end):
    ip_range = parse_ip_range(value)

    assert str(ip_range.start) == start
    assert str(ip_range.end) == end


@pytest.mark.parametrize(
    "value",
    [
        "",
        "foo",
        "10.0.0.5-10.0.0.2",
        "10.0.0.1-2-3",
        "10.0.0.1/24/3",
        "10.0.0.1/x",
        "10.0.0.1/33",
        "10.0.0.250-10.0.1.5/24",
        "10.0.0.1-fe80::1",
        "fe80::1-10.0.0.1",
        "10.0.0.1-10.0.0.256",
    ],
)
def test_parse_invalid(value):
    with pytest.raises(InvalidRange):
        parse_ip_range(value)


def test_str():
    assert str(parse_ip_range("10.0.0.2-5")) == "10.0.0.2-10.0.0.5"
    assert str(parse_ip_range("10.0.0.2")) == "10.0.0.2"
    assert str(parse_ip_range("10.0.0.2-10.0.0.5/24")) == "10.0.0.2-10.0.0.5/24"


def test_len():
    assert len(parse_ip_range("10.0.0.2-10.0.0.5")) == 4
    assert len(parse_ip_range("10.0.0.1")) == 1
    assert len(parse_ip_range("10.0.0.0-10.0.255.255")) == 65536
    assert len(parse_ip_range("fe80::-fe80::ffff:ffff:ffff:ffff")) == 2 ** 64


def test_iter():
    assert list(parse_ip_range("10.0.0.254-10.0.1.1")) == [
        IPv4Address("10.0.0.254"),
        IPv4Address("10.0.0.255"),
        IPv4Address("10.0.1.0"),
        IPv4Address("10.0.1.1"),
    ]


def test_contains():
    ip_range = parse_ip_range("10.0.0.2-10.0.0.5")

    assert IPv4Address("10.0.0.2") in ip_range
    assert IPv4Address("10.0.0.5") in ip_range
    assert IPv6Address("::ffff:10.0.0.3") in ip_range
    assert IPv4Address("10.0.0.1") not in ip_range
    assert IPv4Address("10.0.0.6") not in ip_range
    assert IPv6Address("fe80::3") not in ip_range


def test_address_at():
    ip_range = parse_ip_range("10.0.0.2-10.0.0.5")
    assert ip_range.address_at(ip_to_int(IPv4Address("10.0.0.3"))) == IPv4Address("10.0.0.3")

    ip_range = parse_ip_range("fe80::1-fe80::5")
    assert ip_range.address_at(ip_to_int(IPv6Address("fe80::3"))) == IPv6Address("fe80::3")


def test_ip_to_int():
    assert ip_to_int(IPv4Address("10.0.0.1")) == ip_to_int(IPv6Address("::ffff:10.0.0.1"))
    assert ip_to_int(IPv6Address("::1")) == 1


def test_overlaps():
    ip_range = parse_ip_range("10.0.0.10-10.0.0.20")

    assert ip_range.overlaps(parse_ip_range("10.0.0.5-10.0.0.10"))
    assert ip_range.overlaps(parse_ip_range("10.0.0.15"))
    assert ip_range.overlaps(parse_ip_range("10.0.0.1-10.0.0.30"))
    assert not ip_range.overlaps(parse_ip_range("10.0.0.21-10.0.0.30"))
    assert not ip_range.overlaps(parse_ip_range("10.0.0.1-10.0.0.9"))


def test_eq():
    assert parse_ip_range("10.0.0.2-5") == IPRange(IPv4Address("10.0.0.2"), IPv4Address("10.0.0.5"))
    assert parse_ip_range("10.0.0.2") != parse_ip_range("10.0.0.3")


def test_splice_ip():
    assert splice_ip("10.0.0.2", "5") == "10.0.0.5"
    assert splice_ip("10.0.0.2", "1.5") == "10.0.1.5"
    assert splice_ip("10.0.0.2", "10.1.0.5") == "10.1.0.5"
