from ipaddress import IPv4Address
import logging
import pytest

from dnsmasqmgr.exceptions import (
    DuplicateEntry,
    MalformedAddress,
    MalformedBinding,
    MissingKey,
    NotFound,
)
from dnsmasqmgr.hosts import dhcphosts
from dnsmasqmgr.hosts.dhcphosts import Binding, BindingsConf
from dnsmasqmgr.hosts.eui import EUI


LEASES = """\
01:23:45:67:89:ab,192.168.1.10
01-23-45-67-89-AC,192.168.1.11

0123.4567.89ad,192.168.1.12
"""


def test_parse():
    conf = dhcphosts.parse(LEASES.splitlines())

    assert len(conf) == 3
    assert list(conf) == [
        Binding(EUI("01:23:45:67:89:ab"), IPv4Address("192.168.1.10")),
        Binding(EUI("01:23:45:67:89:ac"), IPv4Address("192.168.1.11")),
        Binding(EUI("01:23:45:67:89:ad"), IPv4Address("192.168.1.12")),
    ]


def test_render():
    conf = dhcphosts.parse(LEASES.splitlines())

    assert str(conf) == (
        "01:23:45:67:89:ab,192.168.1.10\n"
        "01:23:45:67:89:ac,192.168.1.11\n"
        "01:23:45:67:89:ad,192.168.1.12\n"
    )
    assert list(dhcphosts.parse(str(conf).splitlines())) == list(conf)


def test_parse_file(tmp_path):
    path = tmp_path / "leases"
    path.write_text(LEASES)

    assert len(dhcphosts.parse_file(path)) == 3


@pytest.mark.parametrize(
    "line",
    [
        "01:23:45:67:89:ab",
        "192.168.1.10",
        "01:23:45:67:89:ab,192.168.1.10,host1",
        "01:23:45:67:89:ab;192.168.1.10",
    ],
)
def test_parse_malformed_binding(line):
    with pytest.raises(MalformedBinding):
        dhcphosts.parse([line])


def test_parse_malformed_mac():
    with pytest.raises(MalformedAddress) as excinfo:
        dhcphosts.parse(["malformed_mac,192.168.1.10"])
    assert excinfo.type is MalformedAddress


def test_parse_malformed_ip():
    with pytest.raises(MalformedAddress) as excinfo:
        dhcphosts.parse(["01:23:45:67:89:ab,192.168.1"])
    assert excinfo.type is MalformedAddress


def test_parse_missing_mac():
    with pytest.raises(MissingKey):
        dhcphosts.parse([",192.168.1.10"])


def test_parse_skips_duplicates(caplog):
    lines = [
        "01:23:45:67:89:ab,192.168.1.10",
        "01:23:45:67:89:AB,192.168.1.11",
        "01:23:45:67:89:ac,192.168.1.10",
    ]

    with caplog.at_level(logging.WARNING, logger="dhcphosts"):
        conf = dhcphosts.parse(lines)

    assert len(conf) == 1
    assert len(caplog.records) == 2


def test_add():
    conf = BindingsConf()

    binding = conf.add("01-23-45-67-89-AB", "192.168.1.10")

    assert str(binding) == "01:23:45:67:89:ab,192.168.1.10"
    assert conf.get_by_hw_addr("01:23:45:67:89:ab") is binding
    assert conf.get_by_hw_addr("0123.4567.89ab") is binding
    assert conf.get_by_ip("192.168.1.10") is binding


@pytest.mark.parametrize(
    ("mac", "ip", "field"),
    [
        ("01:23:45:67:89:ab", "192.168.1.11", "mac"),
        ("01:23:45:67:89:ac", "192.168.1.10", "ip"),
    ],
)
def test_add_duplicate(mac, ip, field):
    conf = BindingsConf()
    conf.add("01:23:45:67:89:ab", "192.168.1.10")

    with pytest.raises(DuplicateEntry) as excinfo:
        conf.add(mac, ip)

    assert excinfo.value.field == field
    assert len(conf) == 1


def test_remove():
    conf = BindingsConf()
    binding = conf.add("01:23:45:67:89:ab", "192.168.1.10")

    assert conf.remove("01-23-45-67-89-AB") == (binding, True)
    assert conf.remove("01:23:45:67:89:ab") == (None, False)


def test_not_found():
    conf = BindingsConf()
    conf.add("01:23:45:67:89:ab", "192.168.1.10")

    with pytest.raises(NotFound):
        conf.get_by_hw_addr("01:23:45:67:89:ac")
    with pytest.raises(NotFound):
        conf.get_by_ip("192.168.1.11")
