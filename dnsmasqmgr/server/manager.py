"""
dnsmasqmgr/server/manager.py - Lease manager

Ties the hosts store, the dhcp-hostsfile store and the IP allocator together.
All three are guarded by a single reader/writer lock: requests take it
exclusively, lookups shared. Changes reach the disk through a background
store loop and are recorded in an append-only journal.
"""

import logging
import os
import random
import shutil
import stat
import tempfile
from typing import Callable

from dnsmasqmgr.address import Address, AddressReply, Key, Match, parse_ip
from dnsmasqmgr.exceptions import (
    DuplicateEntry,
    InvalidParameter,
    MalformedRequest,
    MissingKey,
    NotFound,
    NotSupported,
    PersistenceFailure,
)
from dnsmasqmgr.hosts import dhcphosts, etchosts
from dnsmasqmgr.hosts.eui import EUI
from dnsmasqmgr.iprange.allocator import IPRangeAllocator
from dnsmasqmgr.iprange.iprange import parse_ip_range
from dnsmasqmgr.server.journal import Journal
from dnsmasqmgr.server.rwlock import RWLock
from dnsmasqmgr.server.store import StoreLoop


logger = logging.getLogger("manager")


def write_file(path, content: str, mode: int):
    """
    Replace the file at ``path`` with ``content`` in a single rename.
    """
    directory = os.path.dirname(os.path.abspath(path))
    temp = tempfile.NamedTemporaryFile(dir=directory, prefix=".dnsmasqmgr-", delete=False, mode="w")
    try:
        temp.write(content)
        temp.flush()
        temp.close()
        os.chmod(temp.name, mode)
        shutil.move(temp.name, path)
    except OSError:
        temp.close()
        if os.path.exists(temp.name):
            os.unlink(temp.name)
        raise


class DNSMasqMgr:
    """
    Manages hostname, MAC and IP address assignments.

    ``iprange`` is the pool new addresses are allocated from (see
    ``parse_ip_range()``). ``hosts_path`` and ``leases_path`` are the hosts
    file and the dhcp-hostsfile; both must exist and are parsed before the
    manager is ready. Addresses already present in either file are reserved.
    Ranges in ``exclude`` are never allocated.

    In read-only mode changes are kept in memory only: neither the files nor
    the journal are written.

    ``store_callback`` is called from the store thread after each successful
    write of the files.
    """
    def __init__(
        self,
        iprange: str,
        hosts_path,
        leases_path,
        journal_path=None,
        exclude=(),
        read_only=False,
        store_callback: Callable[[], None] | None = None,
        rng: random.Random | None = None,
    ):
        self.read_only = read_only
        self.hosts_path = hosts_path
        self.leases_path = leases_path
        self.closed = False

        self.allocator = IPRangeAllocator(parse_ip_range(iprange), rng=rng)
        for excluded in exclude:
            self.allocator.subtract(parse_ip_range(excluded))

        self.hosts_mode = stat.S_IMODE(os.stat(hosts_path).st_mode)
        self.leases_mode = stat.S_IMODE(os.stat(leases_path).st_mode)

        self.name_map = etchosts.parse_file(hosts_path)
        logger.info(f"Parsed {len(self.name_map)} entries from '{hosts_path}'")
        self.addr_map = dhcphosts.parse_file(leases_path)
        logger.info(f"Parsed {len(self.addr_map)} entries from '{leases_path}'")

        for host in self.name_map:
            self.allocator.reserve(host.address)
        for binding in self.addr_map:
            self.allocator.reserve(binding.ip)
        logger.info(f"{self.allocator.remaining} of {self.allocator.size} addresses available in {self.allocator.ip_range}")

        self.lock = RWLock()
        self.journal = Journal(None if read_only else journal_path)

        self.store_loop = StoreLoop(self.store, callback=store_callback)
        self.store_loop.start()
        logger.info("Started store loop")

        if read_only:
            logger.info("Started in read-only mode")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        """
        Wait for pending writes, stop the store loop and close the journal.
        """
        if self.closed:
            return
        self.store_loop.shutdown()
        self.journal.close()
        self.closed = True

    def request_store(self):
        if not self.read_only:
            self.store_loop.request_store()

    def store(self):
        """
        Write both stores to their files.

        Raises ``PersistenceFailure`` if a file cannot be written.
        """
        if self.read_only:
            logger.debug("Read-only mode, not storing")
            return

        with self.lock.write():
            for path, content, mode in (
                (self.hosts_path, str(self.name_map), self.hosts_mode),
                (self.leases_path, str(self.addr_map), self.leases_mode),
            ):
                try:
                    write_file(path, content, mode)
                except OSError as e:
                    raise PersistenceFailure(f"cannot write {path}: {e}")
        logger.debug("Stored hosts and leases")

    def request_address(self, address: Address) -> AddressReply:
        """
        Assign an address to a hostname and MAC pair.

        If ``address.ipaddr`` is empty an address is allocated from the pool.
        Collisions with existing entries do not fail the request: each one
        raises the match level of the reply instead.
        """
        if address is None or not address.hostname or not address.macaddr:
            raise MalformedRequest("hostname and mac address are required")
        for value in (address.hostname, address.macaddr, address.ipaddr):
            if not isinstance(value, str):
                raise MalformedRequest(f"invalid address field {value!r}")

        with self.lock.write():
            reply = self._request_address(address)

        self.request_store()
        return reply

    def _request_address(self, address: Address) -> AddressReply:
        if address.ipaddr:
            ip = parse_ip(address.ipaddr)
            reserved = self.allocator.reserve(ip)
        else:
            ip = self.allocator.allocate()
            reserved = True

        reply = AddressReply(
            addr=Address(
                hostname=address.hostname,
                macaddr=address.macaddr,
                ipaddr=str(ip),
            ),
        )

        host_added = False
        try:
            self.name_map.add(reply.addr.hostname, reply.addr.ipaddr)
            host_added = True
        except DuplicateEntry:
            reply.escalate(Key.HOSTNAME, reply.addr.hostname)
        except Exception:
            if reserved:
                self.allocator.release(ip)
            raise

        binding_added = False
        try:
            self.addr_map.add(reply.addr.macaddr, reply.addr.ipaddr)
            binding_added = True
        except DuplicateEntry:
            reply.escalate(Key.MACADDR, reply.addr.macaddr)
        except Exception:
            if host_added:
                self.name_map.remove(reply.addr.hostname)
            if reserved:
                self.allocator.release(ip)
            raise

        reply.addr.macaddr = str(EUI(reply.addr.macaddr.strip()))

        if reserved and not host_added and not binding_added:
            # Nothing got bound to the fresh reservation
            self.allocator.release(ip)

        self.journal.record("add", reply.addr)
        return reply

    def lookup_address(self, key: Key, address: Address) -> AddressReply:
        """
        Resolve an address triple from one of its fields.

        The match is partial if only the entry for ``key`` was found and full
        if the other side was found as well.
        """
        if address is None:
            raise MalformedRequest("missing address")
        try:
            key = Key(key)
        except ValueError:
            raise InvalidParameter(f"invalid lookup key {key}")

        with self.lock.read():
            if key == Key.HOSTNAME:
                return self._lookup_by_hostname(address.hostname)
            if key == Key.MACADDR:
                return self._lookup_by_macaddr(address.macaddr)
            return self._lookup_by_ipaddr(address.ipaddr)

    def _lookup_by_hostname(self, hostname: str) -> AddressReply:
        if not hostname:
            raise MissingKey("missing hostname")

        host = self.name_map.get_by_hostname(hostname)
        return self._complete_from_host(host, Key.HOSTNAME)

    def _lookup_by_macaddr(self, macaddr: str) -> AddressReply:
        if not macaddr:
            raise MissingKey("missing mac address")

        binding = self.addr_map.get_by_hw_addr(macaddr)
        reply = AddressReply(
            addr=Address(macaddr=str(binding.hw), ipaddr=str(binding.ip)),
            match=Match.PARTIAL,
            key=Key.MACADDR,
        )
        try:
            host = self.name_map.get_by_address(reply.addr.ipaddr)
        except NotFound:
            return reply
        reply.addr.hostname = host.canonical_hostname
        reply.match = Match.FULL
        return reply

    def _lookup_by_ipaddr(self, ipaddr: str) -> AddressReply:
        if not ipaddr:
            raise MissingKey("missing ip address")

        host = self.name_map.get_by_address(ipaddr)
        return self._complete_from_host(host, Key.IPADDR)

    def _complete_from_host(self, host: etchosts.Host, key: Key) -> AddressReply:
        reply = AddressReply(
            addr=Address(hostname=host.canonical_hostname, ipaddr=str(host.address)),
            match=Match.PARTIAL,
            key=key,
        )
        try:
            binding = self.addr_map.get_by_ip(reply.addr.ipaddr)
        except NotFound:
            return reply
        reply.addr.macaddr = str(binding.hw)
        reply.match = Match.FULL
        return reply

    def delete_address(self, key: Key | None = None, address: Address | None = None) -> AddressReply:
        with self.lock.write():
            raise NotSupported("Operation not supported")
