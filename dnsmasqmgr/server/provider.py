"""
dnsmasqmgr/server/provider.py - Lease manager RPC provider
"""

import asyncio
from dataclasses import dataclass
import logging

from dnsmasqmgr.address import Address, Key
from dnsmasqmgr.config import Config
from dnsmasqmgr.event import Event
from dnsmasqmgr.exceptions import InvalidParameter, MalformedRequest
from dnsmasqmgr.mqtt import MQTT
from dnsmasqmgr.rpc import RPC, struct_from_dict
from dnsmasqmgr.server.manager import DNSMasqMgr
from dnsmasqmgr.service import Provider, Service


logger = logging.getLogger("dnsmasqmgr")


@dataclass
class LeasesStoredEvent(Event):
    hosts_path: str
    leases_path: str


class DNSMasqMgrProvider(Provider):
    """
    Serves a ``DNSMasqMgr`` over RPC.

    Methods:

    ``address/request``
        Argument ``{"address": {"hostname", "mac", "ip"}}``, ``ip`` optional.
    ``address/lookup``
        Argument ``{"key": "HOSTNAME" | "MACADDR" | "IPADDR", "address": {...}}``.
    ``address/delete``
        Not supported.

    Replies are ``{"address": {...}, "match": "NONE" | "PARTIAL" | "FULL",
    "key": ...}``.

    Each time the files are written, ``{"hostspath", "leasespath"}`` is
    published on ``<event_topic>/stored``.
    """
    def __init__(self, service: Service, mqtt: MQTT, rpc: RPC, config: Config, read_only=False, rng=None):
        self.service = service
        self.mqtt = mqtt
        self.rpc = rpc
        self.config = config

        self.manager = DNSMasqMgr(
            config.iprange,
            config.hostspath,
            config.leasespath,
            journal_path=config.journalpath or None,
            exclude=config.exclude,
            read_only=read_only,
            store_callback=self.on_store,
            rng=rng,
        )

        self.service.subscribe_event(LeasesStoredEvent, self.handle_leases_stored)

        self.rpc.register("address/request", self.rpc_request_address)
        self.rpc.register("address/lookup", self.rpc_lookup_address)
        self.rpc.register("address/delete", self.rpc_delete_address)

    def on_store(self):
        # Called from the store thread
        self.service.publish_event(LeasesStoredEvent(self.config.hostspath, self.config.leasespath))

    async def handle_leases_stored(self, event: LeasesStoredEvent):
        message = struct_from_dict({
            "hostspath": event.hosts_path,
            "leasespath": event.leases_path,
        })
        self.mqtt.publish_message(f"{self.config.eventtopic}/stored", message)

    async def stop(self):
        await asyncio.to_thread(self.manager.close)

    def get_address(self, msg: dict) -> Address:
        data = msg.get("address")
        if not isinstance(data, dict):
            raise MalformedRequest("address not specified")
        return Address.from_dict(data)

    def get_key(self, msg: dict) -> Key:
        try:
            return Key[msg.get("key", "")]
        except KeyError:
            raise InvalidParameter(f"invalid lookup key {msg.get('key')}")

    async def rpc_request_address(self, msg: dict) -> dict:
        reply = await asyncio.to_thread(self.manager.request_address, self.get_address(msg))
        return reply.to_dict()

    async def rpc_lookup_address(self, msg: dict) -> dict:
        reply = await asyncio.to_thread(self.manager.lookup_address, self.get_key(msg), self.get_address(msg))
        return reply.to_dict()

    async def rpc_delete_address(self, msg: dict) -> dict:
        reply = await asyncio.to_thread(self.manager.delete_address, self.get_key(msg), self.get_address(msg))
        return reply.to_dict()
