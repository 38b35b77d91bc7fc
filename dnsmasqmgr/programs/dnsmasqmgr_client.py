#!/usr/bin/python3
#
# dnsmasqmgr -- dnsmasq hosts and leases manager client
#

import argparse
import asyncio
import json
import logging
import sys

from dnsmasqmgr.address import AddressReply, Key
from dnsmasqmgr.config import DEFAULT_MQTT_HOST, DEFAULT_MQTT_PORT, DEFAULT_RPC_PREFIX
from dnsmasqmgr.mqtt import MQTT
from dnsmasqmgr.rpc import RPCException
from dnsmasqmgr.rpcclient import RPCClient
from dnsmasqmgr.service import Provider, Service


logger = logging.getLogger("dnsmasqmgr")


LOOKUP_KEYS = {
    "name": Key.HOSTNAME,
    "mac": Key.MACADDR,
    "ip": Key.IPADDR,
}

KEY_FIELDS = {
    Key.HOSTNAME: "hostname",
    Key.MACADDR: "mac",
    Key.IPADDR: "ip",
}


def get_argument(args) -> tuple[str, dict]:
    """
    Build the RPC method and argument for the parsed command line.
    """
    if args.command == "request":
        address = {"hostname": args.hostname, "mac": args.mac}
        if args.ip:
            address["ip"] = args.ip
        return "address/request", {"address": address}

    key = LOOKUP_KEYS[args.how]
    return f"address/{args.command}", {
        "key": key.name,
        "address": {KEY_FIELDS[key]: args.what},
    }


def format_reply(reply: AddressReply) -> str:
    return json.dumps({
        "name": reply.addr.hostname,
        "mac": reply.addr.macaddr,
        "ip": reply.addr.ipaddr,
        "match": reply.match.name,
    })


class Client(Provider):
    def __init__(self, rpc: RPCClient, timeout=1):
        super().__init__()
        self.rpc = rpc
        self.timeout = timeout

    async def call(self, method: str, argument: dict) -> int:
        try:
            async with asyncio.timeout(self.timeout):
                await self.rpc.wait_connect()
        except TimeoutError:
            print("Timed out connecting to server", file=sys.stderr)
            return 1

        try:
            async with asyncio.timeout(self.timeout):
                result = await self.rpc.request(method, argument)
        except TimeoutError:
            print(f"Timed out waiting for {method}", file=sys.stderr)
            return 1
        except RPCException as e:
            print(f"{method} failed: {e}", file=sys.stderr)
            return 1

        print(format_reply(AddressReply.from_dict(result or {})))
        return 0


def get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser("dnsmasqmgr", description="dnsmasq hosts and leases manager client")
    parser.add_argument("--host", default=DEFAULT_MQTT_HOST, help="MQTT broker host")
    parser.add_argument("--port", type=int, default=DEFAULT_MQTT_PORT, help="MQTT broker port")
    parser.add_argument("--prefix", default=DEFAULT_RPC_PREFIX, help="RPC topic prefix")
    parser.add_argument("--timeout", type=float, default=1, help="Timeout in seconds")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    request = subparsers.add_parser("request", help="Request an address")
    request.add_argument("hostname")
    request.add_argument("mac")
    request.add_argument("ip", nargs="?")

    for command, description in (("lookup", "Look an address up"), ("delete", "Delete an address")):
        subparser = subparsers.add_parser(command, help=description)
        subparser.add_argument("how", choices=sorted(LOOKUP_KEYS))
        subparser.add_argument("what")

    return parser


async def run(args) -> int:
    if args.debug:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("[%(levelname)s:%(name)s] %(msg)s"))
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)
        root_logger.addHandler(handler)

    service = Service()
    service.add_provider(Client, timeout=args.timeout)
    service.add_provider(MQTT, host=args.host, port=args.port)
    service.add_provider(RPCClient, prefix=args.prefix)

    await service.start_background()
    client = await service.get_provider(Client)
    ret = await client.call(*get_argument(args))
    await service.stop_background()
    return ret


def main():
    args = get_parser().parse_args()
    try:
        sys.exit(asyncio.run(run(args)))
    except ConnectionError as e:
        print(f"Cannot connect to {args.host}:{args.port}: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        pass
