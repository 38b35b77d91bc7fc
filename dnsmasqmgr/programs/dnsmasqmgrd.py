#!/usr/bin/python3
#
# dnsmasqmgrd -- dnsmasq hosts and leases manager daemon
#

import argparse
import asyncio
import logging
import os
import signal
import sys
import systemd.daemon
from systemd.journal import JournalHandler

from dnsmasqmgr.config import Config
from dnsmasqmgr.exceptions import DNSMasqMgrException
from dnsmasqmgr.mqtt import MQTT
from dnsmasqmgr.rpc import RPC
from dnsmasqmgr.server.provider import DNSMasqMgrProvider
from dnsmasqmgr.service import Service


logger = logging.getLogger("dnsmasqmgrd")


def setup_logging(debug: bool):
    if "JOURNAL_STREAM" in os.environ:
        handler = JournalHandler()
    else:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("[%(levelname)s:%(name)s] %(msg)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    root_logger.addHandler(handler)


async def run(config: Config, read_only: bool) -> int:
    service = Service()
    service.add_provider(MQTT, host=config.mqtthost, port=config.mqttport)
    service.add_provider(RPC, prefix=config.rpcprefix)
    service.add_provider(DNSMasqMgrProvider, config=config, read_only=read_only)

    logger.info(f"Using configuration files: hosts=[{config.hostspath}] leases=[{config.leasespath}]")

    await service.start_background()
    await service.wait_start()

    # Cancelling the main task stops the providers, which flushes pending writes
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, service.main_task.cancel)

    systemd.daemon.notify("READY=1")
    logger.info("Ready")

    return await service.main_task


def main():
    parser = argparse.ArgumentParser("dnsmasqmgrd", description="dnsmasq hosts and leases manager")
    parser.add_argument("--readonly", action="store_true", help="Do not write the hosts and leases files")
    parser.add_argument("--makeconf", action="store_true", help="Print a template configuration and exit")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    parser.add_argument("config", help="Configuration file", nargs="?")
    args = parser.parse_args()

    if args.makeconf:
        print(Config.default().to_json())
        sys.exit(0)

    setup_logging(args.debug)

    try:
        config = Config.parse_file(args.config) if args.config else Config.default()
        config.check()
    except (OSError, DNSMasqMgrException) as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    try:
        sys.exit(asyncio.run(run(config, args.readonly)))
    except (OSError, DNSMasqMgrException) as e:
        logger.error(f"Cannot start: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        pass
