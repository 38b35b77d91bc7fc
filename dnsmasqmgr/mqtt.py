"""
dnsmasqmgr/mqtt.py - MQTT client provider
"""

import asyncio
from dataclasses import dataclass
import logging
import paho.mqtt.client as mqtt
from typing import Awaitable, Callable

from google.protobuf.message import Message

from dnsmasqmgr.config import DEFAULT_MQTT_HOST, DEFAULT_MQTT_PORT
from dnsmasqmgr.event import Event
from dnsmasqmgr.service import Provider


logger = logging.getLogger("mqtt")


# Seconds between housekeeping runs of the client loop
MISC_INTERVAL = 2


@dataclass
class MQTTEvent(Event):
    topic: str
    payload: bytes = None


MessageCallback = Callable[[MQTTEvent], Awaitable[None]]


class MQTT(Provider):
    """
    MQTT client driven by the asyncio loop.

    The paho client socket is watched by the running loop, so no network
    thread is needed. Received messages are queued and dispatched from
    ``main()`` to the coroutine callbacks whose subscription matches the
    topic, wildcards included.

    If the broker goes away after the first connection, the client loop keeps
    trying to reconnect and subscriptions are restored on connect.
    """
    def __init__(self, host=DEFAULT_MQTT_HOST, port=DEFAULT_MQTT_PORT, client=mqtt.Client, keepalive=60):
        super().__init__()
        self.host = host
        self.port = port
        self.keepalive = keepalive
        self.loop = asyncio.get_running_loop()
        self.subscriptions: dict[str, list[MessageCallback]] = {}
        self.connected = False
        self.connect_future = self.loop.create_future()
        self.messages: asyncio.Queue[MQTTEvent] = asyncio.Queue()
        self.client_task: asyncio.Task | None = None

        self.client = client()
        self.client.on_connect = self.on_connect
        self.client.on_disconnect = self.on_disconnect
        self.client.on_message = self.on_message
        self.client.on_socket_open = self.on_socket_open
        self.client.on_socket_close = self.on_socket_close
        self.client.on_socket_register_write = self.on_socket_register_write
        self.client.on_socket_unregister_write = self.on_socket_unregister_write

    async def wait_connect(self):
        """
        Wait until the first connection to the broker is established.
        """
        await asyncio.shield(self.connect_future)

    def on_socket_open(self, client, userdata, sock):
        self.loop.add_reader(sock, self.client.loop_read)

    def on_socket_close(self, client, userdata, sock):
        self.loop.remove_reader(sock)

    def on_socket_register_write(self, client, userdata, sock):
        self.loop.add_writer(sock, self.client.loop_write)

    def on_socket_unregister_write(self, client, userdata, sock):
        self.loop.remove_writer(sock)

    def on_connect(self, client, userdata, flags, rc):
        if rc != mqtt.CONNACK_ACCEPTED:
            logger.error(f"Connection to {self.host}:{self.port} refused: {mqtt.connack_string(rc)}")
            return
        logger.info(f"Connected to MQTT broker {self.host}:{self.port}")
        self.connected = True
        for topic in self.subscriptions:
            self.client.subscribe(topic)
        if not self.connect_future.done():
            self.connect_future.set_result(True)

    def on_disconnect(self, client, userdata, rc):
        logger.warning(f"Disconnected from MQTT broker {self.host}:{self.port}")
        self.connected = False

    def on_message(self, client, userdata, message):
        logger.debug(f"Received {message.topic}")
        self.messages.put_nowait(MQTTEvent(message.topic, message.payload))

    def subscribe(self, topic: str, callback: MessageCallback):
        callbacks = self.subscriptions.setdefault(topic, [])
        callbacks.append(callback)
        if len(callbacks) == 1 and self.connected:
            self.client.subscribe(topic)

    def unsubscribe(self, topic: str, callback: MessageCallback):
        callbacks = self.subscriptions.get(topic, [])
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            self.subscriptions.pop(topic, None)

    def publish(self, topic: str, **kwargs):
        logger.debug(f"Publishing {topic}")
        return self.client.publish(topic, **kwargs)

    def publish_message(self, topic: str, message: Message, **kwargs):
        """
        Publish a protobuf message.
        """
        return self.publish(topic, payload=message.SerializeToString(), **kwargs)

    async def dispatch(self, event: MQTTEvent):
        for topic, callbacks in list(self.subscriptions.items()):
            if not mqtt.topic_matches_sub(topic, event.topic):
                continue
            for callback in list(callbacks):
                try:
                    await callback(event)
                except Exception:
                    logger.exception(f"Failure in MQTT handler for {event.topic}")

    async def start(self):
        self.client.connect(self.host, port=self.port, keepalive=self.keepalive)
        self.client_task = self.loop.create_task(self.client_loop(), name="MQTT client loop")

    async def stop(self):
        if self.client_task:
            self.client_task.cancel()
            await self.client_task
            self.client_task = None

    async def client_loop(self):
        try:
            while True:
                if self.connected or not self.connect_future.done():
                    ret = self.client.loop_misc()
                    if ret != mqtt.MQTT_ERR_SUCCESS:
                        logger.error(f"MQTT loop error: {mqtt.error_string(ret)}")
                else:
                    self.reconnect()
                await asyncio.sleep(MISC_INTERVAL)
        except asyncio.CancelledError:
            pass

    def reconnect(self):
        logger.info(f"Reconnecting to MQTT broker {self.host}:{self.port}")
        try:
            self.client.reconnect()
        except OSError as e:
            logger.error(f"Cannot reconnect to {self.host}:{self.port}: {e}")

    async def main(self):
        try:
            while True:
                await self.dispatch(await self.messages.get())
        except asyncio.CancelledError:
            pass
