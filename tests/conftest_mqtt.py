"""
In-memory MQTT broker and client
"""

import asyncio
from paho.mqtt.client import MQTTMessage, topic_matches_sub
import pytest


class MockMQTTClient:
    """
    Stands in for ``paho.mqtt.client.Client``. Connecting always succeeds.
    """
    def __init__(self, broker):
        self.broker = broker
        self.connected = False

    def connect(self, host, port=1883, keepalive=60, bind_address=""):
        self.connected = True
        on_connect = getattr(self, "on_connect", None)
        if on_connect:
            on_connect(self, None, 0, 0)

    def reconnect(self):
        self.connect("localhost")

    def disconnect(self):
        self.connected = False
        self.broker.remove_client(self)
        on_disconnect = getattr(self, "on_disconnect", None)
        if on_disconnect:
            on_disconnect(self, None, 0)

    def subscribe(self, topic, qos=0):
        self.broker.subscribe(self, topic)

    def publish(self, topic, payload=None, qos=0, retain=False):
        self.broker.publish(topic, payload)

    def loop_read(self):
        pass

    def loop_write(self):
        pass

    def loop_misc(self) -> int:
        return 0


class MockMQTTBroker:
    """
    Routes published messages to subscribed clients from a task. Every
    published message is also kept in ``published``.
    """
    def __init__(self):
        self.subscriptions: list[tuple[str, MockMQTTClient]] = []
        self.published: list[tuple[str, bytes]] = []
        self.queue: asyncio.Queue | None = None
        self.task: asyncio.Task | None = None

    def get_client(self, *args, **kwargs):
        return MockMQTTClient(self)

    def subscribe(self, client, topic):
        self.subscriptions.append((topic, client))

    def remove_client(self, client):
        self.subscriptions = [(topic, sub) for topic, sub in self.subscriptions if sub is not client]

    def publish(self, topic, payload=None):
        self.published.append((topic, payload))
        self.queue.put_nowait((topic, payload))

    def deliver(self, topic, payload):
        for subscription, client in list(self.subscriptions):
            if not topic_matches_sub(subscription, topic):
                continue
            on_message = getattr(client, "on_message", None)
            if on_message:
                message = MQTTMessage(0, topic.encode())
                message.payload = payload
                on_message(client, None, message)

    async def route(self):
        try:
            while True:
                self.deliver(*await self.queue.get())
        except asyncio.CancelledError:
            pass

    async def start(self):
        self.queue = asyncio.Queue()
        self.task = asyncio.get_running_loop().create_task(self.route())

    async def stop(self):
        if self.task:
            self.task.cancel()
            await self.task
            self.task = None


@pytest.fixture
def mqttbroker():
    return MockMQTTBroker()
