"""
dnsmasqmgr/rpcclient.py - RPC client implementation using MQTT and protobuf
"""

import asyncio
import logging
import uuid

from google.protobuf.message import DecodeError
from google.protobuf.struct_pb2 import Struct

from dnsmasqmgr.mqtt import MQTT
from dnsmasqmgr.rpc import (
    ResponseCode,
    RPCEntityExists,
    RPCEntityNotFound,
    RPCInvalidArgument,
    RPCInvalidRequest,
    RPCNoSuchMethod,
    RPCNotSupported,
    RPCResourceExhausted,
    RPCUnspecifiedError,
    struct_to_dict,
)
from dnsmasqmgr.service import Provider


logger = logging.getLogger("rpcclient")


ERROR_CODE_MAP = {
    ResponseCode.UNSPECIFIED_ERROR: RPCUnspecifiedError,
    ResponseCode.NO_SUCH_METHOD: RPCNoSuchMethod,
    ResponseCode.INVALID_REQUEST: RPCInvalidRequest,
    ResponseCode.INVALID_ARGUMENT: RPCInvalidArgument,
    ResponseCode.ENTITY_NOT_FOUND: RPCEntityNotFound,
    ResponseCode.ENTITY_EXISTS: RPCEntityExists,
    ResponseCode.NOT_SUPPORTED: RPCNotSupported,
    ResponseCode.RESOURCE_EXHAUSTED: RPCResourceExhausted,
}


class RPCRequest:
    def __init__(self):
        self.future = asyncio.get_running_loop().create_future()

    def set_response(self, response: Struct):
        if not self.future.done():
            self.future.set_result(response)

    async def get_response(self) -> dict | None:
        response = await self.future
        code = int(response["response_code"]) if "response_code" in response else 0
        if code:
            error_detail = response["error_detail"] if "error_detail" in response else ""
            try:
                exception_class = ERROR_CODE_MAP[ResponseCode(code)]
            except ValueError:
                exception_class = RPCUnspecifiedError
            raise exception_class(error_detail)
        if "response" in response:
            return struct_to_dict(response["response"])
        return None


class RPCClient(Provider):
    """
    The RPCClient provider is an implementation of the client side of RPC over
    MQTT.

    Message topics for RPC will be appended to the given prefix. When there
    are multiple RPC servers on the same broker, they must use unique
    prefixes.
    """
    def __init__(self, mqtt: MQTT, prefix="rpc"):
        super().__init__()
        self.prefix = prefix
        self.mqtt = mqtt
        self.client_id = str(uuid.uuid4())
        self.request_id = 0
        self.in_flight_requests = {}

        self.request_topic = f"{self.prefix}/request"
        self.mqtt.subscribe(f"{self.prefix}/response/{self.client_id}", self.handle_response)

    def get_request_id(self):
        request_id = self.request_id
        self.request_id += 1
        return request_id

    async def wait_connect(self):
        await self.mqtt.wait_connect()

    async def request(self, method: str, argument: dict | None = None) -> dict | None:
        """
        Send an RPC request with the given method and argument to the server.
        When the response arrives, its content is returned.
        """
        request_message = Struct()
        request_message["client_id"] = self.client_id
        request_message["request_id"] = self.get_request_id()
        request_message["method"] = method
        if argument is not None:
            request_message["argument"] = argument
        request = RPCRequest()
        request_id = int(request_message["request_id"])
        self.in_flight_requests[request_id] = request
        self.mqtt.publish_message(self.request_topic, request_message)
        try:
            return await request.get_response()
        finally:
            self.in_flight_requests.pop(request_id, None)

    async def handle_response(self, message):
        response = Struct()
        try:
            response.ParseFromString(message.payload)
        except DecodeError:
            logger.error("Received malformed response")
            return
        request_id = int(response["request_id"]) if "request_id" in response else -1
        if request_id in self.in_flight_requests:
            self.in_flight_requests[request_id].set_response(response)
