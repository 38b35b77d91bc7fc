"""
dnsmasqmgr/rpc.py - RPC implementation using MQTT and protobuf

Requests and responses are ``google.protobuf.Struct`` messages serialized
with protobuf.

A request carries ``client_id``, ``request_id``, ``method`` and optionally an
``argument`` struct. A response carries ``request_id``, ``response_code``,
``error_detail`` and optionally a ``response`` struct.
"""

from enum import IntEnum
import inspect
import logging

from google.protobuf import json_format
from google.protobuf.message import DecodeError
from google.protobuf.struct_pb2 import Struct

from dnsmasqmgr.exceptions import (
    AllocatorExhausted,
    DuplicateEntry,
    InvalidParameter,
    MalformedAddress,
    MalformedRequest,
    MissingKey,
    NotFound,
    NotSupported,
)
from dnsmasqmgr.mqtt import MQTT
from dnsmasqmgr.service import Provider


logger = logging.getLogger("rpc")


class ResponseCode(IntEnum):
    SUCCESS = 0
    UNSPECIFIED_ERROR = 1
    NO_SUCH_METHOD = 2
    INVALID_REQUEST = 3
    INVALID_ARGUMENT = 4
    ENTITY_NOT_FOUND = 5
    ENTITY_EXISTS = 6
    NOT_SUPPORTED = 7
    RESOURCE_EXHAUSTED = 8


class RPCException(Exception):
    pass


class RPCUnspecifiedError(RPCException):
    pass


class RPCNoSuchMethod(RPCException):
    pass


class RPCInvalidRequest(RPCException):
    pass


class RPCInvalidArgument(RPCException):
    pass


class RPCEntityNotFound(RPCException):
    pass


class RPCEntityExists(RPCException):
    pass


class RPCNotSupported(RPCException):
    pass


class RPCResourceExhausted(RPCException):
    pass


# Checked in order, so subclasses must come before their bases
EXCEPTION_CODE_MAP = (
    (RPCInvalidArgument, ResponseCode.INVALID_ARGUMENT),
    (MalformedRequest, ResponseCode.INVALID_ARGUMENT),
    (MalformedAddress, ResponseCode.INVALID_ARGUMENT),
    (MissingKey, ResponseCode.INVALID_ARGUMENT),
    (InvalidParameter, ResponseCode.INVALID_ARGUMENT),
    (RPCEntityNotFound, ResponseCode.ENTITY_NOT_FOUND),
    (NotFound, ResponseCode.ENTITY_NOT_FOUND),
    (RPCEntityExists, ResponseCode.ENTITY_EXISTS),
    (DuplicateEntry, ResponseCode.ENTITY_EXISTS),
    (RPCNotSupported, ResponseCode.NOT_SUPPORTED),
    (NotSupported, ResponseCode.NOT_SUPPORTED),
    (RPCResourceExhausted, ResponseCode.RESOURCE_EXHAUSTED),
    (AllocatorExhausted, ResponseCode.RESOURCE_EXHAUSTED),
)


def get_response_code(exception: Exception) -> ResponseCode:
    for exception_class, code in EXCEPTION_CODE_MAP:
        if isinstance(exception, exception_class):
            return code
    return ResponseCode.UNSPECIFIED_ERROR


def struct_from_dict(data: dict) -> Struct:
    message = Struct()
    message.update(data)
    return message


def struct_to_dict(message: Struct) -> dict:
    return json_format.MessageToDict(message)


class RPC(Provider):
    """
    The RPC provider is an implementation of RPC over MQTT.

    Message topics for RPC will be appended to the given prefix. When there
    are multiple RPC servers on the same broker, they must use unique
    prefixes.

    The request topic will be ``<prefix>/request``. The response topic will
    be ``<prefix>/response/<client_id>``.

    Consumers must register the RPC methods using register(method, handler).
    The handler is a coroutine function and may have a single parameter. If
    it does, the request argument is passed to it as a dict.
    """
    def __init__(self, mqtt: MQTT, prefix="rpc"):
        super().__init__()
        self.prefix = prefix
        self.mqtt = mqtt
        self.handlers = {}

        self.response_prefix = f"{self.prefix}/response"

        self.mqtt.subscribe(f"{self.prefix}/request", self.handle_request)

    def register(self, method: str, handler: callable):
        """
        Register an RPC handler for the given method.

        The handler must return a dict or None, unless an error occurs.

        Exceptions raised by the handler are reported to the client with the
        matching response code (see ``EXCEPTION_CODE_MAP``).
        """
        method = method.lstrip('/')
        self.handlers[method] = handler

    def send_response(self, request: Struct, response: Struct):
        response["request_id"] = request["request_id"] if "request_id" in request else 0
        client_id = request["client_id"] if "client_id" in request else ""
        self.mqtt.publish_message(f"{self.response_prefix}/{client_id}", response)

    def send_error(self, request: Struct, code: ResponseCode, detail: str):
        response = Struct()
        response["response_code"] = int(code)
        response["error_detail"] = detail
        self.send_response(request, response)

    async def handle_request(self, message):
        request = Struct()
        try:
            request.ParseFromString(message.payload)
        except DecodeError as e:
            self.send_error(request, ResponseCode.INVALID_REQUEST, f"Invalid request: {e}")
            return

        method = request["method"] if "method" in request else ""
        if method not in self.handlers:
            self.send_error(request, ResponseCode.NO_SUCH_METHOD, f"Method {method} does not exist")
            return

        handler = self.handlers[method]

        # Figure out if method requires an argument
        signature = inspect.Signature.from_callable(handler)
        args = []
        if signature.parameters:
            if "argument" not in request:
                self.send_error(request, ResponseCode.INVALID_ARGUMENT, "Call requires argument")
                return
            args.append(struct_to_dict(request["argument"]))

        try:
            result = await handler(*args)
        except Exception as e:
            code = get_response_code(e)
            if code == ResponseCode.UNSPECIFIED_ERROR:
                logger.exception(f"Got exception handling {method}.")
            self.send_error(request, code, str(e))
            return

        response = Struct()
        response["response_code"] = int(ResponseCode.SUCCESS)
        if result is not None:
            response["response"] = result

        self.send_response(request, response)
