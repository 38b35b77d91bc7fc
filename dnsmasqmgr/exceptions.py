"""
dnsmasqmgr/exceptions.py - Exceptions for dnsmasqmgr
"""


class DNSMasqMgrException(Exception):
    pass


class InvalidConfig(DNSMasqMgrException):
    pass


class InvalidRange(DNSMasqMgrException):
    pass


class MalformedRequest(DNSMasqMgrException):
    pass


class MissingKey(DNSMasqMgrException):
    pass


class InvalidParameter(DNSMasqMgrException):
    pass


class MalformedAddress(DNSMasqMgrException):
    pass


class MalformedBinding(MalformedAddress):
    pass


class DuplicateEntry(DNSMasqMgrException):
    """
    Raised when an entry collides with one already stored.

    ``field`` names the colliding field and ``entry`` is the entry already
    present.
    """
    def __init__(self, field: str, entry):
        super().__init__(f"{field} already present: {entry}")
        self.field = field
        self.entry = entry


class NotFound(DNSMasqMgrException):
    pass


class AllocatorExhausted(DNSMasqMgrException):
    pass


class NotSupported(DNSMasqMgrException):
    pass


class PersistenceFailure(DNSMasqMgrException):
    pass
