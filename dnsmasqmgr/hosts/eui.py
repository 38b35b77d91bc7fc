"""
EUI hardware address objects
"""

import binascii

from dnsmasqmgr.exceptions import MalformedAddress


# EUI-48, EUI-64 and 20-octet IP over InfiniBand link-layer addresses
VALID_LENGTHS = (6, 8, 20)


class EUI:
    """
    Represents a hardware address.

    Accepts the notations dnsmasq accepts in a dhcp-hostsfile: octets
    separated by colons or hyphens (``01:23:45:67:89:ab``,
    ``01-23-45-67-89-ab``) or groups of four hex digits separated by dots
    (``0123.4567.89ab``). The canonical string form is lowercase with colons.
    """

    def __init__(self, address: str | bytes):
        self.data: bytes

        try:
            if isinstance(address, str):
                data = binascii.unhexlify(self._strip(address))
            elif isinstance(address, bytes):
                data = address
            else:
                raise ValueError

            if len(data) in VALID_LENGTHS:
                self.data = data
            else:
                raise ValueError
        except (ValueError, binascii.Error):
            raise MalformedAddress(f"'{address}' does not appear to be a hardware address")

    @staticmethod
    def _strip(address: str) -> str:
        if "." in address:
            groups = address.split(".")
            if any(len(group) != 4 for group in groups):
                raise ValueError
            return "".join(groups)
        separator = ":" if ":" in address else "-"
        octets = address.split(separator)
        if len(octets) < 2 or any(len(octet) != 2 for octet in octets):
            raise ValueError
        return "".join(octets)

    def __str__(self) -> str:
        s = binascii.hexlify(self.data).decode()
        return ":".join(s[i:i+2] for i in range(0, len(self.data)*2, 2))

    def __repr__(self) -> str:
        return f"EUI('{self}')"

    def __len__(self) -> int:
        return len(self.data)

    def __eq__(self, other):
        if not isinstance(other, EUI):
            return NotImplemented
        return self.data == other.data

    def __hash__(self):
        return hash(self.data)

    @property
    def bits(self) -> int:
        return len(self.data) * 8
