"""
dnsmasqmgr/iprange/allocator.py - Random first-fit IP address allocator
"""

import logging
import random
import threading

from dnsmasqmgr.exceptions import AllocatorExhausted
from dnsmasqmgr.iprange.iprange import IPRange, ip_to_int


logger = logging.getLogger("allocator")


class IPRangeAllocator:
    """
    Hands out unique addresses from an IP range.

    Every address is tracked by its offset from the start of the range. An
    allocation starts at a random offset and takes the nearest free offset,
    first walking up then walking down, so fresh allocations spread over the
    range while a free address is always found if one exists.
    """
    def __init__(self, ip_range: IPRange, rng: random.Random | None = None):
        self.ip_range = ip_range
        self.rng = rng or random.Random()
        self.lock = threading.Lock()
        self.start_int = ip_to_int(ip_range.start)
        self.size = len(ip_range)
        self.remaining = self.size
        self.reserved = set()

    def offset(self, ip) -> int:
        return ip_to_int(ip) - self.start_int

    def contains(self, ip) -> bool:
        return self.ip_range.contains(ip)

    def allocate(self):
        """
        Reserve and return a free address.

        Raises ``AllocatorExhausted`` if every address is reserved.
        """
        with self.lock:
            if self.remaining <= 0:
                raise AllocatorExhausted(f"no address left in {self.ip_range}")

            idx = self._find_next_available_index(self.rng.randrange(self.size))

            if idx is None:
                # Bookkeeping went wrong somewhere. Trust the reservations.
                self.remaining = 0
                raise AllocatorExhausted(f"no address left in {self.ip_range}")

            self.reserved.add(idx)
            self.remaining -= 1

        ip = self.ip_range.address_at(self.start_int + idx)
        logger.debug(f"Allocated {ip}")
        return ip

    def reserve(self, ip) -> bool:
        """
        Mark ``ip`` as used.

        Addresses outside the range or already reserved are ignored. Returns
        True if the address was reserved by this call.
        """
        with self.lock:
            if not self.ip_range.contains(ip):
                return False
            idx = self.offset(ip)
            if idx in self.reserved:
                return False
            self.reserved.add(idx)
            self.remaining -= 1
        return True

    def release(self, ip) -> bool:
        """
        Make ``ip`` available again. Returns True if it was reserved.
        """
        with self.lock:
            if not self.ip_range.contains(ip):
                return False
            idx = self.offset(ip)
            if idx not in self.reserved:
                return False
            self.reserved.remove(idx)
            self.remaining += 1
        logger.debug(f"Released {ip}")
        return True

    def subtract(self, ip_range: IPRange):
        """
        Reserve every address of ``ip_range`` that is inside this range.
        """
        if not self.ip_range.overlaps(ip_range):
            return
        first = max(self.start_int, ip_to_int(ip_range.start))
        last = min(ip_to_int(self.ip_range.end), ip_to_int(ip_range.end))
        for value in range(first, last + 1):
            self.reserve(self.ip_range.address_at(value))

    def _find_next_available_index(self, idx: int) -> int | None:
        for i in range(idx, self.size):
            if i not in self.reserved:
                return i
        for i in range(idx - 1, -1, -1):
            if i not in self.reserved:
                return i
        return None
