"""
dnsmasqmgr/server/rwlock.py - Reader/writer lock
"""

from contextlib import contextmanager
import threading


class RWLock:
    """
    A lock allowing many readers or one writer.

    Waiting writers block new readers, so a steady stream of lookups cannot
    starve a request.
    """
    def __init__(self):
        self.condition = threading.Condition(threading.Lock())
        self.readers = 0
        self.writer = False
        self.writers_waiting = 0

    def acquire_read(self):
        with self.condition:
            while self.writer or self.writers_waiting:
                self.condition.wait()
            self.readers += 1

    def release_read(self):
        with self.condition:
            self.readers -= 1
            if not self.readers:
                self.condition.notify_all()

    def acquire_write(self):
        with self.condition:
            self.writers_waiting += 1
            try:
                while self.writer or self.readers:
                    self.condition.wait()
            finally:
                self.writers_waiting -= 1
            self.writer = True

    def release_write(self):
        with self.condition:
            self.writer = False
            self.condition.notify_all()

    @contextmanager
    def read(self):
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self):
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
