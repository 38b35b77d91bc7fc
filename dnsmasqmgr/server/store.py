"""
dnsmasqmgr/server/store.py - Background loop writing the binding stores
"""

from enum import IntEnum
import logging
from queue import Full, Queue
from threading import Event, Thread
from typing import Callable

from dnsmasqmgr.exceptions import PersistenceFailure


logger = logging.getLogger("store")


class StoreRequest(IntEnum):
    FLUSH = 1
    SHUTDOWN = 2


class StoreLoop:
    """
    Runs ``store`` in a dedicated thread whenever a flush is requested.

    Requests go through a queue with a single slot. If a flush is already
    pending, further requests are dropped: the pending flush will write the
    state as it is when it runs, which includes their changes.

    ``callback``, if given, is called from the loop thread after every
    successful flush.
    """
    def __init__(self, store: Callable[[], None], callback: Callable[[], None] | None = None):
        self.store = store
        self.callback = callback
        self.queue = Queue(maxsize=1)
        self.done = Event()
        self.thread = Thread(
            target=self.run,
            name="StoreLoopThread",
            daemon=True,
        )

    def start(self):
        self.thread.start()

    def request_store(self):
        try:
            self.queue.put_nowait(StoreRequest.FLUSH)
        except Full:
            logger.debug("Store already pending")

    def shutdown(self):
        """
        Stop the loop after any pending flush and wait for it to finish.
        """
        if not self.thread.is_alive():
            return
        self.queue.put(StoreRequest.SHUTDOWN)
        self.done.wait()
        self.thread.join()

    def run(self):
        while True:
            request = self.queue.get()
            if request == StoreRequest.SHUTDOWN:
                break

            try:
                self.store()
            except PersistenceFailure as e:
                logger.error(f"Store failed: {e}")
                continue
            except Exception:
                logger.exception("Store failed")
                continue

            if self.callback:
                try:
                    self.callback()
                except Exception:
                    logger.exception("Store callback failed")

        logger.info("Store loop stopped")
        self.done.set()
