"""
dnsmasqmgr/server/journal.py - Append-only change journal
"""

import json
import logging

from dnsmasqmgr.address import Address


logger = logging.getLogger("journal")


class Journal:
    """
    Records every change as one JSON object per line.

    Without a path nothing is recorded. Recording never fails: errors are
    logged and the change goes on.
    """
    def __init__(self, path=None):
        self.path = path
        self.file = None
        if path:
            self.file = open(path, "a")
            logger.info(f"Logging changes on {path}")
        else:
            logger.info("NOT logging changes")

    def record(self, action: str, address: Address):
        if self.file is None:
            return
        try:
            entry = json.dumps({
                "action": action,
                "address": address.to_dict(),
            })
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot add to journal: {e}")
            return
        try:
            self.file.write(entry + "\n")
            self.file.flush()
        except OSError as e:
            logger.error(f"Cannot write journal {self.path}: {e}")

    def close(self):
        if self.file is not None:
            self.file.close()
            self.file = None
