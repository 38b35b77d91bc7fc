"""
dnsmasqmgr/event.py - Event base
"""


class Event:
    """
    Base class for events published through the service.

    Events are usually dataclasses so that subscriptions can match on their
    fields.
    """
    pass
