"""
dnsmasqmgr/config.py - Daemon configuration
"""

from dataclasses import asdict, dataclass, field, fields
import json

from dnsmasqmgr.exceptions import InvalidConfig


DEFAULT_MQTT_HOST = "localhost"
DEFAULT_MQTT_PORT = 1883
DEFAULT_RPC_PREFIX = "dnsmasqmgr/rpc"
DEFAULT_EVENT_TOPIC = "dnsmasqmgr/event"


@dataclass
class Config:
    """
    Configuration of the dnsmasqmgr daemon, stored as a JSON object.
    """
    iprange: str = ""
    hostspath: str = ""
    leasespath: str = ""
    journalpath: str = ""
    exclude: list[str] = field(default_factory=list)
    mqtthost: str = DEFAULT_MQTT_HOST
    mqttport: int = DEFAULT_MQTT_PORT
    rpcprefix: str = DEFAULT_RPC_PREFIX
    eventtopic: str = DEFAULT_EVENT_TOPIC

    @classmethod
    def default(cls) -> "Config":
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        if not isinstance(data, dict):
            raise InvalidConfig("configuration must be a JSON object")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidConfig(f"unknown configuration keys: {', '.join(sorted(unknown))}")
        return cls(**data)

    @classmethod
    def parse_file(cls, path) -> "Config":
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise InvalidConfig(f"cannot parse {path}: {e}")
        return cls.from_dict(data)

    def check(self):
        for name in ("iprange", "hostspath", "leasespath", "journalpath", "mqtthost", "rpcprefix", "eventtopic"):
            value = getattr(self, name)
            if not isinstance(value, str):
                raise InvalidConfig(f"{name} must be a string, got {value!r}")
        if not isinstance(self.exclude, list) or not all(isinstance(r, str) for r in self.exclude):
            raise InvalidConfig(f"exclude must be a list of ranges, got {self.exclude!r}")
        if not self.iprange:
            raise InvalidConfig("ip range must be specified")
        if not self.hostspath or not self.leasespath:
            raise InvalidConfig(f"missing configuration files: hosts=[{self.hostspath}] leases=[{self.leasespath}]")
        if not isinstance(self.mqttport, int) or isinstance(self.mqttport, bool):
            raise InvalidConfig(f"invalid MQTT port {self.mqttport}")

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=4)
