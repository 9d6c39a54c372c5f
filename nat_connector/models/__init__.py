# Models package
from nat_connector.models.event import NatEvent

__all__ = ["NatEvent"]
