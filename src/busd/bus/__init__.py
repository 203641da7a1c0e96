"""Bus context and event loop the daemon drives."""

from busd.bus.context import BusContext
from busd.bus.loop import BusLoop

__all__ = ["BusContext", "BusLoop"]
