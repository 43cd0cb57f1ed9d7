from .apps import FacilitatorServer
from .flows import setup_event_bus

__all__ = [
    "FacilitatorServer",
    "setup_event_bus",
]
