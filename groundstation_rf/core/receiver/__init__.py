# groundstation_rf/core/receiver/__init__.py
from .receiver import IqSignalInfo, ModemConfig, Receiver
from .visibility import VisibilityStatus, filter_visible_signals
from .iq_constellation import IqConstellation

__all__ = [
    "IqConstellation",
    "IqSignalInfo",
    "ModemConfig",
    "Receiver",
    "VisibilityStatus",
    "filter_visible_signals",
]
