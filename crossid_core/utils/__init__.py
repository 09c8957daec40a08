"""
Utility Module
==============

Clock, PII masking, and logging helpers shared by the engine.
"""

from crossid_core.utils.clock import Clock, SystemClock, ManualClock
from crossid_core.utils.masking import mask_pii
from crossid_core.utils.log_setup import setup_logging

__all__ = [
    "Clock",
    "SystemClock",
    "ManualClock",
    "mask_pii",
    "setup_logging",
]
