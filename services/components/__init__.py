"""
Components package for the verification cycle.
Provides ChangeDetector and Dispatcher.
"""
from services.components.change_detector import ChangeDetector
from services.components.dispatcher import Dispatcher

__all__ = [
    "ChangeDetector",
    "Dispatcher",
]
