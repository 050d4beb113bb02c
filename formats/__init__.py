"""Debate format definitions and implementations."""

from .base import DebateFormat
from .oxford import OxfordFormat
from .standard import StandardFormat
from .registry import FormatRegistry, format_registry

__all__ = [
    'DebateFormat',
    'OxfordFormat',
    'StandardFormat',
    'FormatRegistry',
    'format_registry',
]
