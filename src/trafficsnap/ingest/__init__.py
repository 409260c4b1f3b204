from .codec import parse, serialize
from .mapping import DEFAULT_MAPPING, detect_mapping, resolve_mapping

__all__ = [
    "DEFAULT_MAPPING",
    "detect_mapping",
    "parse",
    "resolve_mapping",
    "serialize",
]
