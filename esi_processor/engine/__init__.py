"""Include resolution engine."""

from esi_processor.engine.models import (
    ESIConfig,
    IncludeTag,
    ProcessOptions,
    ResolutionState,
)
from esi_processor.engine.processor import ErrorHook, ESIProcessor
from esi_processor.engine.scanner import (
    extract_attribute,
    find_include_tags,
    has_include_tag,
    remove_blocks,
)


__all__ = [
    "ESIConfig",
    "ESIProcessor",
    "ErrorHook",
    "IncludeTag",
    "ProcessOptions",
    "ResolutionState",
    "extract_attribute",
    "find_include_tags",
    "has_include_tag",
    "remove_blocks",
]
