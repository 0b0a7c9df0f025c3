from .base import AIAdapter, ToolNameMap, normalize_tool_name
from .factory import SUPPORTED_PROVIDERS, create_adapter

__all__ = [
    "AIAdapter",
    "ToolNameMap",
    "normalize_tool_name",
    "SUPPORTED_PROVIDERS",
    "create_adapter",
]
