from .options import ToolOptions, ToolOptionsBase
from .pdf_tools import BUILTIN_TOOLS, build_tool_registry
from .registry import InputArity, ToolContext, ToolHandler, ToolRegistry

__all__ = [
    "BUILTIN_TOOLS",
    "InputArity",
    "ToolContext",
    "ToolHandler",
    "ToolOptions",
    "ToolOptionsBase",
    "ToolRegistry",
    "build_tool_registry",
]
