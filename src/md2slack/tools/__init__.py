from md2slack.tools.registry import (
    TaskToolRegistry,
    ToolBatch,
    ToolSpec,
    build_registry,
    tool_definitions,
    tool_error_summary,
)

__all__ = [
    "TaskToolRegistry",
    "ToolBatch",
    "ToolSpec",
    "build_registry",
    "tool_definitions",
    "tool_error_summary",
]
