from crm_copilot.tools.executor import ToolExecutor
from crm_copilot.tools.registry import (
    ArgumentSpec,
    DEFAULT_TOOLS,
    ToolDeclaration,
    ToolRegistry,
)

__all__ = [
    "ArgumentSpec",
    "DEFAULT_TOOLS",
    "ToolDeclaration",
    "ToolExecutor",
    "ToolRegistry",
]
