"""
Data model definitions package.
"""

from .function import BuildTemplate, DetectedHandler, FunctionRecord
from .result import BuildResult, CommandResult, InvocationResult
from .schemas import ExecuteResponse, HealthResponse, LoadResponse

__all__ = [
    "BuildTemplate",
    "DetectedHandler",
    "FunctionRecord",
    "BuildResult",
    "CommandResult",
    "InvocationResult",
    "ExecuteResponse",
    "HealthResponse",
    "LoadResponse",
]
