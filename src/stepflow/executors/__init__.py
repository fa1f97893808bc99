"""Node executors and the registry the execution engine dispatches through."""

from .registry import ExecutorRegistry, NodeContext, Executor
from .generator import ContentGenerator, OpenAIContentGenerator
from .builtin import BuiltinExecutors, default_registry, SUMMARY_DOCUMENT

__all__ = [
    "ExecutorRegistry",
    "NodeContext",
    "Executor",
    "ContentGenerator",
    "OpenAIContentGenerator",
    "BuiltinExecutors",
    "default_registry",
    "SUMMARY_DOCUMENT",
]
