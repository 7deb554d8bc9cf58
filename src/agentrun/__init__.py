"""
agentrun: bounded multi-step agents that call tools.

    from agentrun import AgentConfig, load_model, run_agent, tool

    @tool()
    def add(a: int, b: int) -> int:
        \"\"\"Add two integers.\"\"\"
        return a + b

    config = AgentConfig(model=load_model("openai"), tools=(add,))
    result = run_agent("What is 2 + 3?", config)
"""

from agentrun.agent import (
    AgentConfig,
    CodeAgent,
    CompletionPolicy,
    RetryPolicy,
    RunResult,
    RunStatus,
    ToolCallingAgent,
    build_agent,
    run_agent,
)
from agentrun.core.errors import (
    AgentError,
    BudgetExceededError,
    ConfigurationError,
    ContentPolicyError,
    InternalError,
    ModelError,
    ModelParseError,
    ModelTransportError,
    ToolError,
    ToolErrorKind,
)
from agentrun.models import (
    ModelAdapter,
    load_model,
    register_model,
)
from agentrun.tools import (
    Tool,
    ToolInput,
    ToolRegistry,
    tool,
)

__version__ = "0.1.0"

__all__ = [
    "AgentConfig",
    "AgentError",
    "BudgetExceededError",
    "CodeAgent",
    "CompletionPolicy",
    "ConfigurationError",
    "ContentPolicyError",
    "InternalError",
    "ModelAdapter",
    "ModelError",
    "ModelParseError",
    "ModelTransportError",
    "RetryPolicy",
    "RunResult",
    "RunStatus",
    "Tool",
    "ToolCallingAgent",
    "ToolError",
    "ToolErrorKind",
    "ToolInput",
    "ToolRegistry",
    "build_agent",
    "load_model",
    "register_model",
    "run_agent",
    "tool",
]
