"""
Model adapters.

Importing this package registers the built-in providers (``openai``, ``anthropic`` and ``tgi``) so
that :func:`load_model` can find them by name.
"""

from agentrun.models.anthropic_model import AnthropicModel
from agentrun.models.base import (
    ModelAdapter,
    ToolCatalog,
    agglomerate_deltas,
    load_model,
    message_to_delta,
    register_model,
)
from agentrun.models.openai_model import OpenAIModel
from agentrun.models.tgi_model import TGIModel

__all__ = [
    "AnthropicModel",
    "ModelAdapter",
    "OpenAIModel",
    "TGIModel",
    "ToolCatalog",
    "agglomerate_deltas",
    "load_model",
    "message_to_delta",
    "register_model",
]
