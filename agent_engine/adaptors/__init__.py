"""Model clients for agent-engine.

This module provides implementations of ModelClient for LLM providers.
"""

from agent_engine.adaptors.openai import OpenAIClient

__all__ = ["OpenAIClient"]

# Conditional import for the optional SDK-based client
try:
    from agent_engine.adaptors.anthropic import AnthropicClient

    __all__.append("AnthropicClient")
except ImportError:
    pass
