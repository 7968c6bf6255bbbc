"""
Model gateway contract and the Ollama implementation used in deployments.
"""

from .gateway import ModelGateway, ModelRequest, ModelResponse, ModelTier, TokenUsage, call_gateway
from .ollama_client import OllamaGateway

__all__ = [
    "ModelGateway",
    "ModelRequest",
    "ModelResponse",
    "ModelTier",
    "TokenUsage",
    "call_gateway",
    "OllamaGateway",
]
