from .model import Model, normalize_messages, parse_response
from .protocol import ModelProtocol, ModelResponse, NATURAL_FINISH_REASONS

__all__ = [
  "Model",
  "ModelProtocol",
  "ModelResponse",
  "NATURAL_FINISH_REASONS",
  "normalize_messages",
  "parse_response",
]
