from flowsync.llm.client import CompletionClient, CompletionError, LLMClient
from flowsync.llm.parsing import clean_model_output, parse_json_object

__all__ = [
    "CompletionClient",
    "CompletionError",
    "LLMClient",
    "clean_model_output",
    "parse_json_object",
]
