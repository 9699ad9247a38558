from .llm import AIClient, parse_object

__all__ = ["AIClient", "parse_object"]
