from .openai_compatible import call_openai_compatible_endpoint

__all__ = [
    "call_openai_compatible_endpoint",
]
