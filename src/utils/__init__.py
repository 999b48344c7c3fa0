from .response_marker import strip_response, wrap_response
from .truncation import PromptTruncator

__all__ = ["PromptTruncator", "strip_response", "wrap_response"]
