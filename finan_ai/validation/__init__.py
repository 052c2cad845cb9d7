"""Runtime validation of AI responses."""

from finan_ai.validation.response import (
    ERROR_MESSAGES,
    CategorySuggestion,
    ParsedFileRow,
    ParsedImageRow,
    ParsedResponse,
    ResponseError,
    ResponseValidator,
    TransactionToolArgs,
    ValidationIssue,
)

__all__ = [
    "ERROR_MESSAGES",
    "CategorySuggestion",
    "ParsedFileRow",
    "ParsedImageRow",
    "ParsedResponse",
    "ResponseError",
    "ResponseValidator",
    "TransactionToolArgs",
    "ValidationIssue",
]
