"""AI agents for Finan AI."""

from finan_ai.agents.ai_agents import (
    CategorySuggestionAgent,
    FinanceAssistantAgent,
    InsightsAgent,
    TransactionExtractionAgent,
    workbook_to_text,
)
from finan_ai.agents.gemini_client import (
    SEARCH_TOOL,
    AIServiceError,
    FunctionCall,
    GeminiClient,
    GeminiReply,
    GroundingSource,
)
from finan_ai.agents.prompts import ADD_TRANSACTION_FUNCTION, ADD_TRANSACTION_TOOL

__all__ = [
    "CategorySuggestionAgent",
    "FinanceAssistantAgent",
    "InsightsAgent",
    "TransactionExtractionAgent",
    "workbook_to_text",
    "SEARCH_TOOL",
    "AIServiceError",
    "FunctionCall",
    "GeminiClient",
    "GeminiReply",
    "GroundingSource",
    "ADD_TRANSACTION_FUNCTION",
    "ADD_TRANSACTION_TOOL",
]
