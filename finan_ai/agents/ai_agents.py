"""
AI Agents for Finan AI

CRITICAL BOUNDARIES:

1. FINANCE ASSISTANT:
   - CAN: Answer finance questions, search the web in search mode
   - CAN: Propose an add_transaction call in actions mode
   - CANNOT: Change any data itself. A proposed call is validated and
     executed by the chat flow.

2. TRANSACTION EXTRACTION:
   - CAN: Read transactions from statements, spreadsheets and images
   - CANNOT: Persist anything. Results are previews the user confirms.

3. CATEGORY SUGGESTION / INSIGHTS:
   - CAN: Suggest, summarize and advise
   - CANNOT: Invent categories. Suggestions must name an existing id.

Every structured reply goes through ResponseValidator. Agents raise
AIServiceError when the service fails and return an empty ParsedResponse
when the reply is unusable.
"""

import csv
import io
import json
from datetime import date
from decimal import Decimal
from typing import Optional, Protocol

import openpyxl
import structlog

from finan_ai.agents.gemini_client import (
    SEARCH_TOOL,
    AIServiceError,
    GeminiClient,
    GeminiReply,
)
from finan_ai.agents.prompts import (
    ACTIONS_INSTRUCTION,
    ADD_TRANSACTION_TOOL,
    ASSISTANT_PERSONA,
    CATEGORY_SUGGESTION_SCHEMA,
    FILE_ROWS_SCHEMA,
    IMAGE_ROWS_SCHEMA,
    MONTHLY_COMPARISON_PROMPT,
    PARSE_IMAGE_PROMPT,
    PARSE_TEXT_PROMPT,
    PERSONALIZED_INSIGHTS_PROMPT,
    PRICE_PROMPT,
    SPENDING_ANALYSIS_PROMPT,
    SUGGEST_CATEGORY_PROMPT,
)
from finan_ai.models.finance import (
    Budget,
    Category,
    ChatMessage,
    ChatMode,
    Goal,
    Investment,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from finan_ai.validation import (
    CategorySuggestion,
    ParsedResponse,
    ResponseValidator,
)


logger = structlog.get_logger(__name__)


class SupportsStats(Protocol):
    def to_dict(self) -> dict: ...


def _category_names(categories: list[Category]) -> dict[str, str]:
    return {c.id: c.name for c in categories}


def _transactions_json(
    transactions: list[Transaction],
    categories: list[Category],
) -> str:
    names = _category_names(categories)
    rows = []
    for tx in transactions:
        row = tx.model_dump(mode="json")
        row["category_name"] = names.get(tx.category_id, "Uncategorized")
        rows.append(row)
    return json.dumps(rows, ensure_ascii=False)


def workbook_to_text(content: bytes) -> str:
    """
    Flatten every sheet of an XLSX workbook to CSV text.

    Raises:
        ValueError: The bytes are not a readable workbook
    """
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        raise ValueError(f"Could not read spreadsheet: {e}") from e

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    try:
        for sheet in workbook.worksheets:
            buffer.write(f"# Sheet: {sheet.title}\n")
            for row in sheet.iter_rows(values_only=True):
                if all(cell is None for cell in row):
                    continue
                writer.writerow(["" if cell is None else cell for cell in row])
    finally:
        workbook.close()
    return buffer.getvalue()


class FinanceAssistantAgent:
    """
    The conversational assistant.

    MODES:
    - quick: lightest model, friendly persona
    - search: Google Search grounding
    - thinking: strongest model with a larger output budget
    - actions: only proposes add_transaction calls
    """

    def __init__(self, client: GeminiClient, currency: str = "₹"):
        self._client = client
        self._currency = currency

    def system_instruction(
        self,
        mode: ChatMode,
        categories: list[Category],
        today: date,
    ) -> str:
        if mode == ChatMode.ACTIONS:
            listed = json.dumps(
                [{"id": c.id, "name": c.name} for c in categories],
                ensure_ascii=False,
            )
            return ACTIONS_INSTRUCTION.format(
                currency=self._currency,
                categories=listed,
                today=today.isoformat(),
            )
        return ASSISTANT_PERSONA.format(currency=self._currency)

    async def chat(
        self,
        prompt: str,
        history: list[ChatMessage],
        mode: ChatMode,
        categories: list[Category],
        today: date,
    ) -> GeminiReply:
        """
        Send one user turn.

        Raises:
            AIServiceError: The request failed
        """
        models = self._client.settings
        kwargs: dict = {
            "system_instruction": self.system_instruction(mode, categories, today),
            "history": history,
            "operation": f"chat_{mode.value}",
        }

        if mode == ChatMode.QUICK:
            model = models.flash_lite_model
        elif mode == ChatMode.SEARCH:
            model = models.flash_model
            kwargs["tools"] = SEARCH_TOOL
        elif mode == ChatMode.THINKING:
            model = models.pro_model
            kwargs["max_output_tokens"] = models.thinking_max_tokens
        else:
            model = models.flash_model
            kwargs["tools"] = [ADD_TRANSACTION_TOOL]

        return await self._client.generate(prompt, model=model, **kwargs)


class TransactionExtractionAgent:
    """Reads transactions out of statements, spreadsheets and images."""

    def __init__(
        self,
        client: GeminiClient,
        validator: Optional[ResponseValidator] = None,
    ):
        self._client = client
        self._validator = validator or ResponseValidator()

    async def parse_text(
        self,
        content: str,
        source: str = "CSV or plain text file",
    ) -> ParsedResponse[list[TransactionDraft]]:
        """
        Extract uncategorized drafts from statement text.

        Raises:
            AIServiceError: The request failed
        """
        reply = await self._client.generate(
            PARSE_TEXT_PROMPT.format(source=source, content=content),
            model=self._client.settings.flash_model,
            response_schema=FILE_ROWS_SCHEMA,
            operation="parse_text",
        )
        return self._validator.parse_file_rows(reply.text)

    async def parse_spreadsheet(self, content: bytes) -> ParsedResponse[list[TransactionDraft]]:
        """
        Extract drafts from an XLSX workbook.

        Raises:
            ValueError: The bytes are not a readable workbook
            AIServiceError: The request failed
        """
        text = workbook_to_text(content)
        return await self.parse_text(text, source="spreadsheet exported as CSV")

    async def parse_image(
        self,
        image: bytes,
        mime_type: str,
        categories: list[Category],
        instructions: str,
        today: date,
    ) -> ParsedResponse[list[TransactionDraft]]:
        """
        Extract categorized drafts from a receipt or statement image.

        Raises:
            AIServiceError: The request failed
        """
        listed = json.dumps(
            [{"id": c.id, "name": c.name, "type": c.type.value} for c in categories],
            ensure_ascii=False,
        )
        prompt = PARSE_IMAGE_PROMPT.format(
            instructions=instructions,
            today=today.isoformat(),
            categories=listed,
        )
        reply = await self._client.generate(
            [prompt, {"mime_type": mime_type, "data": image}],
            model=self._client.settings.flash_model,
            response_schema=IMAGE_ROWS_SCHEMA,
            operation="parse_image",
        )
        return self._validator.parse_image_rows(reply.text, categories)


class CategorySuggestionAgent:
    """Suggests the category of a transaction from its description."""

    def __init__(
        self,
        client: GeminiClient,
        validator: Optional[ResponseValidator] = None,
    ):
        self._client = client
        self._validator = validator or ResponseValidator()

    async def suggest(
        self,
        description: str,
        categories: list[Category],
    ) -> ParsedResponse[CategorySuggestion]:
        def listed(type: TransactionType) -> str:
            return json.dumps(
                [{"id": c.id, "name": c.name} for c in categories if c.type == type],
                ensure_ascii=False,
            )

        prompt = SUGGEST_CATEGORY_PROMPT.format(
            description=description,
            expense_categories=listed(TransactionType.EXPENSE),
            income_categories=listed(TransactionType.INCOME),
        )
        reply = await self._client.generate(
            prompt,
            model=self._client.settings.flash_model,
            response_schema=CATEGORY_SUGGESTION_SCHEMA,
            operation="suggest_category",
        )
        return self._validator.parse_category_suggestion(reply.text, categories)


class InsightsAgent:
    """Investment prices and written financial reports."""

    def __init__(
        self,
        client: GeminiClient,
        validator: Optional[ResponseValidator] = None,
        currency: str = "₹",
        transaction_limit: int = 50,
    ):
        self._client = client
        self._validator = validator or ResponseValidator()
        self._currency = currency
        self._transaction_limit = transaction_limit

    async def _report(self, prompt: str, model: str, operation: str) -> str:
        reply = await self._client.generate(prompt, model=model, operation=operation)
        if not reply.text.strip():
            raise AIServiceError("The AI returned an empty report. Please try again.", operation)
        return reply.text

    async def fetch_investment_price(self, name: str) -> Optional[Decimal]:
        """
        Latest price of a holding via search grounding.

        Returns None when the request fails or no number is found.
        """
        try:
            reply = await self._client.generate(
                PRICE_PROMPT.format(name=name),
                model=self._client.settings.flash_model,
                tools=SEARCH_TOOL,
                operation="fetch_price",
            )
        except AIServiceError:
            return None

        parsed = self._validator.parse_price(reply.text)
        if not parsed.ok:
            logger.info("price_not_found", investment=name, reason=parsed.error.value)
            return None
        return parsed.value

    async def analyze_spending(
        self,
        transactions: list[Transaction],
        categories: list[Category],
    ) -> str:
        prompt = SPENDING_ANALYSIS_PROMPT.format(
            currency=self._currency,
            transactions=_transactions_json(transactions, categories),
        )
        return await self._report(prompt, self._client.settings.pro_model, "analyze_spending")

    async def analyze_monthly_comparison(
        self,
        current: SupportsStats,
        previous: SupportsStats,
    ) -> str:
        prompt = MONTHLY_COMPARISON_PROMPT.format(
            currency=self._currency,
            current=json.dumps(current.to_dict(), ensure_ascii=False),
            previous=json.dumps(previous.to_dict(), ensure_ascii=False),
        )
        return await self._report(prompt, self._client.settings.flash_model, "monthly_comparison")

    async def personalized_insights(
        self,
        transactions: list[Transaction],
        investments: list[Investment],
        budgets: list[Budget],
        goals: list[Goal],
        categories: list[Category],
    ) -> str:
        names = _category_names(categories)
        recent = sorted(transactions, key=lambda t: t.date)[-self._transaction_limit:]
        budget_rows = [
            {**b.model_dump(mode="json"), "category_name": names.get(b.category_id, "Uncategorized")}
            for b in budgets
        ]
        prompt = PERSONALIZED_INSIGHTS_PROMPT.format(
            currency=self._currency,
            transactions=_transactions_json(recent, categories),
            investments=json.dumps([i.model_dump(mode="json") for i in investments]),
            budgets=json.dumps(budget_rows, ensure_ascii=False),
            goals=json.dumps([g.model_dump(mode="json") for g in goals], ensure_ascii=False),
        )
        return await self._report(prompt, self._client.settings.pro_model, "personalized_insights")
