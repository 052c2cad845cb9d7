"""
AI Response Validation

DESIGN DECISION: Nothing the model returns is trusted. Every structured
reply passes through this gate before it can touch the ledger.

STAGE 1 - DECODING:
- Empty reply detection
- JSON extraction (the whole text, or the outermost [...] / {...} span
  when the model wrapped it in prose or code fences)
- Top-level shape check (list vs object)

STAGE 2 - ITEM VALIDATION:
- Each item is validated on its own against a pydantic schema
- Invalid items are dropped and counted, never repaired by guessing
- References (category ids) are checked against the user's data

IMPORTANT: Validation NEVER raises. A malformed reply becomes an empty
result with an error code and a message the user can read.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from finan_ai.models.finance import (
    Category,
    TransactionDraft,
    TransactionType,
    round_to_cents,
)


T = TypeVar("T")


class ResponseError(str, Enum):
    """Why a reply produced no usable value."""
    EMPTY_RESPONSE = "empty_response"
    INVALID_JSON = "invalid_json"
    WRONG_SHAPE = "wrong_shape"
    NO_VALID_ITEMS = "no_valid_items"
    UNKNOWN_CATEGORY = "unknown_category"
    NO_NUMBER_FOUND = "no_number_found"


ERROR_MESSAGES: dict[ResponseError, str] = {
    ResponseError.EMPTY_RESPONSE: "The AI returned an empty response.",
    ResponseError.INVALID_JSON: "The AI response could not be read.",
    ResponseError.WRONG_SHAPE: "The AI response was not in the expected format.",
    ResponseError.NO_VALID_ITEMS: "No valid transactions were found.",
    ResponseError.UNKNOWN_CATEGORY: "The AI suggested a category that does not exist.",
    ResponseError.NO_NUMBER_FOUND: "No price could be found in the AI response.",
}


@dataclass
class ValidationIssue:
    """One problem found in a reply."""
    index: Optional[int]
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"index": self.index, "field": self.field, "message": self.message}


@dataclass
class ParsedResponse(Generic[T]):
    """
    Outcome of validating one AI reply.

    ok is True only when value is usable. dropped counts list items that
    failed validation (they are also described in issues).
    """
    ok: bool
    value: Optional[T] = None
    error: Optional[ResponseError] = None
    issues: list[ValidationIssue] = field(default_factory=list)
    dropped: int = 0

    @property
    def message(self) -> str:
        """User-facing summary."""
        if self.error is not None:
            return ERROR_MESSAGES[self.error]
        if self.dropped:
            return f"{self.dropped} item(s) could not be read and were skipped."
        return ""

    @classmethod
    def failure(
        cls,
        error: ResponseError,
        issues: Optional[list[ValidationIssue]] = None,
        dropped: int = 0,
    ) -> "ParsedResponse[T]":
        return cls(ok=False, error=error, issues=issues or [], dropped=dropped)


# =============================================================================
# ITEM SCHEMAS
# =============================================================================

def _clean_amount(v: Any) -> Any:
    """Accept "1,200.50" and "₹450" as well as plain numbers."""
    if isinstance(v, str):
        cleaned = re.sub(r"[^\d.\-]", "", v)
        return cleaned or v
    return v


class _AIItem(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    description: str = Field(..., min_length=1, max_length=500)
    amount: Decimal = Field(..., gt=0)

    @field_validator("amount", mode="before")
    @classmethod
    def clean_amount(cls, v: Any) -> Any:
        return round_to_cents(_clean_amount(v))


class ParsedFileRow(_AIItem):
    """A transaction row read from a CSV, text or spreadsheet file."""

    date: date
    type: TransactionType

    @field_validator("type", mode="before")
    @classmethod
    def lower_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    def to_draft(self) -> TransactionDraft:
        # Imported rows start uncategorized
        return TransactionDraft(
            date=self.date,
            description=self.description,
            amount=self.amount,
            type=self.type,
            category_id="",
        )


class ParsedImageRow(_AIItem):
    """A transaction read from a receipt or statement image."""

    date: date
    category_id: str = Field(
        default="",
        validation_alias=AliasChoices("category_id", "categoryId"),
    )


class TransactionToolArgs(_AIItem):
    """Arguments of an add_transaction function call."""

    type: TransactionType
    category_id: str = Field(
        ...,
        validation_alias=AliasChoices("category_id", "categoryId"),
    )
    on: Optional[date] = Field(default=None, validation_alias="date")

    @field_validator("type", mode="before")
    @classmethod
    def lower_type(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("on", mode="before")
    @classmethod
    def blank_date(cls, v: Any) -> Any:
        return None if v == "" else v


class CategorySuggestionPayload(BaseModel):
    category_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("category_id", "categoryId"),
    )


@dataclass(frozen=True)
class CategorySuggestion:
    category_id: str
    type: TransactionType


# =============================================================================
# VALIDATOR
# =============================================================================

def _issues_from(error: ValidationError, index: Optional[int]) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            index=index,
            field=".".join(str(p) for p in err["loc"]) or "item",
            message=err["msg"],
        )
        for err in error.errors()
    ]


class ResponseValidator:
    """
    Turns raw model text into typed, validated values.

    Every public method returns a ParsedResponse and never raises.
    """

    # -------------------------------------------------------------------------
    # Stage 1: decoding
    # -------------------------------------------------------------------------

    @staticmethod
    def extract_json(text: str, opener: str) -> Any:
        """
        Decode JSON from a reply.

        Tries the whole text first, then the outermost span that starts
        with `opener` ("[" or "{").

        Raises:
            ValueError: No decodable JSON was found
        """
        closer = "]" if opener == "[" else "}"
        stripped = text.strip()
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass

        start = stripped.find(opener)
        end = stripped.rfind(closer)
        if start < 0 or end <= start:
            raise ValueError("No JSON found in response")
        try:
            return json.loads(stripped[start:end + 1])
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in response: {e.msg}") from e

    def _decode(self, text: Optional[str], expected: type) -> tuple[Any, Optional[ParsedResponse]]:
        if text is None or not text.strip():
            return None, ParsedResponse.failure(ResponseError.EMPTY_RESPONSE)

        opener = "[" if expected is list else "{"
        try:
            data = self.extract_json(text, opener)
        except ValueError as e:
            return None, ParsedResponse.failure(
                ResponseError.INVALID_JSON,
                [ValidationIssue(index=None, field="response", message=str(e))],
            )

        if not isinstance(data, expected):
            return None, ParsedResponse.failure(
                ResponseError.WRONG_SHAPE,
                [ValidationIssue(
                    index=None,
                    field="response",
                    message=f"Expected a JSON {expected.__name__}, got {type(data).__name__}",
                )],
            )
        return data, None

    # -------------------------------------------------------------------------
    # Stage 2: items
    # -------------------------------------------------------------------------

    def _validate_items(
        self,
        items: list,
        schema: type[BaseModel],
    ) -> tuple[list, list[ValidationIssue], int]:
        valid = []
        issues: list[ValidationIssue] = []
        dropped = 0
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                issues.append(ValidationIssue(index, "item", "Item is not an object"))
                dropped += 1
                continue
            try:
                valid.append(schema.model_validate(item))
            except ValidationError as e:
                issues.extend(_issues_from(e, index))
                dropped += 1
        return valid, issues, dropped

    def parse_file_rows(self, text: Optional[str]) -> ParsedResponse[list[TransactionDraft]]:
        """
        Validate the rows the model read from an imported file.

        Every valid row becomes an uncategorized TransactionDraft.
        """
        data, failure = self._decode(text, list)
        if failure:
            return failure

        rows, issues, dropped = self._validate_items(data, ParsedFileRow)
        if not rows:
            return ParsedResponse.failure(ResponseError.NO_VALID_ITEMS, issues, dropped)

        return ParsedResponse(
            ok=True,
            value=[row.to_draft() for row in rows],
            issues=issues,
            dropped=dropped,
        )

    def parse_image_rows(
        self,
        text: Optional[str],
        categories: list[Category],
    ) -> ParsedResponse[list[TransactionDraft]]:
        """
        Validate transactions read from an image.

        The type comes from the matched category (expense when the id is
        unknown, in which case the draft is left uncategorized).
        """
        data, failure = self._decode(text, list)
        if failure:
            return failure

        rows, issues, dropped = self._validate_items(data, ParsedImageRow)
        if not rows:
            return ParsedResponse.failure(ResponseError.NO_VALID_ITEMS, issues, dropped)

        by_id = {c.id: c for c in categories}
        drafts = []
        for row in rows:
            category = by_id.get(row.category_id)
            drafts.append(TransactionDraft(
                date=row.date,
                description=row.description,
                amount=row.amount,
                type=category.type if category else TransactionType.EXPENSE,
                category_id=category.id if category else "",
            ))

        return ParsedResponse(ok=True, value=drafts, issues=issues, dropped=dropped)

    def parse_tool_args(
        self,
        args: Any,
        categories: list[Category],
        today: date,
    ) -> ParsedResponse[TransactionDraft]:
        """Validate add_transaction function-call arguments."""
        if not isinstance(args, dict):
            return ParsedResponse.failure(ResponseError.WRONG_SHAPE)

        try:
            parsed = TransactionToolArgs.model_validate(args)
        except ValidationError as e:
            return ParsedResponse.failure(
                ResponseError.NO_VALID_ITEMS, _issues_from(e, None), dropped=1
            )

        if not any(c.id == parsed.category_id for c in categories):
            return ParsedResponse.failure(
                ResponseError.UNKNOWN_CATEGORY,
                [ValidationIssue(None, "category_id", f"Unknown category {parsed.category_id!r}")],
            )

        draft = TransactionDraft(
            date=parsed.on or today,
            description=parsed.description,
            amount=parsed.amount,
            type=parsed.type,
            category_id=parsed.category_id,
        )
        return ParsedResponse(ok=True, value=draft)

    def parse_category_suggestion(
        self,
        text: Optional[str],
        categories: list[Category],
    ) -> ParsedResponse[CategorySuggestion]:
        data, failure = self._decode(text, dict)
        if failure:
            return failure

        try:
            payload = CategorySuggestionPayload.model_validate(data)
        except ValidationError as e:
            return ParsedResponse.failure(ResponseError.WRONG_SHAPE, _issues_from(e, None))

        for category in categories:
            if category.id == payload.category_id:
                return ParsedResponse(
                    ok=True,
                    value=CategorySuggestion(category_id=category.id, type=category.type),
                )

        return ParsedResponse.failure(
            ResponseError.UNKNOWN_CATEGORY,
            [ValidationIssue(None, "category_id", f"Unknown category {payload.category_id!r}")],
        )

    def parse_price(self, text: Optional[str]) -> ParsedResponse[Decimal]:
        """
        Read the first number in a free-text reply.

        >>> ResponseValidator().parse_price("About 1,234.50 INR").value
        Decimal('1234.50')
        """
        if text is None or not text.strip():
            return ParsedResponse.failure(ResponseError.EMPTY_RESPONSE)

        for match in re.finditer(r"[\d,.]+", text):
            candidate = match.group().replace(",", "").rstrip(".")
            if not any(ch.isdigit() for ch in candidate):
                continue
            try:
                return ParsedResponse(ok=True, value=Decimal(candidate))
            except InvalidOperation:
                continue

        return ParsedResponse.failure(ResponseError.NO_NUMBER_FOUND)
