"""
Flows of Finan AI

Each flow wires storage, agents, validation and the audit trail into one
user-facing operation:
1. Session start (load state -> materialize recurring -> atomic save)
2. Statement import (upload -> AI read -> validate -> preview -> confirm)
3. Chat (question -> model -> validated action -> save)
4. Category suggestion and insights

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing the AI proposes is written without validation
- Imports and image extractions are written only after confirmation
- AI and storage failures become messages, never unhandled exceptions
- Every step is audited
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional

import structlog

from finan_ai.agents import (
    ADD_TRANSACTION_FUNCTION,
    AIServiceError,
    CategorySuggestionAgent,
    FinanceAssistantAgent,
    GeminiClient,
    InsightsAgent,
    TransactionExtractionAgent,
)
from finan_ai.audit import AuditLogger, configure_logging, create_correlation_id
from finan_ai.config import AppSettings, get_settings
from finan_ai.models.audit import AuditEventBuilder
from finan_ai.models.finance import (
    ChatMessage,
    ChatMode,
    ChatRole,
    Transaction,
    TransactionDraft,
)
from finan_ai.reports import current_and_previous_month, filter_transactions
from finan_ai.services.storage import (
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStoreInterface,
    StorageError,
)
from finan_ai.store import AppState, UserRegistry
from finan_ai.transfer import (
    ImportPreview,
    ImportService,
    UploadRejectedError,
)
from finan_ai.validation import CategorySuggestion, ResponseValidator


logger = structlog.get_logger(__name__)

SAVE_FAILED_MESSAGE = "Your changes could not be saved. Please try again."


def format_amount(amount: Decimal, currency: str = "₹") -> str:
    """
    >>> format_amount(Decimal("1234.5"))
    '₹1,234.50'
    """
    return f"{currency}{amount:,.2f}"


async def save_state(
    state: AppState,
    audit_logger: Optional[AuditLogger],
    operation: str,
) -> bool:
    """Save and report failure instead of raising. Unsaved changes stay dirty."""
    try:
        await state.save()
        return True
    except StorageError as e:
        if audit_logger:
            await audit_logger.log_storage_failure(
                operation=operation,
                error_message=str(e),
                user_id=state.user_id,
            )
        else:
            logger.error("save_failed", operation=operation, error=str(e))
        return False


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class SessionResult:
    ok: bool
    message: str
    state: Optional[AppState] = None
    materialized: int = 0
    advanced_rules: int = 0


@dataclass
class ImportOutcome:
    ok: bool
    message: str
    preview: Optional[ImportPreview] = None
    added: list[Transaction] = field(default_factory=list)


@dataclass
class ChatOutcome:
    """
    Result of one chat turn.

    pending holds drafts read from an image that wait for confirmation.
    """
    ok: bool
    message: str
    added: list[Transaction] = field(default_factory=list)
    pending: list[TransactionDraft] = field(default_factory=list)


@dataclass
class SuggestionOutcome:
    ok: bool
    message: str
    suggestion: Optional[CategorySuggestion] = None


@dataclass
class InsightOutcome:
    ok: bool
    message: str
    text: str = ""


@dataclass
class PriceRefreshOutcome:
    ok: bool
    message: str
    updated: dict[str, Decimal] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)


# =============================================================================
# SESSION
# =============================================================================

class SessionFlow:
    """
    Orchestrates session start.

    Flow:
    1. Load every collection of the user
    2. Materialize recurring transactions due as of today
    3. Save transactions and advanced rules in ONE write

    Runs before anything else reads the transaction list.
    """

    def __init__(
        self,
        storage: KeyValueStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
        key_prefix: str = "finan-ai",
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._key_prefix = key_prefix

    async def start(self, user_id: str, today: date) -> SessionResult:
        correlation_id = create_correlation_id()

        try:
            state = await AppState.load(self._storage, user_id, self._key_prefix)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_storage_failure(
                    operation="load_state",
                    error_message=str(e),
                    user_id=user_id,
                    correlation_id=correlation_id,
                )
            return SessionResult(ok=False, message="Your data could not be loaded. Please try again.")

        result = state.process_recurring(today)
        saved = await save_state(state, self._audit_logger, "session_start")

        if self._audit_logger:
            await self._audit_logger.log(
                AuditEventBuilder.session_started(user_id, correlation_id=correlation_id)
            )
            if result.changed:
                await self._audit_logger.log(AuditEventBuilder.recurring_materialized(
                    user_id=user_id,
                    transaction_count=len(result.new_transactions),
                    rule_count=len(result.updated_rules),
                    correlation_id=correlation_id,
                ))

        if not saved:
            message = SAVE_FAILED_MESSAGE
        elif result.new_transactions:
            message = f"Added {len(result.new_transactions)} recurring transaction(s)."
        else:
            message = ""

        return SessionResult(
            ok=saved,
            message=message,
            state=state,
            materialized=len(result.new_transactions),
            advanced_rules=len(result.updated_rules),
        )


# =============================================================================
# IMPORT
# =============================================================================

class TransactionImportFlow:
    """
    Orchestrates statement import.

    Human confirmation is MANDATORY: preview() never writes.
    """

    def __init__(
        self,
        import_service: ImportService,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._service = import_service
        self._audit_logger = audit_logger

    async def preview(
        self,
        state: AppState,
        filename: str,
        content: bytes,
        mime_type: Optional[str] = None,
    ) -> ImportOutcome:
        correlation_id = create_correlation_id()

        try:
            preview = await self._service.import_file(filename, content, mime_type)
        except UploadRejectedError as e:
            if self._audit_logger:
                await self._audit_logger.log(AuditEventBuilder.import_rejected(
                    user_id=state.user_id,
                    filename=filename,
                    reason=str(e),
                    correlation_id=correlation_id,
                ))
            return ImportOutcome(ok=False, message=str(e))
        except AIServiceError as e:
            if self._audit_logger:
                await self._audit_logger.log_ai_failure(
                    operation="import_file",
                    error_message=str(e.__cause__ or e),
                    user_id=state.user_id,
                    correlation_id=correlation_id,
                )
            return ImportOutcome(
                ok=False,
                message="AI failed to parse the file. The file might be in an unsupported format or too complex.",
            )

        preview.correlation_id = correlation_id
        if self._audit_logger:
            if not preview.parsed.ok:
                await self._audit_logger.log_ai_rejection(
                    operation="import_file",
                    reason=preview.parsed.error.value,
                    issues=[i.to_dict() for i in preview.parsed.issues[:20]],
                    user_id=state.user_id,
                    correlation_id=correlation_id,
                )
            await self._audit_logger.log(AuditEventBuilder.import_previewed(
                user_id=state.user_id,
                filename=filename,
                found=len(preview.drafts),
                dropped=preview.parsed.dropped,
                correlation_id=correlation_id,
            ))

        return ImportOutcome(ok=preview.ok, message=preview.message, preview=preview)

    async def confirm(self, state: AppState, preview: ImportPreview) -> ImportOutcome:
        if not preview.ok:
            return ImportOutcome(ok=False, message="There is nothing to import.", preview=preview)

        added = self._service.confirm_import(state, preview)
        saved = await save_state(state, self._audit_logger, "confirm_import")

        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.import_confirmed(
                user_id=state.user_id,
                added=len(added),
                correlation_id=preview.correlation_id,
            ))

        if not saved:
            return ImportOutcome(ok=False, message=SAVE_FAILED_MESSAGE, preview=preview, added=added)
        return ImportOutcome(
            ok=True,
            message=f"Successfully imported {len(added)} transactions!",
            preview=preview,
            added=added,
        )


# =============================================================================
# CHAT
# =============================================================================

class ChatFlow:
    """
    Orchestrates assistant conversations.

    Every turn is appended to the history of its mode. In actions mode
    a proposed add_transaction call is validated before it runs; image
    extractions wait for explicit confirmation.
    """

    def __init__(
        self,
        assistant: FinanceAssistantAgent,
        extraction_agent: TransactionExtractionAgent,
        validator: Optional[ResponseValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._assistant = assistant
        self._extraction = extraction_agent
        self._validator = validator or ResponseValidator()
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app

    def _money(self, amount: Decimal) -> str:
        return format_amount(amount, self._settings.currency_symbol)

    async def _finish(
        self,
        state: AppState,
        mode: ChatMode,
        messages: list[ChatMessage],
        outcome: ChatOutcome,
    ) -> ChatOutcome:
        state.append_chat_messages(mode, messages)
        if not await save_state(state, self._audit_logger, f"chat_{mode.value}"):
            outcome.ok = False
            outcome.message = f"{outcome.message}\n\n{SAVE_FAILED_MESSAGE}".strip()
        return outcome

    async def send(
        self,
        state: AppState,
        mode: ChatMode,
        text: str,
        today: date,
    ) -> ChatOutcome:
        text = text.strip()
        if not text:
            return ChatOutcome(ok=False, message="Please type a message.")

        history = state.chat_history(mode)
        user_message = ChatMessage(role=ChatRole.USER, text=text)

        try:
            reply = await self._assistant.chat(text, history, mode, state.categories, today)
        except AIServiceError as e:
            if self._audit_logger:
                await self._audit_logger.log_ai_failure(
                    operation=f"chat_{mode.value}",
                    error_message=str(e.__cause__ or e),
                    user_id=state.user_id,
                )
            outcome = ChatOutcome(ok=False, message=e.user_message)
            return await self._finish(
                state, mode,
                [user_message, ChatMessage(role=ChatRole.MODEL, text=e.user_message)],
                outcome,
            )

        if mode == ChatMode.ACTIONS and reply.function_calls:
            outcome = await self._run_action(state, reply.function_calls[0], today)
            return await self._finish(
                state, mode,
                [user_message, ChatMessage(role=ChatRole.MODEL, text=outcome.message)],
                outcome,
            )

        if reply.is_empty:
            message = "Sorry, I couldn't come up with an answer. Please try rephrasing."
            return await self._finish(
                state, mode,
                [user_message, ChatMessage(role=ChatRole.MODEL, text=message)],
                ChatOutcome(ok=False, message=message),
            )

        model_message = ChatMessage(
            role=ChatRole.MODEL,
            text=reply.text,
            sources=[{"title": s.title, "uri": s.uri} for s in reply.grounding_sources],
        )
        return await self._finish(
            state, mode, [user_message, model_message], ChatOutcome(ok=True, message=reply.text)
        )

    async def _run_action(self, state: AppState, call, today: date) -> ChatOutcome:
        if call.name != ADD_TRANSACTION_FUNCTION:
            return ChatOutcome(ok=False, message=f"Sorry, I can't perform the action '{call.name}'.")

        parsed = self._validator.parse_tool_args(call.args, state.categories, today)
        if not parsed.ok:
            if self._audit_logger:
                await self._audit_logger.log_ai_rejection(
                    operation="add_transaction",
                    reason=parsed.error.value,
                    issues=[i.to_dict() for i in parsed.issues],
                    user_id=state.user_id,
                )
            return ChatOutcome(
                ok=False,
                message=(
                    "I couldn't add that transaction because some details were missing "
                    "or invalid. Please include the description, amount, type and category."
                ),
            )

        transaction = state.add_transaction(parsed.value)
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.chat_action_executed(
                user_id=state.user_id,
                action=ADD_TRANSACTION_FUNCTION,
                transaction_id=transaction.id,
            ))
        return ChatOutcome(
            ok=True,
            message=f'✅ Transaction added: "{transaction.description}" for {self._money(transaction.amount)}.',
            added=[transaction],
        )

    async def send_image(
        self,
        state: AppState,
        image: bytes,
        mime_type: str,
        instructions: str,
        today: date,
    ) -> ChatOutcome:
        """Read transactions from an image into pending drafts (actions mode)."""
        mode = ChatMode.ACTIONS
        if mime_type.split("/")[-1].lower() not in self._settings.supported_image_formats_list:
            return ChatOutcome(ok=False, message="Unsupported image type.")
        if len(image) > self._settings.max_upload_size_bytes:
            return ChatOutcome(
                ok=False,
                message=f"Image is too large. The limit is {self._settings.max_upload_size_mb} MB.",
            )

        instructions = instructions.strip()
        label = f"[Image Attached] {instructions}" if instructions else "[Image Attached]"
        user_message = ChatMessage(role=ChatRole.USER, text=label)

        try:
            parsed = await self._extraction.parse_image(
                image, mime_type, state.categories, instructions, today
            )
        except AIServiceError as e:
            if self._audit_logger:
                await self._audit_logger.log_ai_failure(
                    operation="parse_image",
                    error_message=str(e.__cause__ or e),
                    user_id=state.user_id,
                )
            message = "AI failed to read the transactions from the image. Please try a clearer image."
            return await self._finish(
                state, mode,
                [user_message, ChatMessage(role=ChatRole.MODEL, text=message)],
                ChatOutcome(ok=False, message=message),
            )

        if not parsed.ok:
            if self._audit_logger:
                await self._audit_logger.log_ai_rejection(
                    operation="parse_image",
                    reason=parsed.error.value,
                    issues=[i.to_dict() for i in parsed.issues[:20]],
                    user_id=state.user_id,
                )
            message = "I couldn't find any valid transactions based on your image and instructions."
            return await self._finish(
                state, mode,
                [user_message, ChatMessage(role=ChatRole.MODEL, text=message)],
                ChatOutcome(ok=False, message=message),
            )

        drafts = parsed.value
        listing = "\n".join(f"- {d.description} ({self._money(d.amount)})" for d in drafts)
        message = f"I found {len(drafts)} transaction(s):\n\n{listing}\n\nShould I add them?"
        return await self._finish(
            state, mode,
            [user_message, ChatMessage(role=ChatRole.MODEL, text=message)],
            ChatOutcome(ok=True, message=message, pending=drafts),
        )

    async def confirm_pending(
        self,
        state: AppState,
        pending: list[TransactionDraft],
        confirm: bool,
    ) -> ChatOutcome:
        mode = ChatMode.ACTIONS
        if not confirm or not pending:
            message = "Okay, I won't add them."
            return await self._finish(
                state, mode,
                [ChatMessage(role=ChatRole.MODEL, text=message)],
                ChatOutcome(ok=True, message=message),
            )

        added = state.add_transactions(pending)
        if self._audit_logger:
            for transaction in added:
                await self._audit_logger.log(AuditEventBuilder.transaction_added(
                    user_id=state.user_id,
                    transaction_id=transaction.id,
                    description=transaction.description,
                    amount=str(transaction.amount),
                    source="image",
                ))
        message = f"✅ Done! I've added {len(added)} transaction(s)."
        return await self._finish(
            state, mode,
            [ChatMessage(role=ChatRole.MODEL, text=message)],
            ChatOutcome(ok=True, message=message, added=added),
        )

    async def new_chat(self, state: AppState, mode: ChatMode) -> bool:
        state.clear_chat_history(mode)
        return await save_state(state, self._audit_logger, "clear_chat")


# =============================================================================
# CATEGORY SUGGESTION & INSIGHTS
# =============================================================================

class CategorySuggestionFlow:
    """Suggests a category while the user types a description."""

    def __init__(
        self,
        agent: CategorySuggestionAgent,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._agent = agent
        self._audit_logger = audit_logger

    async def suggest(self, state: AppState, description: str) -> SuggestionOutcome:
        description = description.strip()
        if len(description) < 3:
            return SuggestionOutcome(ok=False, message="Type a longer description first.")

        try:
            parsed = await self._agent.suggest(description, state.categories)
        except AIServiceError as e:
            if self._audit_logger:
                await self._audit_logger.log_ai_failure(
                    operation="suggest_category",
                    error_message=str(e.__cause__ or e),
                    user_id=state.user_id,
                )
            return SuggestionOutcome(ok=False, message="Could not suggest a category right now.")

        if not parsed.ok:
            if self._audit_logger:
                await self._audit_logger.log_ai_rejection(
                    operation="suggest_category",
                    reason=parsed.error.value,
                    issues=[i.to_dict() for i in parsed.issues],
                    user_id=state.user_id,
                )
            return SuggestionOutcome(ok=False, message="No matching category was found.")

        name = state.category_name(parsed.value.category_id)
        return SuggestionOutcome(ok=True, message=f"Suggested category: {name}", suggestion=parsed.value)


class InsightsFlow:
    """Written reports and investment price refresh."""

    def __init__(
        self,
        agent: InsightsAgent,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._agent = agent
        self._audit_logger = audit_logger

    async def _run(self, state: AppState, operation: str, call) -> InsightOutcome:
        try:
            text = await call
        except AIServiceError as e:
            if self._audit_logger:
                await self._audit_logger.log_ai_failure(
                    operation=operation,
                    error_message=str(e.__cause__ or e),
                    user_id=state.user_id,
                )
            return InsightOutcome(ok=False, message="AI analysis failed. Please try again later.")
        return InsightOutcome(ok=True, message="", text=text)

    async def spending_analysis(
        self,
        state: AppState,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> InsightOutcome:
        transactions = filter_transactions(state.transactions, start, end)
        if not transactions:
            return InsightOutcome(ok=False, message="No transactions in the selected period to analyze.")
        return await self._run(
            state, "analyze_spending",
            self._agent.analyze_spending(transactions, state.categories),
        )

    async def monthly_comparison(self, state: AppState, today: date) -> InsightOutcome:
        current, previous = current_and_previous_month(state.transactions, state.categories, today)
        return await self._run(
            state, "monthly_comparison",
            self._agent.analyze_monthly_comparison(current, previous),
        )

    async def personalized_insights(self, state: AppState) -> InsightOutcome:
        if not state.transactions:
            return InsightOutcome(ok=False, message="Add some transactions to get personalized insights.")
        return await self._run(
            state, "personalized_insights",
            self._agent.personalized_insights(
                state.transactions,
                state.investments,
                state.budgets,
                state.goals,
                state.categories,
            ),
        )

    async def refresh_prices(
        self,
        state: AppState,
        investment_ids: Optional[list[str]] = None,
    ) -> PriceRefreshOutcome:
        """Fetch the latest price of each holding and save the ones found."""
        targets = [
            i for i in state.investments
            if investment_ids is None or i.id in investment_ids
        ]
        outcome = PriceRefreshOutcome(ok=True, message="")

        for investment in targets:
            price = await self._agent.fetch_investment_price(investment.name)
            if price is None:
                outcome.failed.append(investment.name)
                continue
            state.set_investment_price(investment.id, price)
            outcome.updated[investment.id] = price

        if outcome.updated and not await save_state(state, self._audit_logger, "refresh_prices"):
            outcome.ok = False
            outcome.message = SAVE_FAILED_MESSAGE
            return outcome

        parts = []
        if outcome.updated:
            parts.append(f"Updated {len(outcome.updated)} price(s).")
        if outcome.failed:
            parts.append(f"Could not fetch a price for: {', '.join(outcome.failed)}.")
        outcome.ok = not outcome.failed
        outcome.message = " ".join(parts) or "No investments to update."
        return outcome


# =============================================================================
# FACTORY
# =============================================================================

@dataclass
class AppComponents:
    storage: KeyValueStoreInterface
    users: UserRegistry
    session_flow: SessionFlow
    import_flow: TransactionImportFlow
    chat_flow: ChatFlow
    suggestion_flow: CategorySuggestionFlow
    insights_flow: InsightsFlow
    audit_logger: AuditLogger


def create_storage(backend: Optional[str] = None) -> KeyValueStoreInterface:
    """
    Build the configured key-value backend.

    Raises:
        StorageError: The Google Sheets backend could not be reached
    """
    storage_settings = get_settings().storage
    backend = backend or storage_settings.backend

    if backend == "memory":
        return InMemoryKeyValueStore()
    if backend == "google_sheets":
        return GoogleSheetsKeyValueStore(GoogleSheetsClient())
    return JsonFileKeyValueStore(storage_settings.json_path)


def create_app_components(
    storage: Optional[KeyValueStoreInterface] = None,
    gemini_client: Optional[GeminiClient] = None,
    persist_audit: bool = True,
) -> AppComponents:
    """
    Build every flow over one storage backend and one Gemini client.

    Args:
        storage: Storage backend; defaults to the configured one
        gemini_client: AI client; defaults to one built from settings
        persist_audit: Also keep audit events in storage

    Returns:
        AppComponents with every flow wired to the same storage
    """
    settings = get_settings()
    app_settings = settings.app
    configure_logging(app_settings.log_level)

    storage = storage or create_storage()
    key_prefix = settings.storage.key_prefix
    audit_logger = AuditLogger(storage if persist_audit else None, key_prefix=key_prefix)

    client = gemini_client or GeminiClient()
    validator = ResponseValidator()
    extraction = TransactionExtractionAgent(client, validator)

    return AppComponents(
        storage=storage,
        users=UserRegistry(storage, key_prefix=key_prefix),
        session_flow=SessionFlow(storage, audit_logger, key_prefix=key_prefix),
        import_flow=TransactionImportFlow(
            ImportService(extraction, app_settings),
            audit_logger,
        ),
        chat_flow=ChatFlow(
            FinanceAssistantAgent(client, currency=app_settings.currency_symbol),
            extraction,
            validator,
            audit_logger,
            app_settings,
        ),
        suggestion_flow=CategorySuggestionFlow(
            CategorySuggestionAgent(client, validator),
            audit_logger,
        ),
        insights_flow=InsightsFlow(
            InsightsAgent(
                client,
                validator,
                currency=app_settings.currency_symbol,
                transaction_limit=app_settings.insights_transaction_limit,
            ),
            audit_logger,
        ),
        audit_logger=audit_logger,
    )
