"""
Application State

DESIGN DECISION: One explicit state handle per signed-in user instead of
module-level globals. The handle is created by AppState.load(), passed to
every flow, and written back with save().

Mutators only change memory and mark the touched collection dirty.
save() writes every dirty collection in ONE set_many call, so changes made
together (e.g. materialized transactions plus the advanced recurring rules)
are persisted together or not at all.

STORED SHAPE:
Each collection lives under its own namespaced key as an envelope:
    {"schema_version": 1, "items": [...]}
A bare list (or, for chat histories, a bare mapping) is the legacy
version 0 shape. It is read as-is and rewritten as an envelope on the
next save of that collection.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from finan_ai.models.finance import (
    DEFAULT_CATEGORIES,
    Budget,
    Category,
    ChatMessage,
    ChatMode,
    Frequency,
    Goal,
    Investment,
    ManualEntry,
    RecurringTransaction,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from finan_ai.recurrence import MaterializationResult, materialize_recurring
from finan_ai.services.storage import KeyValueStoreInterface, namespaced_key


logger = structlog.get_logger(__name__)

SCHEMA_VERSION = 1

ModelT = TypeVar("ModelT", bound=BaseModel)


# Attribute name -> (storage collection, record model)
LIST_COLLECTIONS: dict[str, tuple[str, type[BaseModel]]] = {
    "transactions": ("transactions", Transaction),
    "categories": ("categories", Category),
    "recurring": ("recurring", RecurringTransaction),
    "budgets": ("budgets", Budget),
    "goals": ("goals", Goal),
    "investments": ("investments", Investment),
    "assets": ("networth_assets", ManualEntry),
    "liabilities": ("networth_liabilities", ManualEntry),
}
CHAT_COLLECTION = "chat_histories"


class RecordNotFoundError(Exception):
    """No record with the given id exists in the collection."""

    def __init__(self, collection: str, record_id: str):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"No {collection} record with id {record_id!r}")


def unwrap_envelope(raw: Any) -> tuple[int, Any]:
    """
    Split a stored value into (schema_version, items).

    >>> unwrap_envelope({"schema_version": 1, "items": [1]})
    (1, [1])
    >>> unwrap_envelope([1])
    (0, [1])
    """
    if isinstance(raw, dict) and "schema_version" in raw:
        return int(raw["schema_version"]), raw.get("items")
    return 0, raw


def wrap_envelope(items: Any) -> dict:
    return {"schema_version": SCHEMA_VERSION, "items": items}


def _parse_records(
    collection: str,
    items: Any,
    model: type[ModelT],
    user_id: str,
) -> list[ModelT]:
    """Validate stored records, skipping any that no longer parse."""
    if not isinstance(items, list):
        return []

    records = []
    for item in items:
        try:
            records.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(
                "stored_record_skipped",
                collection=collection,
                user_id=user_id,
                error=str(e),
            )
    return records


class AppState:
    """
    In-memory copy of one user's data plus the mutators that change it.

    Usage:
        state = await AppState.load(storage, "a@b.com")
        state.add_transaction(draft)
        await state.save()
    """

    def __init__(
        self,
        storage: KeyValueStoreInterface,
        user_id: str,
        key_prefix: str = "finan-ai",
    ):
        self._storage = storage
        self.user_id = user_id
        self.key_prefix = key_prefix

        self.transactions: list[Transaction] = []
        self.categories: list[Category] = [c.model_copy() for c in DEFAULT_CATEGORIES]
        self.recurring: list[RecurringTransaction] = []
        self.budgets: list[Budget] = []
        self.goals: list[Goal] = []
        self.investments: list[Investment] = []
        self.assets: list[ManualEntry] = []
        self.liabilities: list[ManualEntry] = []
        self.chat_histories: dict[ChatMode, list[ChatMessage]] = {}

        self._dirty: set[str] = set()

    # =========================================================================
    # LOAD / SAVE
    # =========================================================================

    def _key(self, collection: str) -> str:
        return namespaced_key(collection, self.user_id, self.key_prefix)

    @classmethod
    async def load(
        cls,
        storage: KeyValueStoreInterface,
        user_id: str,
        key_prefix: str = "finan-ai",
    ) -> "AppState":
        """
        Read every collection of a user.

        Missing collections get their defaults (the default category set
        for categories, empty for everything else). Legacy version 0
        collections are marked dirty so the next save migrates them.

        Raises:
            StorageError: If the backend cannot be read
        """
        state = cls(storage, user_id, key_prefix)

        for attr, (collection, model) in LIST_COLLECTIONS.items():
            raw = await storage.get(state._key(collection))
            if raw is None:
                continue
            version, items = unwrap_envelope(raw)
            setattr(state, attr, _parse_records(collection, items, model, user_id))
            if version < SCHEMA_VERSION:
                state._dirty.add(attr)

        raw_chat = await storage.get(state._key(CHAT_COLLECTION))
        if raw_chat is not None:
            version, items = unwrap_envelope(raw_chat)
            for mode in ChatMode:
                messages = (items or {}).get(mode.value) if isinstance(items, dict) else None
                if messages:
                    state.chat_histories[mode] = _parse_records(
                        CHAT_COLLECTION, messages, ChatMessage, user_id
                    )
            if version < SCHEMA_VERSION:
                state._dirty.add(CHAT_COLLECTION)

        logger.info(
            "state_loaded",
            user_id=user_id,
            transactions=len(state.transactions),
            recurring=len(state.recurring),
            migrated=sorted(state._dirty),
        )
        return state

    @property
    def dirty(self) -> frozenset[str]:
        """Collections changed since the last save."""
        return frozenset(self._dirty)

    def _mark(self, *attrs: str) -> None:
        self._dirty.update(attrs)

    def _serialize(self, attr: str) -> tuple[str, dict]:
        if attr == CHAT_COLLECTION:
            items = {
                mode.value: [m.model_dump(mode="json") for m in messages]
                for mode, messages in self.chat_histories.items()
            }
            return self._key(CHAT_COLLECTION), wrap_envelope(items)

        collection, _ = LIST_COLLECTIONS[attr]
        items = [record.model_dump(mode="json") for record in getattr(self, attr)]
        return self._key(collection), wrap_envelope(items)

    async def save(self) -> list[str]:
        """
        Persist every dirty collection in one atomic write.

        Returns:
            The collections that were written

        Raises:
            StorageError: If the write fails. The dirty set is kept so a
                later save() can retry.
        """
        if not self._dirty:
            return []

        written = sorted(self._dirty)
        payload = dict(self._serialize(attr) for attr in written)
        await self._storage.set_many(payload)
        self._dirty.clear()

        logger.info("state_saved", user_id=self.user_id, collections=written)
        return written

    # =========================================================================
    # RECURRING MATERIALIZATION
    # =========================================================================

    def process_recurring(self, today: date) -> MaterializationResult:
        """
        Materialize every recurring occurrence due as of today.

        Appends the new transactions with fresh ids and replaces the
        advanced rules. Both collections are marked dirty together so the
        following save() persists them in the same write.
        """
        result = materialize_recurring(today, self.recurring)
        if not result.changed:
            return result

        self.transactions.extend(d.to_transaction() for d in result.new_transactions)

        updated = {rule.id: rule for rule in result.updated_rules}
        self.recurring = [updated.get(rule.id, rule) for rule in self.recurring]
        self._mark("transactions", "recurring")

        logger.info(
            "recurring_processed",
            user_id=self.user_id,
            today=today.isoformat(),
            new_transactions=len(result.new_transactions),
            advanced_rules=len(result.updated_rules),
        )
        return result

    # =========================================================================
    # GENERIC HELPERS
    # =========================================================================

    def _index_of(self, attr: str, record_id: str) -> int:
        for i, record in enumerate(getattr(self, attr)):
            if record.id == record_id:
                return i
        raise RecordNotFoundError(LIST_COLLECTIONS[attr][0], record_id)

    def _add(self, attr: str, record: ModelT) -> ModelT:
        getattr(self, attr).append(record)
        self._mark(attr)
        return record

    def _replace(self, attr: str, record: ModelT) -> ModelT:
        records = getattr(self, attr)
        records[self._index_of(attr, record.id)] = record
        self._mark(attr)
        return record

    def _remove(self, attr: str, record_id: str) -> BaseModel:
        records = getattr(self, attr)
        removed = records.pop(self._index_of(attr, record_id))
        self._mark(attr)
        return removed

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def get_transaction(self, transaction_id: str) -> Transaction:
        return self.transactions[self._index_of("transactions", transaction_id)]

    def add_transaction(self, draft: TransactionDraft) -> Transaction:
        return self._add("transactions", draft.to_transaction())

    def add_transactions(self, drafts: list[TransactionDraft]) -> list[Transaction]:
        added = [draft.to_transaction() for draft in drafts]
        if added:
            self.transactions.extend(added)
            self._mark("transactions")
        return added

    def update_transaction(self, transaction: Transaction) -> Transaction:
        return self._replace("transactions", transaction)

    def delete_transaction(self, transaction_id: str) -> Transaction:
        return self._remove("transactions", transaction_id)

    def duplicate_transaction(self, transaction_id: str, today: date) -> Transaction:
        """Copy a transaction, dated today, with ' (Copy)' appended."""
        source = self.get_transaction(transaction_id)
        draft = source.to_draft().model_copy(update={
            "date": today,
            "description": f"{source.description} (Copy)",
        })
        return self.add_transaction(draft)

    def transactions_by_date(self, newest_first: bool = True) -> list[Transaction]:
        return sorted(self.transactions, key=lambda t: t.date, reverse=newest_first)

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    def get_category(self, category_id: str) -> Optional[Category]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def category_name(self, category_id: str) -> str:
        category = self.get_category(category_id)
        return category.name if category else "Uncategorized"

    def categories_of_type(self, type: TransactionType) -> list[Category]:
        return [c for c in self.categories if c.type == type]

    def add_category(self, name: str, type: TransactionType) -> Category:
        return self._add("categories", Category(name=name, type=type))

    def delete_category(self, category_id: str) -> Category:
        """
        Remove a category.

        Transactions that used it become uncategorized. Recurring rules and
        budgets keep the stale id, which resolves to 'Uncategorized'.
        """
        removed = self._remove("categories", category_id)

        cleared = False
        for i, tx in enumerate(self.transactions):
            if tx.category_id == category_id:
                self.transactions[i] = tx.model_copy(update={"category_id": ""})
                cleared = True
        if cleared:
            self._mark("transactions")
        return removed

    # =========================================================================
    # RECURRING RULES
    # =========================================================================

    def add_recurring(
        self,
        description: str,
        amount: Decimal,
        type: TransactionType,
        category_id: str,
        frequency: Frequency,
        start_date: date,
        end_date: Optional[date] = None,
    ) -> RecurringTransaction:
        rule = RecurringTransaction.create(
            description=description,
            amount=amount,
            type=type,
            category_id=category_id,
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
        )
        return self._add("recurring", rule)

    def update_recurring(self, rule: RecurringTransaction) -> RecurringTransaction:
        """
        Replace a rule's editable fields.

        The stored next_due_date is kept: only materialization moves it.
        If the new start date lies after the stored cursor, the cursor
        jumps to the start date.
        """
        current = self.recurring[self._index_of("recurring", rule.id)]
        next_due = max(current.next_due_date, rule.start_date)
        merged = RecurringTransaction.model_validate({
            **rule.model_dump(),
            "next_due_date": next_due,
        })
        return self._replace("recurring", merged)

    def delete_recurring(self, rule_id: str) -> RecurringTransaction:
        """Remove a rule. Transactions it already produced stay."""
        return self._remove("recurring", rule_id)

    # =========================================================================
    # BUDGETS / GOALS / INVESTMENTS / NET WORTH
    # =========================================================================

    def add_budget(self, category_id: str, limit: Decimal) -> Budget:
        return self._add("budgets", Budget(category_id=category_id, limit=limit))

    def update_budget(self, budget: Budget) -> Budget:
        return self._replace("budgets", budget)

    def delete_budget(self, budget_id: str) -> Budget:
        return self._remove("budgets", budget_id)

    def add_goal(
        self,
        name: str,
        target_amount: Decimal,
        saved_amount: Decimal = Decimal("0"),
        target_date: Optional[date] = None,
    ) -> Goal:
        goal = Goal(
            name=name,
            target_amount=target_amount,
            saved_amount=saved_amount,
            target_date=target_date,
        )
        return self._add("goals", goal)

    def update_goal(self, goal: Goal) -> Goal:
        return self._replace("goals", goal)

    def delete_goal(self, goal_id: str) -> Goal:
        return self._remove("goals", goal_id)

    def add_investment(
        self,
        name: str,
        quantity: Decimal,
        purchase_price: Decimal,
        purchase_date: date,
        current_price: Optional[Decimal] = None,
    ) -> Investment:
        investment = Investment(
            name=name,
            quantity=quantity,
            purchase_price=purchase_price,
            purchase_date=purchase_date,
            current_price=current_price,
        )
        return self._add("investments", investment)

    def update_investment(self, investment: Investment) -> Investment:
        return self._replace("investments", investment)

    def delete_investment(self, investment_id: str) -> Investment:
        return self._remove("investments", investment_id)

    def set_investment_price(self, investment_id: str, price: Decimal) -> Investment:
        current = self.investments[self._index_of("investments", investment_id)]
        return self._replace(
            "investments",
            current.model_copy(update={"current_price": price}),
        )

    def add_asset(self, name: str, value: Decimal) -> ManualEntry:
        return self._add("assets", ManualEntry(name=name, value=value))

    def update_asset(self, entry: ManualEntry) -> ManualEntry:
        return self._replace("assets", entry)

    def delete_asset(self, entry_id: str) -> ManualEntry:
        return self._remove("assets", entry_id)

    def add_liability(self, name: str, value: Decimal) -> ManualEntry:
        return self._add("liabilities", ManualEntry(name=name, value=value))

    def update_liability(self, entry: ManualEntry) -> ManualEntry:
        return self._replace("liabilities", entry)

    def delete_liability(self, entry_id: str) -> ManualEntry:
        return self._remove("liabilities", entry_id)

    # =========================================================================
    # CHAT
    # =========================================================================

    def chat_history(self, mode: ChatMode) -> list[ChatMessage]:
        return list(self.chat_histories.get(mode, []))

    def append_chat_messages(self, mode: ChatMode, messages: list[ChatMessage]) -> None:
        self.chat_histories.setdefault(mode, []).extend(messages)
        self._mark(CHAT_COLLECTION)

    def clear_chat_history(self, mode: ChatMode) -> None:
        if self.chat_histories.pop(mode, None) is not None:
            self._mark(CHAT_COLLECTION)
