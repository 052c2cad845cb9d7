"""
Integration tests for the orchestrator flows.

Gemini is replaced by FakeModelFactory; storage is in memory.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from conftest import FailingStore, make_response
from finan_ai.agents import (
    CategorySuggestionAgent,
    FinanceAssistantAgent,
    InsightsAgent,
    TransactionExtractionAgent,
)
from finan_ai.audit import AuditLogger
from finan_ai.models import (
    AuditEventType,
    ChatMode,
    ChatRole,
    Frequency,
    RecurringTransaction,
    TransactionType,
)
from finan_ai.orchestrator import (
    SAVE_FAILED_MESSAGE,
    CategorySuggestionFlow,
    ChatFlow,
    InsightsFlow,
    SessionFlow,
    TransactionImportFlow,
)
from finan_ai.store import AppState, wrap_envelope
from finan_ai.transfer import ImportService

USER = "a@b.com"

ROWS_JSON = (
    '[{"date": "2024-03-01", "description": "Salary", "amount": 50000, "type": "income"},'
    ' {"date": "2024-03-02", "description": "Groceries", "amount": 1200.5, "type": "expense"}]'
)


def new_state(storage):
    return asyncio.run(AppState.load(storage, USER))


@pytest.fixture
def chat_flow_factory(make_client, app_settings, storage):
    def _make(*responses):
        client, factory = make_client(*responses)
        flow = ChatFlow(
            FinanceAssistantAgent(client),
            TransactionExtractionAgent(client),
            audit_logger=AuditLogger(storage),
            settings=app_settings,
        )
        return flow, factory
    return _make


class TestSessionFlow:

    def test_start_materializes_and_saves_atomically(self, storage, today):
        state = new_state(storage)
        state.add_recurring(
            description="Rent",
            amount=Decimal("15000"),
            type=TransactionType.EXPENSE,
            category_id="3",
            frequency=Frequency.MONTHLY,
            start_date=date(2024, 1, 15),
        )
        asyncio.run(state.save())
        storage.set_many_calls.clear()

        result = asyncio.run(SessionFlow(storage).start(USER, today))

        assert result.ok
        assert result.materialized == 4
        assert result.advanced_rules == 1
        assert result.message == "Added 4 recurring transaction(s)."
        assert storage.set_many_calls == [[
            f"finan-ai:recurring_{USER}",
            f"finan-ai:transactions_{USER}",
        ]]

    def test_second_start_same_day_adds_nothing(self, storage, today):
        state = new_state(storage)
        state.add_recurring(
            description="Tea",
            amount=Decimal("20"),
            type=TransactionType.EXPENSE,
            category_id="1",
            frequency=Frequency.DAILY,
            start_date=date(2024, 4, 15),
        )
        asyncio.run(state.save())

        first = asyncio.run(SessionFlow(storage).start(USER, today))
        second = asyncio.run(SessionFlow(storage).start(USER, today))

        assert first.materialized == 6
        assert second.materialized == 0
        assert second.message == ""
        assert len(second.state.transactions) == 6

    def test_save_failure_is_reported(self, today):
        rule = RecurringTransaction.create(
            description="Tea",
            amount=Decimal("20"),
            type=TransactionType.EXPENSE,
            category_id="1",
            frequency=Frequency.DAILY,
            start_date=date(2024, 4, 19),
        )
        # Readable, but every write fails
        store = FailingStore({
            f"finan-ai:recurring_{USER}": wrap_envelope([rule.model_dump(mode="json")]),
        })

        result = asyncio.run(SessionFlow(store, AuditLogger()).start(USER, today))

        assert not result.ok
        assert result.message == SAVE_FAILED_MESSAGE
        assert result.state is not None
        assert result.state.dirty == frozenset({"recurring", "transactions"})

    def test_rule_rounding_to_zero_does_not_break_start(self, storage, today):
        storage_items = wrap_envelope([{
            "id": "r1",
            "description": "Rounding error",
            "amount": 0.004,
            "type": "expense",
            "frequency": "daily",
            "startDate": "2024-04-18",
            "nextDueDate": "2024-04-18",
        }])
        asyncio.run(storage.set(f"finan-ai:recurring_{USER}", storage_items))

        result = asyncio.run(SessionFlow(storage).start(USER, today))

        assert result.ok
        assert result.materialized == 0
        assert result.state.recurring == []
        assert result.state.transactions == []


class TestImportFlow:

    @pytest.fixture
    def flow_factory(self, make_client, app_settings, storage):
        def _make(*responses):
            client, factory = make_client(*responses)
            service = ImportService(TransactionExtractionAgent(client), app_settings)
            return TransactionImportFlow(service, AuditLogger(storage)), factory
        return _make

    def test_preview_then_confirm(self, flow_factory, storage):
        flow, _ = flow_factory(make_response(ROWS_JSON))
        state = new_state(storage)

        outcome = asyncio.run(flow.preview(state, "march.csv", b"raw statement"))
        assert outcome.ok
        assert state.transactions == []

        confirmed = asyncio.run(flow.confirm(state, outcome.preview))
        assert confirmed.ok
        assert confirmed.message == "Successfully imported 2 transactions!"
        assert len(new_state(storage).transactions) == 2

    def test_ai_failure_adds_nothing(self, flow_factory, storage):
        flow, _ = flow_factory(RuntimeError("quota exceeded"))
        state = new_state(storage)

        outcome = asyncio.run(flow.preview(state, "march.csv", b"raw statement"))

        assert not outcome.ok
        assert outcome.message.startswith("AI failed to parse the file.")
        assert outcome.preview is None
        assert state.transactions == []

    def test_no_valid_rows(self, flow_factory, storage):
        flow, _ = flow_factory(make_response("[]"))
        state = new_state(storage)

        outcome = asyncio.run(flow.preview(state, "march.csv", b"raw statement"))
        assert not outcome.ok
        assert outcome.message == "No valid transactions found in the file."

        confirmed = asyncio.run(flow.confirm(state, outcome.preview))
        assert not confirmed.ok
        assert state.transactions == []

    def test_malformed_reply_is_audited(self, flow_factory, storage):
        flow, _ = flow_factory(make_response("Sorry, that file is confusing."))
        state = new_state(storage)

        outcome = asyncio.run(flow.preview(state, "march.csv", b"raw statement"))

        assert not outcome.ok
        events = asyncio.run(AuditLogger(storage).recent_events(USER))
        assert AuditEventType.AI_RESPONSE_REJECTED in {e.event_type for e in events}

    def test_unsupported_file(self, flow_factory, storage):
        flow, factory = flow_factory()
        outcome = asyncio.run(flow.preview(new_state(storage), "scan.pdf", b"%PDF"))
        assert not outcome.ok
        assert "Unsupported file type" in outcome.message
        assert factory.calls == []

        events = asyncio.run(AuditLogger(storage).recent_events(USER))
        assert [e.event_type for e in events] == [AuditEventType.IMPORT_REJECTED]
        assert events[0].details == {"filename": "scan.pdf"}


class TestChatFlow:

    def test_quick_mode_records_history(self, chat_flow_factory, storage, today, gemini_settings):
        flow, factory = chat_flow_factory(make_response("Save 20% of your income."))
        state = new_state(storage)

        outcome = asyncio.run(flow.send(state, ChatMode.QUICK, "How much should I save?", today))

        assert outcome.ok
        assert outcome.message == "Save 20% of your income."
        call = factory.calls[0]
        assert call["model_name"] == gemini_settings.flash_lite_model
        assert call["request_options"] == {"timeout": gemini_settings.request_timeout_seconds}
        history = new_state(storage).chat_history(ChatMode.QUICK)
        assert [(m.role, m.text) for m in history] == [
            (ChatRole.USER, "How much should I save?"),
            (ChatRole.MODEL, "Save 20% of your income."),
        ]

    def test_history_is_sent_with_next_turn(self, chat_flow_factory, storage, today):
        flow, factory = chat_flow_factory(make_response("First"), make_response("Second"))
        state = new_state(storage)

        asyncio.run(flow.send(state, ChatMode.THINKING, "One", today))
        asyncio.run(flow.send(state, ChatMode.THINKING, "Two", today))

        request = factory.calls[1]["request"]
        assert [turn["role"] for turn in request] == ["user", "model", "user"]
        assert request[1]["parts"] == ["First"]

    def test_modes_keep_separate_histories(self, chat_flow_factory, storage, today):
        flow, _ = chat_flow_factory(make_response("A"), make_response("B"))
        state = new_state(storage)

        asyncio.run(flow.send(state, ChatMode.QUICK, "q", today))
        asyncio.run(flow.send(state, ChatMode.THINKING, "t", today))

        assert len(state.chat_history(ChatMode.QUICK)) == 2
        assert len(state.chat_history(ChatMode.THINKING)) == 2

    def test_search_mode_keeps_sources(self, chat_flow_factory, storage, today):
        flow, factory = chat_flow_factory(make_response(
            "Gold is at 7,200 per gram.",
            sources=[("Gold rates", "https://example.com/gold")],
        ))
        state = new_state(storage)

        asyncio.run(flow.send(state, ChatMode.SEARCH, "Gold price today?", today))

        assert factory.calls[0]["tools"] == "google_search_retrieval"
        reply = state.chat_history(ChatMode.SEARCH)[-1]
        assert reply.sources == [{"title": "Gold rates", "uri": "https://example.com/gold"}]

    def test_actions_mode_adds_valid_transaction(self, chat_flow_factory, storage, today):
        flow, factory = chat_flow_factory(make_response(function_calls=[(
            "add_transaction",
            {"description": "Lunch", "amount": 250, "type": "expense", "categoryId": "1"},
        )]))
        state = new_state(storage)

        outcome = asyncio.run(flow.send(state, ChatMode.ACTIONS, "Add 250 for lunch", today))

        assert outcome.ok
        assert outcome.message == '✅ Transaction added: "Lunch" for ₹250.00.'
        saved = new_state(storage).transactions
        assert len(saved) == 1
        assert saved[0].date == today
        assert "Food & Drinks" in factory.calls[0]["system_instruction"]

    def test_actions_mode_rejects_invalid_arguments(self, chat_flow_factory, storage, today):
        flow, _ = chat_flow_factory(make_response(function_calls=[(
            "add_transaction",
            {"description": "Lunch", "amount": "lots", "type": "expense", "categoryId": "1"},
        )]))
        state = new_state(storage)

        outcome = asyncio.run(flow.send(state, ChatMode.ACTIONS, "Add lunch", today))

        assert not outcome.ok
        assert state.transactions == []
        assert outcome.added == []

    def test_actions_mode_rejects_unknown_category(self, chat_flow_factory, storage, today):
        flow, _ = chat_flow_factory(make_response(function_calls=[(
            "add_transaction",
            {"description": "Taxi", "amount": 300, "type": "expense", "categoryId": "404"},
        )]))
        state = new_state(storage)

        outcome = asyncio.run(flow.send(state, ChatMode.ACTIONS, "Add taxi", today))

        assert not outcome.ok
        assert state.transactions == []

    def test_ai_failure_becomes_a_message(self, chat_flow_factory, storage, today):
        flow, _ = chat_flow_factory(TimeoutError("deadline exceeded"))
        state = new_state(storage)

        outcome = asyncio.run(flow.send(state, ChatMode.QUICK, "Hello", today))

        assert not outcome.ok
        assert "unavailable" in outcome.message
        assert state.chat_history(ChatMode.QUICK)[-1].text == outcome.message

    def test_empty_reply(self, chat_flow_factory, storage, today):
        flow, _ = chat_flow_factory(make_response(""))
        outcome = asyncio.run(flow.send(new_state(storage), ChatMode.QUICK, "Hello", today))
        assert not outcome.ok
        assert outcome.message.startswith("Sorry, I couldn't come up with an answer")

    def test_blank_prompt_makes_no_request(self, chat_flow_factory, storage, today):
        flow, factory = chat_flow_factory()
        outcome = asyncio.run(flow.send(new_state(storage), ChatMode.QUICK, "   ", today))
        assert outcome.message == "Please type a message."
        assert factory.calls == []

    def test_image_waits_for_confirmation(self, chat_flow_factory, storage, today):
        flow, factory = chat_flow_factory(make_response(
            '[{"date": "2024-04-19", "description": "Pizza", "amount": 450, "categoryId": "1"}]'
        ))
        state = new_state(storage)

        outcome = asyncio.run(flow.send_image(state, b"\x89PNG", "image/png", "", today))

        assert outcome.ok
        assert [d.description for d in outcome.pending] == ["Pizza"]
        assert state.transactions == []
        assert outcome.message.startswith("I found 1 transaction(s)")
        assert factory.calls[0]["request"][-1]["parts"][1] == {"mime_type": "image/png", "data": b"\x89PNG"}

        done = asyncio.run(flow.confirm_pending(state, outcome.pending, True))
        assert done.message == "✅ Done! I've added 1 transaction(s)."
        assert len(new_state(storage).transactions) == 1

    def test_declined_image_adds_nothing(self, chat_flow_factory, storage, today):
        flow, _ = chat_flow_factory(make_response(
            '[{"date": "2024-04-19", "description": "Pizza", "amount": 450, "categoryId": "1"}]'
        ))
        state = new_state(storage)
        outcome = asyncio.run(flow.send_image(state, b"img", "image/jpeg", "", today))

        declined = asyncio.run(flow.confirm_pending(state, outcome.pending, False))

        assert declined.message == "Okay, I won't add them."
        assert state.transactions == []

    def test_unreadable_image_reply(self, chat_flow_factory, storage, today):
        flow, _ = chat_flow_factory(make_response("I can't see any transactions."))
        state = new_state(storage)
        outcome = asyncio.run(flow.send_image(state, b"img", "image/jpeg", "only food", today))

        assert not outcome.ok
        assert outcome.pending == []
        assert state.chat_history(ChatMode.ACTIONS)[0].text == "[Image Attached] only food"

    def test_unsupported_image_type(self, chat_flow_factory, storage, today):
        flow, factory = chat_flow_factory()
        outcome = asyncio.run(flow.send_image(new_state(storage), b"GIF", "image/gif", "", today))
        assert outcome.message == "Unsupported image type."
        assert factory.calls == []

    def test_new_chat_clears_history(self, chat_flow_factory, storage, today):
        flow, _ = chat_flow_factory(make_response("Hi"))
        state = new_state(storage)
        asyncio.run(flow.send(state, ChatMode.QUICK, "Hello", today))

        assert asyncio.run(flow.new_chat(state, ChatMode.QUICK))
        assert new_state(storage).chat_history(ChatMode.QUICK) == []


class TestSuggestionAndInsights:

    def test_category_suggestion(self, make_client, storage):
        client, _ = make_client(make_response('{"categoryId": "4"}'))
        flow = CategorySuggestionFlow(CategorySuggestionAgent(client))

        outcome = asyncio.run(flow.suggest(new_state(storage), "Uber to office"))

        assert outcome.ok
        assert outcome.message == "Suggested category: Transportation"
        assert outcome.suggestion.type == TransactionType.EXPENSE

    def test_invented_category_is_rejected(self, make_client, storage):
        client, _ = make_client(make_response('{"categoryId": "Travel"}'))
        flow = CategorySuggestionFlow(CategorySuggestionAgent(client))

        outcome = asyncio.run(flow.suggest(new_state(storage), "Uber to office"))

        assert not outcome.ok
        assert outcome.suggestion is None

    def test_refresh_prices(self, make_client, storage):
        client, _ = make_client(
            make_response("The latest price is ₹2,845.10."),
            make_response("I could not find that."),
        )
        flow = InsightsFlow(InsightsAgent(client))
        state = new_state(storage)
        found = state.add_investment("RELIANCE", Decimal("2"), Decimal("2500"), date(2024, 1, 1))
        state.add_investment("Obscure Fund", Decimal("1"), Decimal("100"), date(2024, 1, 1))

        outcome = asyncio.run(flow.refresh_prices(state))

        assert outcome.updated == {found.id: Decimal("2845.10")}
        assert outcome.failed == ["Obscure Fund"]
        assert not outcome.ok
        assert new_state(storage).investments[0].current_price == Decimal("2845.10")

    def test_spending_analysis_needs_transactions(self, make_client, storage):
        client, factory = make_client()
        flow = InsightsFlow(InsightsAgent(client))

        outcome = asyncio.run(flow.spending_analysis(new_state(storage)))

        assert not outcome.ok
        assert factory.calls == []

    def test_monthly_comparison(self, make_client, storage, today):
        client, factory = make_client(make_response("You saved more this month."))
        flow = InsightsFlow(InsightsAgent(client))

        outcome = asyncio.run(flow.monthly_comparison(new_state(storage), today))

        assert outcome.ok
        assert outcome.text == "You saved more this month."
        assert '"month": "2024-03"' in factory.calls[0]["request"][-1]["parts"][0]

    def test_empty_report_is_a_failure(self, make_client, storage, today):
        client, _ = make_client(make_response(""))
        flow = InsightsFlow(InsightsAgent(client))
        outcome = asyncio.run(flow.monthly_comparison(new_state(storage), today))
        assert not outcome.ok
        assert outcome.message == "AI analysis failed. Please try again later."


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
