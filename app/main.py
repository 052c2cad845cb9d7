"""
Streamlit Frontend for Finan AI

The interface students use to track money day to day.

DESIGN PRINCIPLES:
1. Nothing the AI read from a file or photo is saved without a confirm click
2. Failures show up as a plain sentence, never a traceback
3. Every save reports whether it reached storage

Session flow:
- Sign in (or register)
- SessionFlow.start() loads the user's data and materializes recurring
  transactions BEFORE any page reads the ledger
- Every page works on the same AppState held in st.session_state
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st

from finan_ai.config import get_settings, validate_all_settings
from finan_ai.models import (
    AuditEvent,
    AuditEventBuilder,
    ChatMode,
    ChatRole,
    Frequency,
    Transaction,
    TransactionDraft,
    TransactionType,
)
from finan_ai.orchestrator import (
    SAVE_FAILED_MESSAGE,
    AppComponents,
    create_app_components,
    format_amount,
    save_state,
)
from finan_ai.reports import (
    BudgetStatus,
    budget_progress,
    current_and_previous_month,
    expenses_by_category,
    filter_transactions,
    goal_progress,
    investment_summary,
    month_bounds,
    monthly_income_vs_expense,
    net_worth,
    net_worth_history,
    totals,
)
from finan_ai.store import (
    PASSWORD_RULES,
    AppState,
    AuthenticationError,
    RegistrationError,
    check_password,
)
from finan_ai.transfer import export_transactions_csv


# Page configuration
st.set_page_config(
    page_title="Finan AI",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
    }
    .big-number {
        font-size: 2.2em;
        font-weight: bold;
    }
</style>
""", unsafe_allow_html=True)


CHAT_MODE_LABELS = {
    ChatMode.QUICK: "⚡ Quick",
    ChatMode.SEARCH: "🌐 Search",
    ChatMode.THINKING: "🧠 Thinking",
    ChatMode.ACTIONS: "🛠️ Actions",
}

BUDGET_ICONS = {
    BudgetStatus.OK: "🟢",
    BudgetStatus.WARNING: "🟡",
    BudgetStatus.OVER: "🔴",
}


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    return create_app_components()


def money(amount: Decimal) -> str:
    return format_amount(amount, get_settings().app.currency_symbol)


def persist(components: AppComponents, state: AppState, operation: str) -> bool:
    """Save the state and show an error if it failed."""
    ok = run_async(save_state(state, components.audit_logger, operation))
    if not ok:
        st.error(SAVE_FAILED_MESSAGE)
    return ok


def audit(components: AppComponents, event: AuditEvent):
    run_async(components.audit_logger.log(event))


def show_message(ok: bool, message: str):
    if ok:
        st.success(message)
    else:
        st.warning(message)


def show_report(outcome):
    if outcome.ok:
        st.markdown(outcome.text)
    else:
        st.warning(outcome.message)


def category_options(state: AppState, type: TransactionType | None = None) -> dict[str, str]:
    """{category_id: name}, with the empty id for 'Uncategorized'."""
    options = {"": "Uncategorized"}
    for category in state.categories:
        if type is None or category.type == type:
            options[category.id] = category.name
    return options


# =============================================================================
# AUTH
# =============================================================================

def render_auth_page(components: AppComponents):
    st.title("💰 Finan AI")
    st.markdown("Take control of your finances.")

    sign_in, register = st.tabs(["Sign in", "Create account"])

    with sign_in:
        with st.form("sign_in"):
            email = st.text_input("Email address")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in", type="primary")
        if submitted:
            try:
                user = run_async(components.users.authenticate(email, password))
            except AuthenticationError as e:
                st.error(str(e))
            else:
                audit(components, AuditEventBuilder.user_signed_in(user.email))
                start_session(components, user.email)
                st.rerun()

    with register:
        with st.form("register"):
            new_email = st.text_input("Email address", key="register_email")
            new_password = st.text_input("Password", type="password", key="register_password")
            submitted = st.form_submit_button("Create account", type="primary")

        results = check_password(new_password or "")
        for rule in PASSWORD_RULES:
            st.caption(f"{'✓' if results[rule.name] else '•'} {rule.description}")

        if submitted:
            try:
                user = run_async(components.users.register(new_email, new_password))
                audit(components, AuditEventBuilder.user_registered(user.email))
            except RegistrationError as e:
                st.error(str(e))
            else:
                st.success("Registration successful! Please sign in.")


def start_session(components: AppComponents, user_id: str):
    result = run_async(components.session_flow.start(user_id, date.today()))
    if result.state is None:
        st.error(result.message)
        st.stop()
    st.session_state.user_id = user_id
    st.session_state.app_state = result.state
    st.session_state.session_message = result.message


# =============================================================================
# DASHBOARD
# =============================================================================

def render_dashboard_page(state: AppState):
    st.title("📊 Dashboard")
    today = date.today()
    app_settings = get_settings().app

    overall = totals(state.transactions)
    col1, col2, col3 = st.columns(3)
    col1.metric("Total Income", money(overall.income))
    col2.metric("Total Expense", money(overall.expense))
    col3.metric("Net Balance", money(overall.net_balance))

    st.markdown("---")
    left, right = st.columns(2)

    with left:
        st.subheader("Income vs Expense")
        rows = monthly_income_vs_expense(state.transactions)
        if rows:
            st.bar_chart(
                {
                    "Income": {r.month: float(r.income) for r in rows},
                    "Expense": {r.month: float(r.expense) for r in rows},
                }
            )
        else:
            st.info("No transactions yet.")

    with right:
        st.subheader("This Month's Expenses")
        start, end = month_bounds(today.year, today.month)
        by_category = expenses_by_category(state.transactions, state.categories, start, end)
        if by_category:
            st.bar_chart({"Expense": {name: float(amount) for name, amount in by_category}})
        else:
            st.info("No expenses this month.")

    st.markdown("---")
    st.subheader("Budgets")
    progress = budget_progress(
        state.budgets,
        state.transactions,
        state.categories,
        today,
        app_settings.budget_warning_percent,
    )
    if not progress:
        st.info("No budgets set. Add one on the Budgets & Goals page.")
    for row in progress:
        st.markdown(
            f"{BUDGET_ICONS[row.status]} **{row.category_name}**: "
            f"{money(row.spent)} of {money(row.budget.limit)}"
        )
        st.progress(min(row.percent / 100, 1.0))

    st.subheader("Recent Transactions")
    for tx in state.transactions_by_date()[:5]:
        sign = "+" if tx.type == TransactionType.INCOME else "-"
        st.markdown(f"{tx.date.isoformat()} · {tx.description} · {sign}{money(tx.amount)}")


# =============================================================================
# TRANSACTIONS
# =============================================================================

def render_transaction_form(components: AppComponents, state: AppState):
    st.subheader("➕ Add Transaction")

    description = st.text_input("Description", key="tx_description")
    if st.button("✨ Suggest category") and description:
        with st.spinner("Thinking..."):
            outcome = run_async(components.suggestion_flow.suggest(state, description))
        if outcome.ok:
            st.session_state.suggested_category = outcome.suggestion.category_id
            st.session_state.suggested_type = outcome.suggestion.type
            st.success(outcome.message)
        else:
            st.warning(outcome.message)

    suggested_type = st.session_state.get("suggested_type", TransactionType.EXPENSE)
    with st.form("add_transaction", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            tx_type = st.selectbox(
                "Type",
                options=list(TransactionType),
                index=list(TransactionType).index(suggested_type),
                format_func=lambda t: t.value.title(),
            )
            amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
        with col2:
            options = category_options(state)
            suggested = st.session_state.get("suggested_category", "")
            ids = list(options)
            category_id = st.selectbox(
                "Category",
                options=ids,
                index=ids.index(suggested) if suggested in ids else 0,
                format_func=lambda cid: options[cid],
            )
            tx_date = st.date_input("Date", value=date.today())
        submitted = st.form_submit_button("Add", type="primary")

    if submitted:
        if not description.strip() or amount <= 0:
            st.error("Please enter a description and a positive amount.")
            return
        tx = state.add_transaction(TransactionDraft(
            date=tx_date,
            description=description,
            amount=Decimal(str(amount)),
            type=tx_type,
            category_id=category_id,
        ))
        if persist(components, state, "add_transaction"):
            audit(components, AuditEventBuilder.transaction_added(
                state.user_id, tx.id, tx.description, str(tx.amount)
            ))
            st.session_state.pop("suggested_category", None)
            st.session_state.pop("suggested_type", None)
            st.success("Transaction added.")
            st.rerun()


def render_transaction_row(components: AppComponents, state: AppState, tx: Transaction):
    sign = "+" if tx.type == TransactionType.INCOME else "-"
    label = (
        f"{tx.date.isoformat()} · {tx.description} · {sign}{money(tx.amount)} · "
        f"{state.category_name(tx.category_id)}"
    )
    with st.expander(label):
        with st.form(f"edit_{tx.id}"):
            description = st.text_input("Description", value=tx.description)
            amount = st.number_input("Amount", value=float(tx.amount), min_value=0.01, format="%.2f")
            options = category_options(state)
            ids = list(options)
            category_id = st.selectbox(
                "Category",
                options=ids,
                index=ids.index(tx.category_id) if tx.category_id in ids else 0,
                format_func=lambda cid: options[cid],
            )
            tx_date = st.date_input("Date", value=tx.date)
            saved = st.form_submit_button("💾 Save changes")
        if saved:
            changes = {
                "description": description,
                "amount": Decimal(str(amount)),
                "category_id": category_id,
                "date": tx_date,
            }
            state.update_transaction(tx.model_copy(update=changes))
            if persist(components, state, "update_transaction"):
                edited = [name for name, value in changes.items() if getattr(tx, name) != value]
                audit(components, AuditEventBuilder.transaction_updated(state.user_id, tx.id, edited))
                st.rerun()

        col1, col2 = st.columns(2)
        if col1.button("📄 Duplicate", key=f"dup_{tx.id}"):
            state.duplicate_transaction(tx.id, date.today())
            if persist(components, state, "duplicate_transaction"):
                st.rerun()
        if col2.button("🗑️ Delete", key=f"del_{tx.id}"):
            state.delete_transaction(tx.id)
            if persist(components, state, "delete_transaction"):
                audit(components, AuditEventBuilder.transaction_deleted(state.user_id, tx.id))
                st.rerun()


def render_import_section(components: AppComponents, state: AppState):
    st.subheader("📥 Import Statement")
    app_settings = get_settings().app
    uploaded = st.file_uploader(
        "Upload a CSV, TXT or XLSX bank statement",
        type=app_settings.supported_import_formats_list,
    )

    if uploaded and st.button("🔍 Read statement", type="primary"):
        with st.spinner("Reading your statement... Please wait."):
            outcome = run_async(components.import_flow.preview(
                state, uploaded.name, uploaded.getvalue(), uploaded.type
            ))
        if outcome.ok:
            st.session_state.import_preview = outcome.preview
        else:
            st.session_state.pop("import_preview", None)
            st.error(outcome.message)

    preview = st.session_state.get("import_preview")
    if preview is None:
        return

    st.info(preview.message)
    st.dataframe(
        [
            {
                "Date": d.date.isoformat(),
                "Description": d.description,
                "Amount": float(d.amount),
                "Type": d.type.value,
            }
            for d in preview.drafts
        ],
        use_container_width=True,
    )
    col1, col2 = st.columns(2)
    if col1.button("✅ Confirm import", type="primary"):
        outcome = run_async(components.import_flow.confirm(state, preview))
        st.session_state.pop("import_preview", None)
        if outcome.ok:
            st.success(outcome.message)
        else:
            st.error(outcome.message)
    if col2.button("❌ Discard"):
        st.session_state.pop("import_preview", None)
        st.rerun()


def render_categories_section(components: AppComponents, state: AppState):
    st.subheader("🏷️ Categories")
    with st.form("add_category", clear_on_submit=True):
        col1, col2 = st.columns(2)
        name = col1.text_input("Name")
        cat_type = col2.selectbox(
            "Type", options=list(TransactionType), format_func=lambda t: t.value.title()
        )
        submitted = st.form_submit_button("Add category")
    if submitted and name.strip():
        state.add_category(name, cat_type)
        if persist(components, state, "add_category"):
            st.rerun()

    for category in state.categories:
        col1, col2 = st.columns([4, 1])
        col1.markdown(f"{category.name} · _{category.type.value}_")
        if col2.button("Delete", key=f"delcat_{category.id}"):
            state.delete_category(category.id)
            if persist(components, state, "delete_category"):
                st.rerun()


def render_transactions_page(components: AppComponents, state: AppState):
    st.title("💳 Transactions")

    tab_list, tab_add, tab_import, tab_categories = st.tabs(
        ["All transactions", "Add", "Import", "Categories"]
    )

    with tab_list:
        st.download_button(
            "⬇️ Export CSV",
            data=export_transactions_csv(state.transactions_by_date(), state.categories),
            file_name="transactions.csv",
            mime="text/csv",
        )
        search = st.text_input("Search", placeholder="Filter by description")
        transactions = state.transactions_by_date()
        if search:
            transactions = [t for t in transactions if search.lower() in t.description.lower()]
        if not transactions:
            st.info("No transactions yet.")
        for tx in transactions:
            render_transaction_row(components, state, tx)

    with tab_add:
        render_transaction_form(components, state)

    with tab_import:
        render_import_section(components, state)

    with tab_categories:
        render_categories_section(components, state)


# =============================================================================
# RECURRING
# =============================================================================

def render_recurring_page(components: AppComponents, state: AppState):
    st.title("🔁 Recurring Transactions")
    st.markdown(
        "Recurring transactions are added automatically each time you sign in, "
        "one for every period that has passed."
    )

    with st.form("add_recurring", clear_on_submit=True):
        col1, col2 = st.columns(2)
        with col1:
            description = st.text_input("Description")
            amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
            rt_type = st.selectbox(
                "Type", options=list(TransactionType), format_func=lambda t: t.value.title()
            )
            options = category_options(state)
            category_id = st.selectbox(
                "Category", options=list(options), format_func=lambda cid: options[cid]
            )
        with col2:
            frequency = st.selectbox(
                "Frequency", options=list(Frequency), index=2, format_func=lambda f: f.value.title()
            )
            start_date = st.date_input("Start date", value=date.today())
            has_end = st.checkbox("Has an end date")
            end_date = st.date_input("End date", value=date.today())
        submitted = st.form_submit_button("Add recurring transaction", type="primary")

    if submitted:
        if not description.strip() or amount <= 0:
            st.error("Please enter a description and a positive amount.")
        elif has_end and end_date < start_date:
            st.error("End date cannot be before start date.")
        else:
            state.add_recurring(
                description=description,
                amount=Decimal(str(amount)),
                type=rt_type,
                category_id=category_id,
                frequency=frequency,
                start_date=start_date,
                end_date=end_date if has_end else None,
            )
            if persist(components, state, "add_recurring"):
                st.rerun()

    st.markdown("---")
    if not state.recurring:
        st.info("No recurring transactions yet.")
    for rule in state.recurring:
        ends = f" until {rule.end_date.isoformat()}" if rule.end_date else ""
        col1, col2 = st.columns([4, 1])
        col1.markdown(
            f"**{rule.description}** · {money(rule.amount)} · {rule.frequency.value}{ends}  \n"
            f"Next due: {rule.next_due_date.isoformat()} · {state.category_name(rule.category_id)}"
        )
        if col2.button("Delete", key=f"delrt_{rule.id}"):
            state.delete_recurring(rule.id)
            if persist(components, state, "delete_recurring"):
                st.rerun()


# =============================================================================
# BUDGETS & GOALS
# =============================================================================

def render_budgets_page(components: AppComponents, state: AppState):
    st.title("🎯 Budgets & Goals")
    today = date.today()
    app_settings = get_settings().app

    budgets_tab, goals_tab = st.tabs(["Budgets", "Goals"])

    with budgets_tab:
        with st.form("add_budget", clear_on_submit=True):
            options = category_options(state, TransactionType.EXPENSE)
            options.pop("")
            category_id = st.selectbox(
                "Category", options=list(options), format_func=lambda cid: options[cid]
            )
            limit = st.number_input("Monthly limit", min_value=0.0, step=100.0, format="%.2f")
            submitted = st.form_submit_button("Add budget", type="primary")
        if submitted and category_id and limit > 0:
            state.add_budget(category_id, Decimal(str(limit)))
            if persist(components, state, "add_budget"):
                st.rerun()

        for row in budget_progress(
            state.budgets, state.transactions, state.categories, today,
            app_settings.budget_warning_percent,
        ):
            col1, col2 = st.columns([4, 1])
            col1.markdown(
                f"{BUDGET_ICONS[row.status]} **{row.category_name}**: {money(row.spent)} "
                f"of {money(row.budget.limit)} ({row.percent:.0f}%)"
            )
            col1.progress(min(row.percent / 100, 1.0))
            if col2.button("Delete", key=f"delbudget_{row.budget.id}"):
                state.delete_budget(row.budget.id)
                if persist(components, state, "delete_budget"):
                    st.rerun()

    with goals_tab:
        with st.form("add_goal", clear_on_submit=True):
            name = st.text_input("Goal name")
            target = st.number_input("Target amount", min_value=0.0, step=100.0, format="%.2f")
            saved = st.number_input("Saved so far", min_value=0.0, step=100.0, format="%.2f")
            has_date = st.checkbox("Has a target date")
            target_date = st.date_input("Target date", value=today)
            submitted = st.form_submit_button("Add goal", type="primary")
        if submitted and name.strip() and target > 0:
            state.add_goal(
                name,
                Decimal(str(target)),
                Decimal(str(saved)),
                target_date if has_date else None,
            )
            if persist(components, state, "add_goal"):
                st.rerun()

        for row in goal_progress(state.goals):
            goal = row.goal
            with st.expander(f"{'🏆' if row.reached else '🎯'} {goal.name} ({row.percent:.0f}%)"):
                st.progress(min(row.percent / 100, 1.0))
                st.markdown(f"{money(goal.saved_amount)} of {money(goal.target_amount)}")
                add = st.number_input(
                    "Add savings", min_value=0.0, step=100.0, format="%.2f", key=f"addsave_{goal.id}"
                )
                col1, col2 = st.columns(2)
                if col1.button("Update", key=f"updgoal_{goal.id}") and add > 0:
                    state.update_goal(goal.model_copy(
                        update={"saved_amount": goal.saved_amount + Decimal(str(add))}
                    ))
                    if persist(components, state, "update_goal"):
                        st.rerun()
                if col2.button("Delete", key=f"delgoal_{goal.id}"):
                    state.delete_goal(goal.id)
                    if persist(components, state, "delete_goal"):
                        st.rerun()


# =============================================================================
# INVESTMENTS & NET WORTH
# =============================================================================

def render_investments_page(components: AppComponents, state: AppState):
    st.title("📈 Investments")

    summary = investment_summary(state.investments)
    col1, col2, col3 = st.columns(3)
    col1.metric("Invested", money(summary.cost))
    col2.metric("Current Value", money(summary.current_value))
    col3.metric(
        "Profit / Loss",
        money(summary.profit_loss),
        f"{summary.profit_loss_percent:.1f}%" if summary.profit_loss_percent is not None else None,
    )

    if state.investments and st.button("🔄 Refresh all prices"):
        with st.spinner("Fetching latest prices..."):
            outcome = run_async(components.insights_flow.refresh_prices(state))
        show_message(outcome.ok, outcome.message)

    with st.form("add_investment", clear_on_submit=True):
        name = st.text_input("Name (stock, fund, ...)")
        col1, col2, col3 = st.columns(3)
        quantity = col1.number_input("Quantity", min_value=0.0, format="%.4f")
        price = col2.number_input("Purchase price", min_value=0.0, format="%.2f")
        purchase_date = col3.date_input("Purchase date", value=date.today())
        submitted = st.form_submit_button("Add investment", type="primary")
    if submitted and name.strip():
        state.add_investment(name, Decimal(str(quantity)), Decimal(str(price)), purchase_date)
        if persist(components, state, "add_investment"):
            st.rerun()

    for inv in state.investments:
        current = money(inv.current_price) if inv.current_price is not None else "not fetched"
        col1, col2, col3 = st.columns([4, 1, 1])
        col1.markdown(
            f"**{inv.name}** · {inv.quantity} @ {money(inv.purchase_price)} · current {current}"
        )
        if col2.button("🔄", key=f"price_{inv.id}"):
            outcome = run_async(components.insights_flow.refresh_prices(state, [inv.id]))
            show_message(outcome.ok, outcome.message)
        if col3.button("Delete", key=f"delinv_{inv.id}"):
            state.delete_investment(inv.id)
            if persist(components, state, "delete_investment"):
                st.rerun()


def render_net_worth_page(components: AppComponents, state: AppState):
    st.title("🏦 Net Worth")

    worth = net_worth(state.transactions, state.investments, state.assets, state.liabilities)
    st.markdown(f'<div class="big-number">{money(worth.net_worth)}</div>', unsafe_allow_html=True)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Bank Balance", money(worth.bank_balance))
    col2.metric("Investments", money(worth.investment_value))
    col3.metric("Total Assets", money(worth.total_assets))
    col4.metric("Liabilities", money(worth.liabilities))

    history = net_worth_history(state.transactions, state.investments, state.assets, state.liabilities)
    if history:
        st.line_chart({
            "Bank Balance": {p.month: float(p.bank_balance) for p in history},
            "Net Worth": {p.month: float(p.net_worth) for p in history},
        })

    assets_col, liabilities_col = st.columns(2)
    for column, label, entries, add, delete in (
        (assets_col, "Asset", state.assets, state.add_asset, state.delete_asset),
        (liabilities_col, "Liability", state.liabilities, state.add_liability, state.delete_liability),
    ):
        with column:
            st.subheader(f"{label} entries")
            with st.form(f"add_{label}", clear_on_submit=True):
                name = st.text_input("Name")
                value = st.number_input("Value", min_value=0.0, format="%.2f")
                submitted = st.form_submit_button(f"Add {label.lower()}")
            if submitted and name.strip():
                add(name, Decimal(str(value)))
                if persist(components, state, f"add_{label.lower()}"):
                    st.rerun()
            for entry in entries:
                c1, c2 = st.columns([3, 1])
                c1.markdown(f"{entry.name} · {money(entry.value)}")
                if c2.button("Delete", key=f"del_{label}_{entry.id}"):
                    delete(entry.id)
                    if persist(components, state, f"delete_{label.lower()}"):
                        st.rerun()


# =============================================================================
# CHAT
# =============================================================================

def render_chat_page(components: AppComponents, state: AppState):
    st.title("💬 AI Chat Assistant")
    flow = components.chat_flow
    today = date.today()

    col1, col2 = st.columns([4, 1])
    with col1:
        mode = st.radio(
            "Mode",
            options=list(ChatMode),
            format_func=lambda m: CHAT_MODE_LABELS[m],
            horizontal=True,
        )
    with col2:
        if st.button("New Chat"):
            run_async(flow.new_chat(state, mode))
            st.session_state.pop("pending_drafts", None)
            st.rerun()

    for message in state.chat_history(mode):
        role = "user" if message.role == ChatRole.USER else "assistant"
        with st.chat_message(role):
            st.markdown(message.text)
            if message.sources:
                st.caption("Sources: " + ", ".join(
                    f"[{s.get('title') or s.get('uri')}]({s.get('uri')})" for s in message.sources
                ))

    pending = st.session_state.get("pending_drafts")
    if pending and mode == ChatMode.ACTIONS:
        c1, c2 = st.columns(2)
        if c1.button("✅ Yes, add them", type="primary"):
            run_async(flow.confirm_pending(state, pending, True))
            st.session_state.pop("pending_drafts", None)
            st.rerun()
        if c2.button("❌ No"):
            run_async(flow.confirm_pending(state, pending, False))
            st.session_state.pop("pending_drafts", None)
            st.rerun()

    if mode == ChatMode.ACTIONS:
        app_settings = get_settings().app
        with st.expander("📷 Add transactions from an image"):
            image = st.file_uploader(
                "Receipt or statement screenshot",
                type=app_settings.supported_image_formats_list,
            )
            instructions = st.text_input(
                "Instructions (optional)", placeholder="e.g. ignore the Netflix charge"
            )
            if image and st.button("Read image"):
                with st.spinner("Reading your image..."):
                    outcome = run_async(flow.send_image(
                        state, image.getvalue(), image.type, instructions, today
                    ))
                if outcome.pending:
                    st.session_state.pending_drafts = outcome.pending
                st.rerun()

    placeholder = (
        "Type a command, e.g. 'Add 250 for lunch today'"
        if mode == ChatMode.ACTIONS
        else "Ask about budgeting, investments, or financial tips..."
    )
    prompt = st.chat_input(placeholder)
    if prompt:
        with st.spinner("Thinking..."):
            run_async(flow.send(state, mode, prompt, today))
        st.rerun()


# =============================================================================
# REPORTS
# =============================================================================

def render_reports_page(components: AppComponents, state: AppState):
    st.title("📑 Reports")
    today = date.today()

    col1, col2 = st.columns(2)
    start = col1.date_input("From", value=None)
    end = col2.date_input("To", value=None)
    selected = filter_transactions(state.transactions, start, end)

    period = totals(selected)
    c1, c2, c3 = st.columns(3)
    c1.metric("Income", money(period.income))
    c2.metric("Expenses", money(period.expense))
    c3.metric("Net", money(period.net_balance))

    by_category = expenses_by_category(selected, state.categories)
    if by_category:
        st.subheader("Expenses by category")
        st.bar_chart({"Expense": {name: float(amount) for name, amount in by_category}})

    st.markdown("---")
    st.subheader("This month vs last month")
    current, previous = current_and_previous_month(state.transactions, state.categories, today)
    delta = current.savings - previous.savings
    st.metric("Savings this month", money(current.savings), money(delta))
    if st.button("🤖 Compare with AI"):
        with st.spinner("Comparing..."):
            outcome = run_async(components.insights_flow.monthly_comparison(state, today))
        show_report(outcome)

    st.markdown("---")
    left, right = st.columns(2)
    if left.button("🤖 Analyze spending", type="primary"):
        with st.spinner("Analyzing your spending..."):
            outcome = run_async(components.insights_flow.spending_analysis(state, start, end))
        show_report(outcome)
    if right.button("💡 Personalized insights"):
        with st.spinner("Looking at your finances..."):
            outcome = run_async(components.insights_flow.personalized_insights(state))
        show_report(outcome)


# =============================================================================
# SETTINGS
# =============================================================================

def render_settings_page(components: AppComponents, state: AppState):
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")
    status = validate_all_settings()
    services = [
        ("Gemini (AI)", "gemini"),
        ("Storage", "storage"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Application", "app"),
    ]
    for name, key in services:
        if key not in status:
            continue
        if status[key]:
            st.success(f"✅ {name} - Configured")
        else:
            st.error(f"❌ {name} - {status.get(f'{key}_error', 'Not configured')}")

    st.markdown("### Recent Activity")
    events = run_async(components.audit_logger.recent_events(state.user_id, limit=20))
    if not events:
        st.info("No activity recorded yet.")
    for event in events:
        st.caption(f"{event.timestamp:%Y-%m-%d %H:%M} · {event.description}")

    st.markdown("---")
    st.markdown(
        "To configure the application, create a `.env` file with your API keys. "
        "See `.env.example` for the required variables."
    )


# =============================================================================
# MAIN
# =============================================================================

PAGES = {
    "📊 Dashboard": render_dashboard_page,
    "💳 Transactions": render_transactions_page,
    "🔁 Recurring": render_recurring_page,
    "🎯 Budgets & Goals": render_budgets_page,
    "📈 Investments": render_investments_page,
    "🏦 Net Worth": render_net_worth_page,
    "💬 AI Chat": render_chat_page,
    "📑 Reports": render_reports_page,
    "⚙️ Settings": render_settings_page,
}


def main():
    """Main application entry point."""
    components = get_components()

    state: AppState | None = st.session_state.get("app_state")
    if state is None:
        render_auth_page(components)
        return

    st.sidebar.title("💰 Finan AI")
    st.sidebar.caption(state.user_id)
    st.sidebar.markdown("---")
    page = st.sidebar.radio("Navigate to:", list(PAGES), index=0)
    st.sidebar.markdown("---")
    if st.sidebar.button("Sign out"):
        for key in list(st.session_state.keys()):
            del st.session_state[key]
        st.rerun()

    message = st.session_state.pop("session_message", "")
    if message:
        st.toast(message)

    if page == "📊 Dashboard":
        render_dashboard_page(state)
    else:
        PAGES[page](components, state)


if __name__ == "__main__":
    main()
