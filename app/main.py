"""
Streamlit Frontend for FinanceFlow

The user interface for day-to-day tracking.

DESIGN PRINCIPLES:
1. The UI only renders LedgerState and calls the flows
2. All numbers come from financeflow.queries
3. Clear error messages for user actions; the automated backfill
   runs silently and only shows up as new transactions
4. AI suggestions prefill forms, the user always confirms

The session state holds exactly one LedgerState. Every flow call
returns a new one, which replaces it.
"""

import asyncio
from datetime import date
from decimal import Decimal

import streamlit as st

from financeflow.audit import create_correlation_id
from financeflow.config import get_settings, validate_all_settings
from financeflow.models import (
    EXPENSE_CATEGORIES,
    BillDraft,
    Frequency,
    LedgerState,
    TransactionDraft,
    TransactionKind,
    categories_for,
)
from financeflow.orchestrator import AppComponents, create_app_components
from financeflow.queries import (
    BillUrgency,
    DateRange,
    KindFilter,
    bill_urgency,
    dashboard_summary,
    period_report,
    recurring_templates,
)
from financeflow.services.storage import StorageError
from financeflow.validation import ValidationFailedError


# Page configuration
st.set_page_config(
    page_title="FinanceFlow",
    page_icon="💶",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
    .negative {
        color: #dc3545;
    }
</style>
""", unsafe_allow_html=True)


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
    try:
        return create_app_components(use_storage=True)
    except Exception as e:
        st.error(f"Failed to initialize: {e}")
        return create_app_components(use_storage=False, use_assistant=False)


def format_money(amount: Decimal) -> str:
    currency = get_settings().app.currency
    return f"{amount:,.2f} {currency}"


def get_state() -> LedgerState:
    return st.session_state["ledger"]


def set_state(state: LedgerState) -> None:
    st.session_state["ledger"] = state


def load_session(components: AppComponents) -> None:
    """Load the ledger once per browser session (runs the backfill)."""
    if "ledger" in st.session_state:
        return
    with st.spinner("Loading your finances..."):
        try:
            result = run_async(components.session.load(today=date.today()))
            set_state(result.state)
        except StorageError as e:
            st.error(f"Could not load your data: {e}")
            set_state(LedgerState())


def main():
    """Main application entry point."""
    components = get_components()
    load_session(components)
    state = get_state()

    if not unlock_screen(components, state):
        return

    st.sidebar.title("💶 FinanceFlow")
    if not components.persistent:
        st.sidebar.warning("Demo mode: data is not saved")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "🏠 Dashboard",
            "➕ Add Transaction",
            "🧾 Bills",
            "🔁 Recurring",
            "📈 Analytics",
            "💬 Assistant",
            "⚙️ Settings",
        ],
        index=0,
    )

    if page == "🏠 Dashboard":
        render_dashboard_page(components)
    elif page == "➕ Add Transaction":
        render_add_page(components)
    elif page == "🧾 Bills":
        render_bills_page(components)
    elif page == "🔁 Recurring":
        render_recurring_page(components)
    elif page == "📈 Analytics":
        render_analytics_page()
    elif page == "💬 Assistant":
        render_assistant_page(components)
    elif page == "⚙️ Settings":
        render_settings_page(components)


def unlock_screen(components: AppComponents, state: LedgerState) -> bool:
    """PIN gate. Returns True once unlocked."""
    if not state.pin or st.session_state.get("unlocked"):
        return True

    st.title("🔒 Enter PIN")
    attempt = st.text_input("PIN", type="password", max_chars=4)
    if st.button("Unlock", type="primary"):
        if components.settings_flow.unlock(state, attempt):
            st.session_state["unlocked"] = True
            st.rerun()
        else:
            st.error("Wrong PIN")
    return False


def render_dashboard_page(components: AppComponents):
    """Render the dashboard."""
    settings = get_settings().app
    today = date.today()
    state = get_state()
    summary = dashboard_summary(
        state,
        today,
        window_days=settings.upcoming_bill_window_days,
        urgent_days=settings.urgent_bill_days,
    )

    title = "🏠 Dashboard"
    if summary.has_urgent_bills:
        title += " 🔔"
    st.title(title)

    css_class = "big-number negative" if summary.balance < 0 else "big-number"
    st.markdown(
        f'<div class="{css_class}">{format_money(summary.balance)}</div>',
        unsafe_allow_html=True,
    )

    col1, col2, col3 = st.columns(3)
    col1.metric("Income", format_money(summary.total_income))
    col2.metric("Expenses", format_money(summary.total_expense))
    col3.metric("Bills due soon", summary.upcoming_bills)

    if summary.expenses_by_category:
        st.markdown("### Expenses by category")
        st.bar_chart({
            category.label: float(amount)
            for category, amount in summary.expenses_by_category.items()
        })

    st.markdown("### Recent transactions")
    recent = [t for t in state.entries if t.occurred_on <= today][:10]
    if not recent:
        st.info("No transactions yet. Add your first one from 'Add Transaction'.")
    for t in recent:
        sign = "+" if t.kind == TransactionKind.INCOME else "-"
        st.markdown(
            f"**{t.description}** · {t.category.label} · {t.occurred_on:%d/%m/%Y} "
            f"· {sign}{format_money(t.amount)}"
        )

    if components.assistant:
        st.markdown("---")
        if st.button("💡 Get saving tips"):
            with st.spinner("Thinking..."):
                advice = run_async(
                    components.assistant.get_financial_advice(state.transactions)
                )
            st.markdown(advice)
        if st.button("🌍 Market outlook"):
            with st.spinner("Reading the markets..."):
                analysis = run_async(components.assistant.get_market_analysis())
            if analysis is None:
                st.warning("Market outlook is not available right now.")
            else:
                st.metric(analysis.sentiment.value, f"{analysis.score}/100")
                st.markdown(analysis.summary)
                for trend in analysis.trends:
                    st.markdown(
                        f"- **{trend.sector}** ({trend.trend.value}, {trend.change:+.1f}%): "
                        f"{trend.reason}"
                    )


def render_add_page(components: AppComponents):
    """Render the add-transaction page."""
    st.title("➕ Add Transaction")
    flow = components.entry_flow
    today = date.today()
    prefill = st.session_state.get("receipt_prefill", {})

    with st.expander("📷 Scan a receipt"):
        uploaded = st.file_uploader(
            "Receipt photo",
            type=get_settings().app.supported_formats_list,
        )
        if uploaded is not None and st.button("Read receipt"):
            with st.spinner("Reading receipt..."):
                extraction, data_url = run_async(flow.read_receipt(uploaded.getvalue()))
            if data_url is None:
                st.error(
                    "That file isn't a readable image, or it's larger than "
                    f"{get_settings().app.max_upload_size_mb} MB."
                )
            else:
                prefill = {"receipt_image": data_url}
                if extraction:
                    prefill.update(extraction.model_dump(exclude_none=True))
                    st.success("Receipt read. Please check the fields below.")
                else:
                    st.warning("Couldn't read the receipt. Please fill the fields in.")
                st.session_state["receipt_prefill"] = prefill

    kind = st.radio(
        "Type",
        list(TransactionKind),
        format_func=lambda k: k.value.title(),
        horizontal=True,
    )
    allowed = list(categories_for(kind))

    description = st.text_input("Description", value=prefill.get("description", ""))
    if flow.has_assistant and description and st.button("✨ Suggest category"):
        suggested = run_async(flow.suggest_category(description, kind))
        if suggested:
            st.session_state["suggested_category"] = suggested
        else:
            st.info("No suggestion available.")

    default_category = st.session_state.get("suggested_category", prefill.get("category"))
    category = st.selectbox(
        "Category",
        allowed,
        index=allowed.index(default_category) if default_category in allowed else 0,
        format_func=lambda c: c.label,
    )
    subcategory = st.text_input("Subcategory (optional)", value=prefill.get("subcategory") or "")
    amount = st.number_input(
        "Amount",
        min_value=0.0,
        step=0.01,
        value=float(prefill.get("amount", 0.0)),
    )
    occurred_on = st.date_input("Date", value=prefill.get("occurred_on", today))

    is_recurring = st.checkbox("Recurring")
    frequency = None
    if is_recurring:
        frequency = st.selectbox(
            "Repeats",
            list(Frequency),
            index=1,
            format_func=lambda f: f.value.title(),
        )

    if st.button("💾 Save", type="primary"):
        draft = TransactionDraft(
            amount=Decimal(str(amount)),
            kind=kind,
            category=category,
            subcategory=subcategory or None,
            occurred_on=occurred_on,
            description=description,
            is_recurring=is_recurring,
            frequency=frequency,
            receipt_image=prefill.get("receipt_image"),
        )
        try:
            result = run_async(flow.add_transaction(
                get_state(),
                draft,
                today,
                correlation_id=create_correlation_id(),
            ))
        except ValidationFailedError as e:
            st.error(flow.summarize_validation(e.result))
            return
        except StorageError as e:
            st.error(f"Could not save: {e}")
            return

        set_state(result.state)
        st.session_state.pop("receipt_prefill", None)
        st.session_state.pop("suggested_category", None)

        if result.validation.warnings:
            st.warning(flow.summarize_validation(result.validation))
        st.success("Saved!")
        if result.backfill and result.backfill.created:
            st.info(f"Added {len(result.backfill.created)} past occurrences.")


def render_bills_page(components: AppComponents):
    """Render the bills page."""
    st.title("🧾 Bills")
    flow = components.bill_flow
    today = date.today()
    urgent_days = get_settings().app.urgent_bill_days

    with st.expander("➕ New bill"):
        name = st.text_input("Name")
        amount = st.number_input("Amount", min_value=0.0, step=0.01, key="bill_amount")
        due_date = st.date_input("Due date", value=today, key="bill_due")
        category = st.selectbox(
            "Category",
            list(EXPENSE_CATEGORIES),
            index=1,
            format_func=lambda c: c.label,
            key="bill_category",
        )
        if st.button("Save bill", type="primary"):
            try:
                state, _ = run_async(flow.add_bill(
                    get_state(),
                    BillDraft(
                        name=name,
                        amount=Decimal(str(amount)),
                        due_date=due_date,
                        category=category,
                    ),
                    today,
                ))
                set_state(state)
                st.rerun()
            except ValidationFailedError as e:
                st.error(str(e))
            except StorageError as e:
                st.error(f"Could not save: {e}")

    bills = sorted(get_state().bills, key=lambda b: b.due_date)
    if not bills:
        st.info("No bills yet.")

    labels = {
        BillUrgency.PAID: "✅ Paid",
        BillUrgency.LATE: "🔴 Overdue",
        BillUrgency.URGENT: "🟠 Due soon",
    }

    for bill in bills:
        urgency = bill_urgency(bill, today, urgent_days)
        label = labels.get(urgency, f"{bill.days_until_due(today)} days")
        col1, col2 = st.columns([4, 1])
        col1.markdown(
            f"**{bill.name}** · {format_money(bill.amount)} · "
            f"{bill.due_date:%d/%m/%Y} · {label}"
        )
        if bill.is_paid:
            if col2.button("🗑️ Delete", key=f"delete_{bill.id}"):
                try:
                    set_state(run_async(flow.delete_bill(get_state(), bill.id)))
                    st.rerun()
                except StorageError as e:
                    st.error(f"Could not delete: {e}")
        elif col2.button("💳 Pay", key=f"pay_{bill.id}"):
            try:
                result = run_async(flow.pay_bill(get_state(), bill.id, today))
            except StorageError as e:
                st.error(f"Could not mark as paid: {e}")
                continue
            set_state(result.state)
            if result.mirror_error:
                st.warning("Bill marked paid, but the expense could not be recorded.")
            st.rerun()


def render_recurring_page(components: AppComponents):
    """Render the recurring transactions page."""
    st.title("🔁 Recurring")
    kind_filter = st.radio(
        "Show",
        list(KindFilter),
        format_func=lambda k: k.value.title(),
        horizontal=True,
    )

    templates = recurring_templates(get_state(), kind_filter)
    if not templates:
        st.info("No recurring transactions.")

    for t in templates:
        col1, col2 = st.columns([4, 1])
        col1.markdown(
            f"**{t.description}** · {format_money(t.amount)} · "
            f"{t.frequency.value.title() if t.frequency else 'Once'} · "
            f"next {t.next_due:%d/%m/%Y}"
        )
        if col2.button("⏹️ Stop", key=f"stop_{t.id}"):
            try:
                set_state(run_async(components.entry_flow.stop_recurrence(get_state(), t.id)))
                st.rerun()
            except StorageError as e:
                st.error(f"Could not stop: {e}")


def render_analytics_page():
    """Render the analytics page."""
    st.title("📈 Analytics")
    today = date.today()

    col1, col2 = st.columns(2)
    date_range = col1.selectbox(
        "Range",
        list(DateRange),
        format_func=lambda r: r.value.title() if r == DateRange.CUSTOM else r.value,
    )
    kind_filter = col2.selectbox(
        "Type",
        list(KindFilter),
        format_func=lambda k: k.value.title(),
    )

    custom_start = custom_end = None
    if date_range == DateRange.CUSTOM:
        custom_start = st.date_input("From", value=today.replace(day=1))
        custom_end = st.date_input("To", value=today)

    try:
        report = period_report(
            get_state(),
            date_range,
            today,
            kind_filter=kind_filter,
            custom_start=custom_start,
            custom_end=custom_end,
        )
    except ValueError as e:
        st.error(str(e))
        return

    m1, m2, m3 = st.columns(3)
    m1.metric("Income", format_money(report.total_income))
    m2.metric("Expenses", format_money(report.total_expense))
    m3.metric("Net", format_money(report.net))

    if report.series:
        st.line_chart({p.day.isoformat(): float(p.value) for p in report.series})

    for t in report.transactions:
        sign = "+" if t.kind == TransactionKind.INCOME else "-"
        st.markdown(
            f"{t.occurred_on:%d/%m/%Y} · **{t.description}** · {t.category.label} "
            f"· {sign}{format_money(t.amount)}"
        )


def render_assistant_page(components: AppComponents):
    """Render the chat page."""
    st.title("💬 Assistant")

    if not components.assistant:
        st.info("The assistant isn't configured. Set GEMINI_API_KEY to enable it.")
        return

    if "chat" not in st.session_state:
        state = get_state()
        st.session_state["chat"] = components.assistant.start_chat(
            state.transactions,
            state.bills,
            date.today(),
        )
        st.session_state["chat_history"] = []

    for role, text in st.session_state["chat_history"]:
        with st.chat_message(role):
            st.markdown(text)

    message = st.chat_input("Ask about your finances")
    if message:
        st.session_state["chat_history"].append(("user", message))
        with st.chat_message("user"):
            st.markdown(message)
        with st.spinner("Thinking..."):
            reply = run_async(st.session_state["chat"].send(message))
        st.session_state["chat_history"].append(("assistant", reply))
        with st.chat_message("assistant"):
            st.markdown(reply)


def render_settings_page(components: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### PIN lock")
    state = get_state()
    pin = st.text_input("New PIN (4 digits)", type="password", max_chars=4)
    col1, col2 = st.columns(2)
    if col1.button("Set PIN"):
        try:
            set_state(run_async(components.settings_flow.set_pin(state, pin)))
            st.success("PIN saved")
        except ValueError as e:
            st.error(str(e))
        except StorageError as e:
            st.error(f"Could not save PIN: {e}")
    if state.pin and col2.button("Remove PIN"):
        try:
            set_state(run_async(components.settings_flow.set_pin(state, None)))
            st.success("PIN removed")
        except StorageError as e:
            st.error(f"Could not remove PIN: {e}")

    st.markdown("---")
    st.markdown("### Connection Status")

    status = validate_all_settings()
    services = [
        ("Supabase (Storage)", "supabase"),
        ("Gemini (AI)", "gemini"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("### Recent activity")
    events = run_async(components.audit_logger.recent_events(limit=20))
    for event in events:
        st.markdown(f"`{event.timestamp:%d/%m %H:%M}` {event.description}")

    st.markdown("---")
    st.markdown(
        "To configure the application, create a `.env` file with "
        "`SUPABASE_URL`, `SUPABASE_KEY` and `GEMINI_API_KEY`."
    )


if __name__ == "__main__":
    main()
