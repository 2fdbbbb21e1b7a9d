"""
Streamlit Frontend for the Investment Tracker

Pages:
1. Setup (first run only): set the money pool
2. Dashboard: headline numbers, alerts, break-even progress, recent activity
3. Investments: give out capital, close investments
4. Returns: record monthly returns per investment
5. Transactions: withdrawals, expenses and adjustments
6. Ledger: the full history with running balance
7. Charts: returns, profit growth, balance timeline
8. Settings: storage status, sync, reset

The UI never touches state itself. Every change goes through the engine,
followed by a sync of the remote mirror when one is configured.
"""

import asyncio
import hmac
from datetime import date, datetime, time, timezone
from functools import partial

import plotly.express as px
import streamlit as st

from invest_tracker.config import get_settings, validate_all_settings
from invest_tracker.engine import LedgerError
from invest_tracker.models.ledger import (
    InvestmentStatus,
    ManualTransactionType,
    SourceType,
    format_currency,
)
from invest_tracker.orchestrator import TrackerApp, create_app_components
from invest_tracker.queries import AlertLevel, PortfolioQueries


st.set_page_config(
    page_title="Investment Tracker",
    page_icon="💰",
    layout="wide",
    initial_sidebar_state="expanded",
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_app() -> TrackerApp:
    """Get or create application components (cached)."""
    try:
        app = create_app_components()
    except Exception as e:
        st.error(f"Failed to initialize remote storage: {e}")
        app = create_app_components(use_remote=False)
    run_async(app.restore_from_remote())
    return app


def as_timestamp(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def after_change(app: TrackerApp) -> None:
    """Push queued writes to the mirror and redraw."""
    if app.has_mirror:
        report = run_async(app.sync())
        if report.error:
            st.toast(f"Saved locally; remote sync pending ({report.pending} queued)")
    st.rerun()


def check_password() -> bool:
    """Simple gate when APP_PASSWORD is set."""
    password = get_settings().app.app_password
    if not password or st.session_state.get("authenticated"):
        return True

    st.title("🔒 Investment Tracker")
    entered = st.text_input("Password", type="password")
    if st.button("Unlock App", type="primary"):
        if hmac.compare_digest(entered.encode(), password.encode()):
            st.session_state.authenticated = True
            st.rerun()
        st.error("Wrong password")
    return False


def main():
    """Main application entry point."""
    if not check_password():
        return

    app = get_app()
    fmt = partial(format_currency, symbol=app.currency_symbol)

    if not app.engine.is_setup_complete:
        render_setup_page(app)
        return

    st.sidebar.title("💰 Investment Tracker")
    st.sidebar.metric("Available Balance", fmt(app.engine.available_balance))
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        [
            "📊 Dashboard",
            "💼 Investments",
            "📈 Returns",
            "💸 Transactions",
            "📜 Ledger",
            "📉 Charts",
            "⚙️ Settings",
        ],
        index=0,
    )

    queries = PortfolioQueries.from_engine(app.engine, app.currency_symbol)

    if page == "📊 Dashboard":
        render_dashboard(queries, fmt)
    elif page == "💼 Investments":
        render_investments_page(app, fmt)
    elif page == "📈 Returns":
        render_returns_page(app, queries, fmt)
    elif page == "💸 Transactions":
        render_transactions_page(app, fmt)
    elif page == "📜 Ledger":
        render_ledger_page(app, queries, fmt)
    elif page == "📉 Charts":
        render_charts_page(queries)
    elif page == "⚙️ Settings":
        render_settings_page(app)


def render_setup_page(app: TrackerApp):
    st.title("💰 Welcome")
    st.markdown("Enter the total money pool you are starting with.")

    with st.form("setup"):
        amount = st.number_input("Total Money Pool", min_value=0.0, step=1000.0)
        submitted = st.form_submit_button("Start Tracking", type="primary")

    if submitted:
        try:
            app.engine.initialize_pool(str(amount))
        except LedgerError as e:
            st.error(str(e))
            return
        after_change(app)


def render_dashboard(queries: PortfolioQueries, fmt):
    st.title("📊 Dashboard")
    summary = queries.summary

    for alert in queries.alerts():
        if alert.level == AlertLevel.DANGER:
            st.error(alert.message)
        elif alert.level == AlertLevel.WARNING:
            st.warning(alert.message)
        elif alert.level == AlertLevel.SUCCESS:
            st.success(alert.message)
        else:
            st.info(alert.message)

    cols = st.columns(5)
    cols[0].metric("Total Money Pool", fmt(summary.total_money_pool))
    cols[1].metric(
        "Active Capital",
        fmt(summary.active_capital),
        f"{summary.active_investment_count} active",
        delta_color="off",
    )
    cols[2].metric("Available Balance", fmt(summary.available_balance))
    cols[3].metric("Expected Monthly", fmt(summary.expected_monthly_income))
    cols[4].metric(
        "Net Profit",
        fmt(summary.net_profit),
        f"{summary.return_count} returns",
        delta_color="off",
    )

    if summary.total_invested > 0:
        st.markdown("### Break-even Progress")
        st.progress(
            float(summary.break_even_progress) / 100,
            text=f"{summary.break_even_progress:.1f}%",
        )
        st.caption(
            f"{fmt(summary.total_returns)} recovered of {fmt(summary.total_invested)} invested"
        )

    st.markdown("### Recent Activity")
    recent = queries.recent_activity()
    if not recent:
        st.info("No transactions yet. Start by adding an investment!")
    for entry in recent:
        left, right = st.columns([3, 1])
        left.markdown(f"**{entry.type}**  \n{entry.date:%b %d, %Y}")
        sign = "+" if entry.amount >= 0 else ""
        right.markdown(f"{sign}{fmt(entry.amount)}  \nBal: {fmt(entry.balance_after)}")


def render_investments_page(app: TrackerApp, fmt):
    st.title("💼 Investments")
    engine = app.engine

    if engine.available_balance < 0:
        st.warning(
            f"Capital is over-committed: available balance is {fmt(engine.available_balance)}"
        )

    with st.expander("➕ Add Investment"):
        with st.form("add_investment", clear_on_submit=True):
            inv_date = st.date_input("Date", value=date.today())
            amount = st.number_input("Amount", min_value=0.0, step=1000.0)
            notes = st.text_input("Notes", placeholder="Who / what is this for?")
            submitted = st.form_submit_button("Add Investment", type="primary")

        if submitted:
            try:
                engine.add_investment(as_timestamp(inv_date), str(amount), notes)
            except LedgerError as e:
                st.error(str(e))
            else:
                after_change(app)

    investments = list(reversed(engine.investments))
    if not investments:
        st.info("No investments yet.")
        return

    for investment in investments:
        cols = st.columns([2, 2, 2, 2, 1])
        cols[0].write(f"{investment.date:%b %d, %Y}")
        cols[1].write(investment.notes or "No notes")
        cols[2].write(fmt(investment.amount))
        cols[3].write(f"{investment.status.value} · expects {fmt(investment.expected_return)}/mo")
        if investment.status == InvestmentStatus.ACTIVE:
            if cols[4].button("Close", key=f"close-{investment.id}"):
                engine.close_investment(investment.id)
                after_change(app)


def render_returns_page(app: TrackerApp, queries: PortfolioQueries, fmt):
    st.title("📈 Monthly Returns")
    engine = app.engine
    active = engine.active_investments
    summary = queries.summary

    cols = st.columns(3)
    cols[0].metric("Expected Monthly", fmt(summary.expected_monthly_income))
    cols[1].metric("Total Received", fmt(summary.total_returns))
    cols[2].metric(
        "Average Return",
        fmt(summary.average_return) if summary.average_return is not None else "—",
    )

    if not active:
        st.info("Add an investment first before recording returns.")
    else:
        with st.form("record_return", clear_on_submit=True):
            ret_date = st.date_input("Date", value=date.today())
            investment = st.selectbox(
                "Investment",
                options=active,
                format_func=lambda i: f"{i.notes or fmt(i.amount)} (expects {fmt(i.expected_return)})",
            )
            amount = st.number_input("Amount Received", min_value=0.0, step=100.0)
            submitted = st.form_submit_button("Record Return", type="primary")

        if submitted:
            try:
                engine.record_return(as_timestamp(ret_date), str(amount), investment.id)
            except LedgerError as e:
                st.error(str(e))
            else:
                after_change(app)

    table = queries.returns_table()
    if table.empty:
        st.info("No returns recorded yet")
    else:
        st.dataframe(table, use_container_width=True, hide_index=True)


def render_transactions_page(app: TrackerApp, fmt):
    st.title("💸 Manual Transactions")
    engine = app.engine

    # Outside the form so the source list follows the selected type
    source_type = st.selectbox(
        "Taken from",
        options=list(SourceType),
        format_func=lambda s: s.value.title(),
    )
    source_options = {
        SourceType.GENERAL: [],
        SourceType.INVESTMENT: [(i.id, i.notes or fmt(i.amount)) for i in engine.investments],
        SourceType.RETURN: [(r.id, f"{r.investment_notes} {fmt(r.amount)}") for r in engine.returns],
    }[source_type]
    source = st.selectbox(
        "Source",
        options=[None] + source_options,
        format_func=lambda o: "—" if o is None else o[1],
        disabled=source_type == SourceType.GENERAL,
    )

    with st.form("manual_transaction", clear_on_submit=True):
        tx_date = st.date_input("Date", value=date.today())
        tx_type = st.selectbox(
            "Type",
            options=[t.value for t in ManualTransactionType],
        )
        description = st.text_input("Description")
        amount = st.number_input("Amount", min_value=0.0, step=100.0)
        submitted = st.form_submit_button("Add Transaction", type="primary")

    if submitted:
        try:
            engine.add_manual_transaction(
                as_timestamp(tx_date),
                tx_type,
                description,
                str(amount),
                source_type,
                source[0] if source else None,
            )
        except LedgerError as e:
            st.error(str(e))
        else:
            after_change(app)

    summary = engine.summary()
    cols = st.columns(2)
    cols[0].metric("Total Withdrawn", fmt(summary.total_withdrawals))
    cols[1].metric("Available Balance", fmt(summary.available_balance))

    rows = [
        {
            "date": t.date,
            "type": t.type,
            "description": t.description,
            "source": engine.source_label(t) or "General",
            "amount": float(t.amount),
        }
        for t in reversed(engine.manual_transactions)
    ]
    if rows:
        st.dataframe(rows, use_container_width=True, hide_index=True)


def render_ledger_page(app: TrackerApp, queries: PortfolioQueries, fmt):
    st.title("📜 Transaction Ledger")
    counts = queries.ledger_counts()

    cols = st.columns(3)
    cols[0].metric("Credits", counts.credits)
    cols[1].metric("Debits", counts.debits)
    cols[2].metric("Current Balance", fmt(counts.current_balance))

    rows = [
        {
            "date": e.date,
            "type": e.type,
            "description": e.description,
            "amount": float(e.amount),
            "balance": float(e.balance_after),
        }
        for e in reversed(app.engine.transactions)
    ]
    if rows:
        st.dataframe(rows, use_container_width=True, hide_index=True)
    else:
        st.info("No transactions yet")


def render_charts_page(queries: PortfolioQueries):
    st.title("📉 Performance")

    returns = queries.returns_series()
    if returns.empty:
        st.info("Record your first return to see charts.")
        return

    fig = px.line(
        returns, x="month", y=["received", "expected"],
        title="Monthly Returns", markers=True,
    )
    st.plotly_chart(fig, use_container_width=True)

    fig = px.area(
        queries.profit_series(), x="month", y=["cumulative", "invested"],
        title="Profit Growth",
    )
    st.plotly_chart(fig, use_container_width=True)

    fig = px.bar(
        queries.balance_series(), x="date", y=["balance", "capital"],
        title="Balance Timeline", barmode="group",
    )
    st.plotly_chart(fig, use_container_width=True)


def render_settings_page(app: TrackerApp):
    st.title("⚙️ Settings")

    st.markdown("### Storage")
    status = validate_all_settings()
    st.write(f"Local snapshot: `{get_settings().storage.snapshot_path}`")
    if app.has_mirror:
        st.success("✅ Google Sheets mirror - Connected")
        st.write(f"Pending remote writes: {len(app.outbox)}")
        if st.button("🔄 Sync now"):
            report = run_async(app.sync())
            if report.error:
                st.error(f"Sync stopped: {report.error}")
            else:
                st.success(f"Synced {report.applied} changes")
    elif status.get("google_sheets"):
        st.info("Google Sheets is configured but the mirror is disabled.")
    else:
        st.info("Google Sheets mirror not configured - data is kept locally only.")

    st.markdown("### Activity Log")
    events = run_async(app.recent_audit_events())
    if events:
        st.dataframe(
            [
                {
                    "time": e.timestamp,
                    "event": e.event_type.value,
                    "severity": e.severity.value,
                    "description": e.description,
                    "error": e.error_message or "",
                }
                for e in events
            ],
            use_container_width=True,
            hide_index=True,
        )
    else:
        st.info("No activity recorded yet")

    st.markdown("---")
    st.markdown("### Danger Zone")
    confirm = st.checkbox("I understand this deletes all data permanently")
    if st.button("🗑️ Reset Everything", disabled=not confirm):
        app.engine.reset_all()
        after_change(app)


if __name__ == "__main__":
    main()
