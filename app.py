"""
Portfolio Tracker - Streamlit Application
Transaction ledger, positions, charts, exchange rates and the AI prompt workflow.
"""

import streamlit as st
import pandas as pd
import logging
from datetime import date
from dotenv import load_dotenv

from config import get_settings
from db_engine import init_db
from errors import AuthenticationRequired, InsufficientPosition, PortfolioError, ValidationError
from services import (
    AnalysisService,
    LedgerService,
    MarketDataService,
    PortfolioService,
    format_currency,
    get_currency_service,
    infer_currency
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()

# Configure Streamlit page
st.set_page_config(
    page_title="Portfolio Tracker",
    page_icon="📈",
    layout="wide"
)

# Initialize database
init_db()


# ==================== SESSION STATE ====================
if "pending_analysis" not in st.session_state:
    st.session_state.pending_analysis = None


# ==================== SIDEBAR ====================
def render_sidebar() -> str:
    """Render the sidebar and return the active owner id."""
    st.sidebar.title("⚙️ Settings")

    user_id = st.sidebar.text_input(
        "User ID",
        value=get_settings().default_user_id or "",
        help="Owner of the ledger shown on this dashboard"
    )

    if st.sidebar.button("🔄 Refresh exchange rates", use_container_width=True):
        with st.spinner("Fetching rates..."):
            results = get_currency_service().refresh_rates()
        for r in results:
            st.sidebar.caption(f"{r['from_currency']}/{r['to_currency']}: {r['rate']}")

    return user_id.strip()


# ==================== DASHBOARD ====================
def render_portfolio_summary(dashboard: dict):
    """Render portfolio totals and the current positions table."""
    st.subheader("📊 Portfolio Summary")

    summary = dashboard['summary']
    positions = dashboard['positions']

    if not dashboard['transactions']:
        st.info("No transactions yet. Go to 'Transactions' to record your first buy!")
        return

    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric("Total Value", format_currency(summary.total_value))
    with col2:
        st.metric("Total Cost", format_currency(summary.total_cost))
    with col3:
        st.metric(
            "Unrealized P&L",
            format_currency(summary.unrealized_pnl),
            f"{summary.unrealized_pnl_percent:.2f}%"
        )
    with col4:
        st.metric("Realized P&L", format_currency(summary.realized_pnl))

    st.caption(
        f"Daily P&L: {format_currency(summary.daily_pnl)} | "
        f"{summary.positions_priced}/{summary.positions_total} positions priced"
    )

    if not positions:
        st.info("All positions are closed.")
        return

    rows = []
    for p in positions:
        price = p.current_price or 0.0
        rows.append({
            "Symbol": p.symbol,
            "Type": p.asset_type,
            "Quantity": p.current_quantity,
            "Avg Cost": format_currency(p.average_cost, p.currency),
            "Price": format_currency(price, p.currency) if price > 0 else "N/A",
            "Value": format_currency(p.market_value, p.currency),
            "Value (USD)": format_currency(p.market_value_usd),
            "Unrealized P&L (USD)": format_currency(p.market_value_usd - p.cost_basis_usd) if price > 0 else "N/A",
            "Realized P&L": format_currency(p.total_realized_pnl, p.currency),
            "Trades": p.transaction_count,
        })
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


# ==================== TRANSACTIONS ====================
def render_transaction_form(user_id: str):
    """Render the buy/sell form."""
    st.subheader("➕ Record Transaction")
    currencies = get_settings().supported_currencies

    with st.form("add_transaction_form"):
        col1, col2 = st.columns(2)

        with col1:
            symbol = st.text_input("Symbol*", placeholder="e.g., AAPL, BBCA.JK, BTC-USD")
            transaction_type = st.selectbox("Type*", ["buy", "sell"])
            asset_type = st.selectbox("Asset Type*", ["stock", "crypto"])
            transaction_date = st.date_input("Date", value=date.today())

        with col2:
            quantity = st.number_input("Quantity*", min_value=0.0, step=0.01, value=1.0)
            price = st.number_input("Price per Unit*", min_value=0.0, step=0.01, value=0.0)
            currency = st.selectbox(
                "Currency",
                ["Auto"] + currencies,
                help="Auto infers IDR for .JK symbols and USD otherwise"
            )
            notes = st.text_input("Notes")

        submitted = st.form_submit_button("Record", use_container_width=True)

    if submitted:
        try:
            tx = LedgerService.record_transaction(
                user_id=user_id,
                symbol=symbol,
                transaction_type=transaction_type,
                quantity=quantity,
                price=price,
                asset_type=asset_type,
                currency=infer_currency(symbol) if currency == "Auto" else currency,
                transaction_date=transaction_date,
                notes=notes
            )
        except (InsufficientPosition, ValidationError) as e:
            st.error(f"❌ {e}")
        except PortfolioError as e:
            logger.error(f"Failed to record transaction: {e}")
            st.error("❌ Could not save the transaction. Please try again.")
        else:
            message = f"✅ Recorded {tx.transaction_type} of {tx.quantity:g} {tx.symbol}"
            if tx.transaction_type == "sell":
                message += f" (realized P&L {format_currency(tx.realized_pnl, tx.currency)})"
            st.success(message)
            st.rerun()


def render_transaction_history(transactions: list):
    """Render the ledger, newest first."""
    st.subheader("📜 Transaction History")

    if not transactions:
        st.info("No transactions recorded.")
        return

    rows = [
        {
            "Date": tx.transaction_date,
            "Type": tx.transaction_type.upper(),
            "Symbol": tx.symbol,
            "Quantity": tx.quantity,
            "Price": format_currency(tx.price, tx.currency),
            "Total": format_currency(tx.quantity * tx.price, tx.currency),
            "Realized P&L": format_currency(tx.realized_pnl, tx.currency) if tx.transaction_type == "sell" else "",
            "Notes": tx.notes or "",
        }
        for tx in transactions
    ]
    st.dataframe(pd.DataFrame(rows), use_container_width=True, hide_index=True)


# ==================== CHARTS ====================
def render_charts(dashboard: dict):
    """Render allocation, performance and timeline charts (USD)."""
    st.subheader("📈 Charts")

    allocation = dashboard['allocation']
    performance = dashboard['performance']
    timeline = dashboard['timeline']

    if not (allocation or performance or timeline):
        st.info("Nothing to chart yet.")
        return

    col1, col2 = st.columns(2)
    with col1:
        st.markdown("**Allocation (USD)**")
        if allocation:
            st.bar_chart(pd.DataFrame(allocation).set_index('symbol')['value'])
        else:
            st.info("No priced positions.")

    with col2:
        st.markdown("**Unrealized Return (%)**")
        if performance:
            st.bar_chart(pd.DataFrame(performance).set_index('symbol')['pnl_percent'])
        else:
            st.info("No priced positions.")

    st.markdown("**Invested Over Time (USD)**")
    if timeline:
        df = pd.DataFrame(timeline).set_index('date')
        st.line_chart(df[['total_invested', 'net_invested', 'total_realized']])


# ==================== EXCHANGE RATES ====================
def render_exchange_rates():
    """Render the rate converter and the latest stored rates."""
    st.subheader("💱 Exchange Rates")
    currency_service = get_currency_service()
    currencies = get_settings().supported_currencies

    col1, col2, col3 = st.columns(3)
    with col1:
        amount = st.number_input("Amount", min_value=0.0, value=1.0, step=1.0)
    with col2:
        from_currency = st.selectbox("From", currencies, index=currencies.index("IDR") if "IDR" in currencies else 0)
    with col3:
        to_currency = st.selectbox("To", currencies, index=0)

    converted = currency_service.convert(amount, from_currency, to_currency)
    rate = currency_service.get_display_rate(from_currency, to_currency)
    st.metric(
        f"{format_currency(amount, from_currency)} in {to_currency}",
        format_currency(converted, to_currency),
        f"1 {from_currency} = {rate} {to_currency}",
        delta_color="off"
    )

    with st.expander("Set a manual rate"):
        with st.form("manual_rate_form"):
            manual_rate = st.number_input(
                f"1 {from_currency} = ? {to_currency}",
                min_value=0.0,
                format="%.8f"
            )
            if st.form_submit_button("Save Rate"):
                try:
                    currency_service.update_rate(from_currency, to_currency, manual_rate)
                    st.success("✅ Rate saved")
                except PortfolioError as e:
                    st.error(f"❌ {e}")

    recent = currency_service.recent_rates()
    if recent:
        st.markdown("**Recently stored rates**")
        st.dataframe(
            pd.DataFrame([
                {
                    "Pair": f"{r.from_currency}/{r.to_currency}",
                    "Rate": r.rate,
                    "Source": r.source,
                    "Date": r.rate_date,
                }
                for r in recent
            ]),
            use_container_width=True,
            hide_index=True
        )


# ==================== AI ANALYSIS ====================
def render_ai_analysis(user_id: str):
    """Render the copy/paste AI analysis workflow."""
    st.subheader("🤖 AI Analysis")
    st.markdown(
        "Generate a prompt, paste it into your AI assistant of choice, then paste "
        "the response back here to keep it with your portfolio history."
    )

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Generate Portfolio Prompt", use_container_width=True):
            try:
                with st.spinner("Pricing positions..."):
                    prompt, analysis_id = AnalysisService.create_portfolio_analysis(user_id)
                st.session_state.pending_analysis = (prompt, analysis_id)
            except ValidationError as e:
                st.warning(f"⚠️ {e}")

    with col2:
        stock_symbol = st.text_input("Symbol for stock prompt", placeholder="e.g., NVDA")
        if st.button("Generate Stock Prompt", use_container_width=True) and stock_symbol:
            quote = MarketDataService.get_price(stock_symbol)
            if quote is None:
                st.error(f"❌ Could not retrieve a price for {stock_symbol.upper()}")
            else:
                prompt, analysis_id = AnalysisService.create_stock_analysis(
                    user_id, quote.symbol, quote.price, quote.currency
                )
                st.session_state.pending_analysis = (prompt, analysis_id)

    pending = st.session_state.pending_analysis
    if pending:
        prompt, analysis_id = pending
        st.code(prompt, language=None)
        if analysis_id is None:
            st.warning("⚠️ The prompt could not be saved; the response cannot be stored.")
        else:
            result = st.text_area("Paste the AI response here", height=250, key=f"result_{analysis_id}")
            if st.button("Save Response"):
                try:
                    AnalysisService.save_result(user_id, analysis_id, result)
                    st.session_state.pending_analysis = None
                    st.success("✅ Response saved")
                    st.rerun()
                except ValidationError as e:
                    st.error(f"❌ {e}")

    st.markdown("---")
    st.markdown("### Past Analyses")
    analyses = AnalysisService.list_analyses(user_id)
    if not analyses:
        st.info("No analyses yet.")
    for analysis in analyses:
        label = analysis.analysis_type.replace("_", " ").title()
        with st.expander(f"{analysis.created_at:%Y-%m-%d %H:%M} | {label}"):
            st.markdown("**Prompt**")
            st.code(analysis.prompt_used, language=None)
            st.markdown("**Response**")
            st.markdown(analysis.result or "_No response saved yet._")


# ==================== MAIN APP ====================
def main():
    """Main application entry point."""
    st.title("📈 Portfolio Tracker")
    st.markdown("*Stocks and crypto across currencies, valued in USD*")

    user_id = render_sidebar()
    if not user_id:
        st.info("Enter your user ID in the sidebar to load your portfolio.")
        return

    try:
        with st.spinner("Loading portfolio..."):
            dashboard = PortfolioService.get_dashboard(user_id)
    except AuthenticationRequired as e:
        st.error(f"❌ {e}")
        return

    tab1, tab2, tab3, tab4, tab5 = st.tabs([
        "📊 Dashboard", "📜 Transactions", "📈 Charts", "💱 Exchange Rates", "🤖 AI Analysis"
    ])

    with tab1:
        render_portfolio_summary(dashboard)

    with tab2:
        render_transaction_form(user_id)
        st.markdown("---")
        render_transaction_history(dashboard['transactions'])

    with tab3:
        render_charts(dashboard)

    with tab4:
        render_exchange_rates()

    with tab5:
        render_ai_analysis(user_id)

    # Footer
    st.markdown("---")
    st.markdown(
        "<div style='text-align: center; color: gray;'>"
        "⚠️ Portfolio Tracker is for informational purposes only. Not financial advice.</div>",
        unsafe_allow_html=True
    )


if __name__ == "__main__":
    main()
