import streamlit as st
import pandas as pd
import os
import logging
from dataclasses import asdict
from dotenv import load_dotenv
import openai
import plotly.express as px
import plotly.graph_objects as go
import indicators # Scenario calculation engine
import inputs # Raw input sanitization
import benchmark_targets # For defaults and labels in display

# Load environment variables
load_dotenv()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# --- Page Configuration ---
st.set_page_config(
    page_title="GTM Throughput Calculator",
    page_icon="📈",
    layout="wide",
    initial_sidebar_state="expanded"
)

# --- Global Styling ---
st.markdown("""
    <style>
        /* Metric card styling */
        .metric-card {
            background-color: #FFFFFF;
            border: 1px solid #e0e0e0;
            border-radius: 8px;
            padding: 20px;
            margin-bottom: 10px;
            box-shadow: 0 4px 6px rgba(0,0,0,0.04);
            min-height: 150px;
        }
        .metric-card-title {
            font-size: 0.95em;
            color: #4A5568;
            margin-bottom: 8px;
            font-weight: 500;
        }
        .metric-card-value {
            font-size: 1.8em;
            font-weight: 700;
            color: #1A202C;
            font-variant-numeric: tabular-nums;
        }
        .metric-card-delta {
            font-size: 0.85em;
            color: #718096;
        }
        .metric-card.good { border-left: 5px solid #48BB78; }
        .metric-card.warning { border-left: 5px solid #ECC94B; }
        .metric-card.danger { border-left: 5px solid #F56565; }

        /* Section headers */
        .section-header {
            font-size: 1.5em;
            font-weight: 600;
            color: #2D3748;
            margin-top: 20px;
            margin-bottom: 15px;
            border-bottom: 2px solid #CBD5E0;
            padding-bottom: 5px;
        }

        @media (max-width: 768px) {
            .metric-card { padding: 12px; margin-bottom: 8px; min-height: 0; }
            .metric-card-title { font-size: 0.85em; margin-bottom: 4px; }
            .metric-card-value { font-size: 1.5em; }
            .section-header { font-size: 1.25em; margin-top: 15px; margin-bottom: 10px; }
        }
    </style>
""", unsafe_allow_html=True)

# --- Secret/Env Helper Functions ---
def get_env_var(key, default=None):
    if hasattr(st, "secrets") and key in st.secrets:
        return st.secrets[key]
    return os.getenv(key, default)

# --- Session State Initialization ---
def default_funnel_values():
    return {
        'leads': "2000", 'mqls': "500", 'sqls': "200", 'opportunities': "80",
        'proposals': "40", 'wins': "10", 'new_recurring_revenue': "500000", 'period_weeks': "12",
    }

def default_benchmark_values():
    defaults = indicators.BenchmarkTargets()
    values = {key: str(value) for key, value in asdict(defaults).items()}
    values['currency_code'] = inputs.resolve_currency_code(get_env_var('DEFAULT_CURRENCY', benchmark_targets.DEFAULT_CURRENCY))
    return values

def init_session_state():
    if 'funnel_values' not in st.session_state:
        st.session_state.funnel_values = default_funnel_values()
    if 'benchmark_values' not in st.session_state:
        st.session_state.benchmark_values = default_benchmark_values()
    if 'show_benchmarks' not in st.session_state:
        st.session_state.show_benchmarks = True
    if 'openai_client' not in st.session_state:
        api_key = get_env_var('OPENAI_API_KEY')
        try:
            st.session_state.openai_client = openai.OpenAI(api_key=api_key) if api_key else None
        except openai.OpenAIError as e:
            logger.warning("OpenAI client could not be initialized: %s", e)
            st.session_state.openai_client = None
    if 'current_page' not in st.session_state:
        st.session_state.current_page = "🏠 Overview"
    if 'ai_chat_history' not in st.session_state:
        st.session_state.ai_chat_history = []

# --- Helper Functions for Display ---
def format_currency(value, currency_code, decimals=0, default_na="N/A"):
    if value is None or pd.isna(value): return default_na
    symbol = benchmark_targets.CURRENCY_SYMBOLS.get(currency_code, "")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{decimals}f}"

def format_percentage(value, decimals=1, default_na="N/A"):
    if value is None or pd.isna(value): return default_na
    return f"{value:.{decimals}f}%"

def format_number(value, decimals=0, default_na="N/A"):
    if value is None or pd.isna(value): return default_na
    return f"{value:,.{decimals}f}"

def get_shortfall_card_class(shortfall, warning_band):
    # shortfall > 0 means behind; small shortfalls read as warning
    if shortfall <= 0: return "good"
    if shortfall <= warning_band: return "warning"
    return "danger"

def render_metric_card(title, value, delta=None, delta_label=None, card_class=""):
    delta_html = ""
    if delta is not None and delta_label:
        delta_html = f"<div class='metric-card-delta'>{delta} {delta_label}</div>"
    st.markdown(f"""
        <div class="metric-card {card_class}">
            <div class="metric-card-title">{title}</div>
            <div class="metric-card-value">{value}</div>
            {delta_html}
        </div>
    """, unsafe_allow_html=True)

# --- Input Collection ---
def render_text_field(container, label, store, key, help=None):
    store[key] = container.text_input(label, value=store.get(key, ""), key=f"input_{key}", help=help)

def render_funnel_inputs():
    st.sidebar.subheader("🔻 Funnel (this period)")
    store = st.session_state.funnel_values
    render_text_field(st.sidebar, "Leads", store, 'leads')
    render_text_field(st.sidebar, "MQLs", store, 'mqls')
    render_text_field(st.sidebar, "SQLs", store, 'sqls')
    render_text_field(st.sidebar, "Opportunities", store, 'opportunities')
    render_text_field(st.sidebar, "Proposals", store, 'proposals')
    render_text_field(st.sidebar, "Wins", store, 'wins')
    render_text_field(st.sidebar, "New ARR closed", store, 'new_recurring_revenue')
    render_text_field(st.sidebar, "Period length (weeks)", store, 'period_weeks', help="e.g. 12 weeks ≈ one quarter")
    return inputs.build_funnel_period(store)

def render_benchmarks_panel():
    st.markdown("<div class='section-header'>Benchmarks and targets</div>", unsafe_allow_html=True)
    header_cols = st.columns([5, 1])
    with header_cols[0]:
        st.caption("Set your own benchmark conversion rates and ARR targets. These act as the "
                   "“ideal state” the calculator compares your recent performance against.")
    with header_cols[1]:
        if st.button("Hide" if st.session_state.show_benchmarks else "Show", key="toggle_benchmarks"):
            st.session_state.show_benchmarks = not st.session_state.show_benchmarks
            st.rerun()

    store = st.session_state.benchmark_values
    if st.session_state.show_benchmarks:
        cols = st.columns(4)
        with cols[0]:
            st.markdown("**Marketing**")
            render_text_field(st, "Leads → MQL (%)", store, 'lead_to_mql_target')
            render_text_field(st, "MQL → SQL (%)", store, 'mql_to_sql_target')
        with cols[1]:
            st.markdown("**Sales**")
            render_text_field(st, "SQL → Opp (%)", store, 'sql_to_opp_target')
            render_text_field(st, "Opp → Proposal (%)", store, 'opp_to_proposal_target')
            render_text_field(st, "Proposal → Win (%)", store, 'proposal_to_win_target')
        with cols[2]:
            st.markdown("**Customer Success**")
            render_text_field(st, "NRR target (%)", store, 'nrr_target', help="e.g. 110% for strong net retention")
        with cols[3]:
            st.markdown("**Revenue**")
            currencies = list(benchmark_targets.CURRENCY_SYMBOLS)
            current_code = store.get('currency_code', benchmark_targets.DEFAULT_CURRENCY)
            store['currency_code'] = st.selectbox(
                "Currency", currencies,
                index=currencies.index(current_code) if current_code in currencies else 0,
                key="input_currency_code"
            )
            render_text_field(st, "Current ARR", store, 'current_recurring_revenue')
            render_text_field(st, "Target ARR", store, 'target_recurring_revenue')
            render_text_field(st, "Time to target (weeks)", store, 'timeframe_weeks', help="e.g. 26 weeks ≈ 6 months")
            render_text_field(st, "Target ACV", store, 'avg_deal_size_target', help="Benchmark average contract value")
    return inputs.build_benchmark_targets(store)

# --- Page Rendering Functions ---
def render_overview_page(result, funnel, targets):
    st.title("🏠 Throughput & ARR Overview")
    code = targets.currency_code

    st.markdown("<div class='section-header'>Scenario Snapshot</div>", unsafe_allow_html=True)
    cols = st.columns(5)
    with cols[0]:
        render_metric_card("Annualized Net New ARR", format_currency(result.annualized_net_new_revenue, code),
                           delta=format_currency(result.current_monthly_net_new, code), delta_label="per month")
    with cols[1]:
        render_metric_card("Projected ARR at Horizon", format_currency(result.projected_revenue_at_horizon, code),
                           delta=format_number(targets.timeframe_weeks), delta_label="week horizon")
    with cols[2]:
        gap = result.gap_to_target
        render_metric_card("Gap to Target", "Target met" if gap <= 0 else format_currency(gap, code),
                           delta=format_currency(abs(gap), code), delta_label="ahead of target" if gap <= 0 else "short of target",
                           card_class=get_shortfall_card_class(gap, 0.1 * targets.target_recurring_revenue))
    with cols[3]:
        run_rate_gap = result.monthly_run_rate_gap
        render_metric_card("Monthly Run-Rate Gap", format_currency(run_rate_gap, code),
                           delta=format_currency(result.required_monthly_net_new, code), delta_label="needed per month",
                           card_class=get_shortfall_card_class(run_rate_gap, 0.1 * result.required_monthly_net_new))
    with cols[4]:
        no_bottleneck = result.bottleneck_stage == benchmark_targets.NO_BOTTLENECK
        render_metric_card("Bottleneck Stage",
                           "None" if no_bottleneck else benchmark_targets.STAGE_LABELS[result.bottleneck_stage],
                           delta=None if no_bottleneck else format_percentage(result.stage_rates()[result.bottleneck_stage]),
                           delta_label=None if no_bottleneck else "actual conversion",
                           card_class="good" if no_bottleneck else "warning")

    st.markdown("<div class='section-header'>Where you stand versus target</div>", unsafe_allow_html=True)
    needed = result.needed_net_new_total
    ov_cols = st.columns(4)
    with ov_cols[0]: st.metric("Current ARR", format_currency(targets.current_recurring_revenue, code, 2), help="Baseline at the start of the period.")
    with ov_cols[1]: st.metric("ARR Target", format_currency(targets.target_recurring_revenue, code, 2), help=f"{format_number(targets.timeframe_weeks)} week timeframe")
    with ov_cols[2]:
        st.metric("Gap to Target", "On or above target" if needed <= 0 else format_currency(needed, code, 2),
                  help="You have already reached this target." if needed <= 0 else "Additional ARR needed.")
    with ov_cols[3]:
        st.metric("Required ARR / week", "-" if needed <= 0 else format_currency(round(result.required_weekly_net_new, 2), code, 2),
                  help="No extra weekly ARR required." if needed <= 0 else "Average incremental ARR needed each week.")

    st.markdown("<div class='section-header'>Deal Size</div>", unsafe_allow_html=True)
    deal_cols = st.columns(3)
    with deal_cols[0]: st.metric("Average Deal Size", format_currency(result.average_deal_size, code))
    with deal_cols[1]:
        if targets.avg_deal_size_target > 0:
            st.metric("Target ACV", format_currency(targets.avg_deal_size_target, code),
                      delta=format_currency(-result.deal_size_gap, code) + " vs target")
        else:
            st.metric("Target ACV", "Not set")
    with deal_cols[2]: st.metric("Lead → Win", format_percentage(result.lead_to_win_rate, 2), help=f"NRR target: {format_percentage(targets.nrr_target, 0)}")

def style_bottleneck_row(row):
    color = '#ffcccb' if row['Is Bottleneck'] else ''
    return [f'background-color: {color}' if color else '' for _ in row]

def render_funnel_page(result, funnel, targets):
    st.title("🔻 Funnel Diagnosis")
    breakdown_df = indicators.get_stage_breakdown(result, targets)

    if result.bottleneck_stage == benchmark_targets.NO_BOTTLENECK:
        st.success("🎉 Every stage is at or above its benchmark target.")
    else:
        row = breakdown_df[breakdown_df['Is Bottleneck']].iloc[0]
        st.warning(f"Weakest stage: **{row['Stage']}** at {format_percentage(row['Actual (%)'])} "
                   f"vs {format_percentage(row['Target (%)'])} target ({format_number(row['Shortfall (pts)'], 1)} pts short).")

    st.subheader("Stage Conversion vs Benchmark")
    display_df = breakdown_df.drop(columns=['Stage Key'])
    st.dataframe(
        display_df.style.apply(style_bottleneck_row, axis=1).format({
            'Actual (%)': format_percentage, 'Target (%)': format_percentage,
            'Shortfall (pts)': lambda x: format_number(x, 1),
        }),
        width="stretch", hide_index=True
    )

    col_chart1, col_chart2 = st.columns(2)
    with col_chart1:
        volumes = [funnel.leads, funnel.mqls, funnel.sqls, funnel.opportunities, funnel.proposals, funnel.wins]
        fig_funnel = go.Figure(go.Funnel(
            y=['Leads', 'MQLs', 'SQLs', 'Opportunities', 'Proposals', 'Wins'], x=volumes,
            textinfo="value+percent previous"
        ))
        fig_funnel.update_layout(title='Funnel Volumes', height=450)
        st.plotly_chart(fig_funnel, width="stretch")
    with col_chart2:
        chart_df = breakdown_df.melt(id_vars=['Stage'], value_vars=['Actual (%)', 'Target (%)'],
                                     var_name='Series', value_name='Rate (%)')
        fig_rates = px.bar(chart_df, x='Stage', y='Rate (%)', color='Series', barmode='group',
                           title='Actual vs Target Conversion', text_auto='.1f',
                           color_discrete_map={'Actual (%)': '#4299E1', 'Target (%)': '#A0AEC0'})
        fig_rates.update_layout(height=450)
        st.plotly_chart(fig_rates, width="stretch")

# --- AI Assistant Functions ---
def build_scenario_context(result, funnel, targets):
    return (f"Funnel Inputs:\n{asdict(funnel)}\n\nBenchmarks:\n{asdict(targets)}\n\n"
            f"Scenario Results:\n{asdict(result)}")

def ask_scenario_assistant(openai_client, context, question):
    try:
        completion = openai_client.chat.completions.create(
            model=get_env_var('OPENAI_MODEL', 'gpt-4o'),
            messages=[
                {"role": "system", "content": "You are a SaaS go-to-market planning assistant. Conversion rates are percentages; the bottleneck is the stage furthest below its benchmark. Be concise and specific."},
                {"role": "user", "content": f"{context}\n\nQuestion: {question}"}
            ],
            temperature=0.3
        )
        return completion.choices[0].message.content
    except openai.OpenAIError as e:
        logger.error("Scenario assistant request failed: %s", e)
        return f"Error querying OpenAI: {str(e)}"

def render_assistant_page(result, funnel, targets):
    st.title("🧪 Scenario Assistant")
    st.markdown("Ask about tradeoffs in this scenario: which stage to fix first, what pace is needed, and so on.")
    if not st.session_state.openai_client:
        st.warning("OpenAI client not initialized. Set OPENAI_API_KEY to enable the scenario assistant.")
        return

    for chat in st.session_state.ai_chat_history:
        with st.chat_message(chat["role"]):
            st.markdown(chat["content"])

    prompt = st.chat_input("Ask about this scenario...")
    if prompt:
        st.session_state.ai_chat_history.append({"role": "user", "content": prompt})
        with st.chat_message("user"):
            st.markdown(prompt)
        with st.chat_message("assistant"):
            with st.spinner("Thinking..."):
                context = build_scenario_context(result, funnel, targets)
                response_text = ask_scenario_assistant(st.session_state.openai_client, context, prompt)
            st.markdown(response_text)
        st.session_state.ai_chat_history.append({"role": "assistant", "content": response_text})

# --- Main Application ---
PAGES = {
    "🏠 Overview": render_overview_page,
    "🔻 Funnel Diagnosis": render_funnel_page,
    "🧪 Scenario Assistant": render_assistant_page,
}

def main():
    init_session_state()

    st.sidebar.title("GTM Throughput Calculator")
    st.sidebar.markdown("---")
    st.sidebar.subheader("Navigation")
    current_page_key_index = list(PAGES.keys()).index(st.session_state.current_page) if st.session_state.current_page in PAGES else 0
    st.session_state.current_page = st.sidebar.radio(
        "Go to", list(PAGES.keys()), index=current_page_key_index, key="navigation_radio"
    )
    st.sidebar.markdown("---")

    funnel = render_funnel_inputs()
    if st.sidebar.button("↩️ Reset Inputs"):
        st.session_state.funnel_values = default_funnel_values()
        st.session_state.benchmark_values = default_benchmark_values()
        for key in list(st.session_state.keys()):
            if key.startswith("input_"):
                del st.session_state[key]
        st.rerun()

    targets = render_benchmarks_panel()

    # Recomputed on every run, never cached
    result = indicators.calculate_scenario(funnel, targets)
    logger.debug("Scenario recalculated: bottleneck=%s", result.bottleneck_stage)

    PAGES[st.session_state.current_page](result, funnel, targets)

if __name__ == "__main__":
    main()
