"""
Benchmark targets and constants for the GTM throughput calculator.
These values are the fallbacks used when a benchmark is not supplied, and the
calendar constants the run-rate projections depend on.
"""

# Stage Conversion Targets (%)
LEAD_TO_MQL_TARGET = 25.0
MQL_TO_SQL_TARGET = 40.0
SQL_TO_OPP_TARGET = 35.0
OPP_TO_PROPOSAL_TARGET = 50.0
PROPOSAL_TO_WIN_TARGET = 25.0

# Customer Success
NRR_TARGET = 110.0  # 110% = strong net retention

# Revenue Horizon
CURRENT_RECURRING_REVENUE = 0.0
TARGET_RECURRING_REVENUE = 0.0
TIMEFRAME_WEEKS = 26  # ~6 months
AVG_DEAL_SIZE_TARGET = 0.0  # ACV benchmark, 0 = not set

# Calendar
WEEKS_PER_YEAR = 52
MONTHS_PER_YEAR = 12
WEEKS_PER_MONTH = 4.33

# Currencies (display formatting only)
DEFAULT_CURRENCY = "EUR"
CURRENCY_SYMBOLS = {
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
}

# Funnel stages in fixed order: (key, label, upstream field, downstream field, target field)
FUNNEL_STAGES = [
    ('lead_to_mql', 'Leads → MQL', 'leads', 'mqls', 'lead_to_mql_target'),
    ('mql_to_sql', 'MQL → SQL', 'mqls', 'sqls', 'mql_to_sql_target'),
    ('sql_to_opp', 'SQL → Opp', 'sqls', 'opportunities', 'sql_to_opp_target'),
    ('opp_to_proposal', 'Opp → Proposal', 'opportunities', 'proposals', 'opp_to_proposal_target'),
    ('proposal_to_win', 'Proposal → Win', 'proposals', 'wins', 'proposal_to_win_target'),
]
STAGE_LABELS = {key: label for key, label, _, _, _ in FUNNEL_STAGES}

# Bottleneck sentinel when every stage meets its target
NO_BOTTLENECK = "none"
