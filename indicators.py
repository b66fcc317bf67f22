from dataclasses import dataclass

import pandas as pd

from benchmark_targets import (
    LEAD_TO_MQL_TARGET, MQL_TO_SQL_TARGET, SQL_TO_OPP_TARGET,
    OPP_TO_PROPOSAL_TARGET, PROPOSAL_TO_WIN_TARGET, NRR_TARGET,
    CURRENT_RECURRING_REVENUE, TARGET_RECURRING_REVENUE, TIMEFRAME_WEEKS,
    AVG_DEAL_SIZE_TARGET, DEFAULT_CURRENCY,
    WEEKS_PER_YEAR, MONTHS_PER_YEAR, WEEKS_PER_MONTH,
    FUNNEL_STAGES, NO_BOTTLENECK
)

# --- Records ---

@dataclass(frozen=True)
class FunnelPeriod:
    """Funnel volumes and new recurring revenue observed over `period_weeks`."""
    leads: float = 0.0
    mqls: float = 0.0
    sqls: float = 0.0
    opportunities: float = 0.0
    proposals: float = 0.0
    wins: float = 0.0
    new_recurring_revenue: float = 0.0
    period_weeks: float = 1.0


@dataclass(frozen=True)
class BenchmarkTargets:
    """Target stage conversion rates (%) and the revenue horizon to plan against."""
    lead_to_mql_target: float = LEAD_TO_MQL_TARGET
    mql_to_sql_target: float = MQL_TO_SQL_TARGET
    sql_to_opp_target: float = SQL_TO_OPP_TARGET
    opp_to_proposal_target: float = OPP_TO_PROPOSAL_TARGET
    proposal_to_win_target: float = PROPOSAL_TO_WIN_TARGET
    current_recurring_revenue: float = CURRENT_RECURRING_REVENUE
    target_recurring_revenue: float = TARGET_RECURRING_REVENUE
    timeframe_weeks: float = TIMEFRAME_WEEKS
    currency_code: str = DEFAULT_CURRENCY
    nrr_target: float = NRR_TARGET
    avg_deal_size_target: float = AVG_DEAL_SIZE_TARGET


@dataclass(frozen=True)
class ScenarioResult:
    lead_to_mql_rate: float
    mql_to_sql_rate: float
    sql_to_opp_rate: float
    opp_to_proposal_rate: float
    proposal_to_win_rate: float
    annualized_net_new_revenue: float
    projected_revenue_at_horizon: float
    gap_to_target: float
    current_monthly_net_new: float
    required_monthly_net_new: float
    monthly_run_rate_gap: float
    bottleneck_stage: str
    needed_net_new_total: float = 0.0
    required_weekly_net_new: float = 0.0
    lead_to_win_rate: float = 0.0
    average_deal_size: float = 0.0
    deal_size_gap: float = 0.0

    def stage_rates(self):
        return {key: getattr(self, f"{key}_rate") for key, _, _, _, _ in FUNNEL_STAGES}

# --- Helper Functions ---

def conversion_rate(upstream, downstream):
    # Unreachable stages read as 0%, never NaN or inf
    if upstream <= 0:
        return 0.0
    return downstream / upstream * 100


def get_stage_targets(targets):
    return {key: getattr(targets, target_field) for key, _, _, _, target_field in FUNNEL_STAGES}

# --- Main Indicator Functions ---

def get_conversion_rates(funnel):
    """Conversion rate (%) for each adjacent stage pair, keyed by stage in funnel order."""
    return {
        key: conversion_rate(getattr(funnel, upstream), getattr(funnel, downstream))
        for key, _, upstream, downstream, _ in FUNNEL_STAGES
    }


def get_revenue_projection(funnel, targets):
    """
    Linear run-rate projection of recurring revenue over the target timeframe.

    The observed period is annualized to a 52-week year, extrapolated over
    `timeframe_weeks`, and compared with the target both as a total gap and as
    the monthly pace needed to close it.
    """
    effective_period_weeks = funnel.period_weeks if funnel.period_weeks > 0 else 1
    annualized = funnel.new_recurring_revenue * (WEEKS_PER_YEAR / effective_period_weeks)
    projected = targets.current_recurring_revenue + annualized * (targets.timeframe_weeks / WEEKS_PER_YEAR)

    current_monthly = annualized / MONTHS_PER_YEAR
    timeframe_months = targets.timeframe_weeks / WEEKS_PER_MONTH
    needed_total = max(0, targets.target_recurring_revenue - targets.current_recurring_revenue)
    required_monthly = needed_total / timeframe_months if timeframe_months > 0 else 0
    required_weekly = needed_total / targets.timeframe_weeks if targets.timeframe_weeks > 0 else 0

    return {
        'annualized_net_new_revenue': annualized,
        'projected_revenue_at_horizon': projected,
        'gap_to_target': targets.target_recurring_revenue - projected,
        'current_monthly_net_new': current_monthly,
        'required_monthly_net_new': required_monthly,
        'monthly_run_rate_gap': required_monthly - current_monthly,
        'needed_net_new_total': needed_total,
        'required_weekly_net_new': required_weekly,
    }


def get_stage_shortfalls(rates, targets):
    stage_targets = get_stage_targets(targets)
    return {key: stage_targets[key] - rates[key] for key, _, _, _, _ in FUNNEL_STAGES}


def get_bottleneck_stage(rates, targets):
    """Stage with the largest shortfall against its target, earliest stage on ties."""
    shortfalls = get_stage_shortfalls(rates, targets)
    worst_stage, worst_shortfall = None, None
    for key, shortfall in shortfalls.items():
        if worst_shortfall is None or shortfall > worst_shortfall:
            worst_stage, worst_shortfall = key, shortfall
    if worst_shortfall is not None and worst_shortfall > 0:
        return worst_stage
    return NO_BOTTLENECK


def get_deal_size_metrics(funnel, targets):
    average_deal_size = funnel.new_recurring_revenue / funnel.wins if funnel.wins > 0 else 0.0
    return {
        'average_deal_size': average_deal_size,
        'deal_size_gap': targets.avg_deal_size_target - average_deal_size,
    }


def calculate_scenario(funnel, targets=None):
    if targets is None:
        targets = BenchmarkTargets()
    rates = get_conversion_rates(funnel)
    projection = get_revenue_projection(funnel, targets)
    deal_size = get_deal_size_metrics(funnel, targets)
    return ScenarioResult(
        lead_to_mql_rate=rates['lead_to_mql'],
        mql_to_sql_rate=rates['mql_to_sql'],
        sql_to_opp_rate=rates['sql_to_opp'],
        opp_to_proposal_rate=rates['opp_to_proposal'],
        proposal_to_win_rate=rates['proposal_to_win'],
        bottleneck_stage=get_bottleneck_stage(rates, targets),
        lead_to_win_rate=conversion_rate(funnel.leads, funnel.wins),
        **projection,
        **deal_size
    )


def get_stage_breakdown(result, targets):
    """One row per funnel stage: actual vs target rate, shortfall and bottleneck flag."""
    rates = result.stage_rates()
    stage_targets = get_stage_targets(targets)
    rows = []
    for key, label, _, _, _ in FUNNEL_STAGES:
        rows.append({
            'Stage Key': key,
            'Stage': label,
            'Actual (%)': rates[key],
            'Target (%)': stage_targets[key],
            'Shortfall (pts)': stage_targets[key] - rates[key],
            'Is Bottleneck': key == result.bottleneck_stage,
        })
    return pd.DataFrame(rows)
