import dataclasses
import math

import pytest

import indicators
from benchmark_targets import NO_BOTTLENECK
from indicators import BenchmarkTargets, FunnelPeriod, calculate_scenario


@pytest.fixture
def example_funnel():
    return FunnelPeriod(
        leads=2000, mqls=500, sqls=200, opportunities=80, proposals=40, wins=10,
        new_recurring_revenue=500000, period_weeks=12,
    )


@pytest.fixture
def example_targets():
    return BenchmarkTargets(
        current_recurring_revenue=1500000, target_recurring_revenue=2500000, timeframe_weeks=52,
    )


# --- Conversion rates ---

def test_example_conversion_rates(example_funnel, example_targets):
    result = calculate_scenario(example_funnel, example_targets)
    assert result.lead_to_mql_rate == pytest.approx(25.0)
    assert result.mql_to_sql_rate == pytest.approx(40.0)
    assert result.sql_to_opp_rate == pytest.approx(40.0)
    assert result.opp_to_proposal_rate == pytest.approx(50.0)
    assert result.proposal_to_win_rate == pytest.approx(25.0)


def test_rates_keep_fractional_percentages():
    assert indicators.conversion_rate(3, 1) == pytest.approx(100 / 3)


@pytest.mark.parametrize("upstream", [0, 0.0, -5])
def test_non_positive_upstream_gives_zero_rate(upstream):
    rate = indicators.conversion_rate(upstream, 10)
    assert rate == 0
    assert not math.isnan(rate) and not math.isinf(rate)


def test_zero_sqls_gives_zero_rates(example_funnel):
    funnel = dataclasses.replace(example_funnel, sqls=0)
    result = calculate_scenario(funnel)
    assert result.mql_to_sql_rate == 0
    assert result.sql_to_opp_rate == 0


def test_negative_downstream_propagates():
    rates = indicators.get_conversion_rates(FunnelPeriod(leads=100, mqls=-10))
    assert rates['lead_to_mql'] == pytest.approx(-10.0)


def test_rates_keyed_in_funnel_order(example_funnel):
    rates = indicators.get_conversion_rates(example_funnel)
    assert list(rates) == ['lead_to_mql', 'mql_to_sql', 'sql_to_opp', 'opp_to_proposal', 'proposal_to_win']


# --- Revenue projection ---

def test_example_annualized_and_projection(example_funnel, example_targets):
    result = calculate_scenario(example_funnel, example_targets)
    assert result.annualized_net_new_revenue == pytest.approx(500000 * 52 / 12)
    assert result.annualized_net_new_revenue == pytest.approx(2166666.67, abs=0.01)
    assert result.projected_revenue_at_horizon == pytest.approx(3666666.67, abs=0.01)
    assert result.gap_to_target == pytest.approx(-1166666.67, abs=0.01)


@pytest.mark.parametrize("period_weeks", [0, -3])
def test_non_positive_period_is_treated_as_one_week(period_weeks):
    funnel = FunnelPeriod(new_recurring_revenue=1000, period_weeks=period_weeks)
    result = calculate_scenario(funnel)
    assert result.annualized_net_new_revenue == pytest.approx(1000 * 52)


def test_gap_to_target_sign():
    funnel = FunnelPeriod(new_recurring_revenue=1000, period_weeks=1)
    on_target = calculate_scenario(funnel, BenchmarkTargets(target_recurring_revenue=52000, timeframe_weeks=52))
    short = calculate_scenario(funnel, BenchmarkTargets(target_recurring_revenue=60000, timeframe_weeks=52))
    exceeded = calculate_scenario(funnel, BenchmarkTargets(target_recurring_revenue=40000, timeframe_weeks=52))
    assert on_target.gap_to_target == 0
    assert short.gap_to_target == pytest.approx(8000)
    assert exceeded.gap_to_target == pytest.approx(-12000)


def test_monthly_pace(example_funnel, example_targets):
    result = calculate_scenario(example_funnel, example_targets)
    required = 1000000 / (52 / 4.33)
    assert result.current_monthly_net_new == pytest.approx(500000 * 52 / 12 / 12)
    assert result.required_monthly_net_new == pytest.approx(required)
    assert result.monthly_run_rate_gap == pytest.approx(required - result.current_monthly_net_new)
    assert result.monthly_run_rate_gap < 0


def test_target_below_current_needs_nothing():
    targets = BenchmarkTargets(current_recurring_revenue=500, target_recurring_revenue=100, timeframe_weeks=26)
    result = calculate_scenario(FunnelPeriod(), targets)
    assert result.needed_net_new_total == 0
    assert result.required_monthly_net_new == 0
    assert result.required_weekly_net_new == 0
    assert result.gap_to_target == pytest.approx(-400)


def test_zero_timeframe_requires_no_pace():
    targets = BenchmarkTargets(current_recurring_revenue=100, target_recurring_revenue=1000, timeframe_weeks=0)
    result = calculate_scenario(FunnelPeriod(new_recurring_revenue=50, period_weeks=4), targets)
    assert result.required_monthly_net_new == 0
    assert result.required_weekly_net_new == 0
    assert result.projected_revenue_at_horizon == pytest.approx(100)
    assert result.needed_net_new_total == pytest.approx(900)


def test_required_weekly_net_new():
    targets = BenchmarkTargets(current_recurring_revenue=1000, target_recurring_revenue=27000, timeframe_weeks=26)
    result = calculate_scenario(FunnelPeriod(), targets)
    assert result.required_weekly_net_new == pytest.approx(1000)


# --- Bottleneck diagnosis ---

def test_example_defaults_have_no_bottleneck(example_funnel):
    assert calculate_scenario(example_funnel).bottleneck_stage == NO_BOTTLENECK


def test_targets_equal_to_actuals_have_no_bottleneck(example_funnel):
    rates = calculate_scenario(example_funnel).stage_rates()
    targets = BenchmarkTargets(
        lead_to_mql_target=rates['lead_to_mql'], mql_to_sql_target=rates['mql_to_sql'],
        sql_to_opp_target=rates['sql_to_opp'], opp_to_proposal_target=rates['opp_to_proposal'],
        proposal_to_win_target=rates['proposal_to_win'],
    )
    assert calculate_scenario(example_funnel, targets).bottleneck_stage == NO_BOTTLENECK


def test_single_stage_below_target(example_funnel):
    targets = BenchmarkTargets(opp_to_proposal_target=60)
    assert calculate_scenario(example_funnel, targets).bottleneck_stage == 'opp_to_proposal'


def test_largest_shortfall_wins(example_funnel):
    targets = BenchmarkTargets(lead_to_mql_target=27, proposal_to_win_target=40)
    assert calculate_scenario(example_funnel, targets).bottleneck_stage == 'proposal_to_win'


@pytest.mark.parametrize("overrides, expected", [
    ({'lead_to_mql_target': 30, 'proposal_to_win_target': 30}, 'lead_to_mql'),
    ({'opp_to_proposal_target': 55, 'proposal_to_win_target': 30}, 'opp_to_proposal'),
])
def test_tie_goes_to_earlier_stage(example_funnel, overrides, expected):
    result = calculate_scenario(example_funnel, BenchmarkTargets(**overrides))
    assert result.bottleneck_stage == expected


def test_zero_sqls_bottleneck(example_funnel):
    funnel = dataclasses.replace(example_funnel, sqls=0)
    # mql->sql also drops to 0% and has the larger default shortfall (40 vs 35)
    assert calculate_scenario(funnel).bottleneck_stage == 'mql_to_sql'
    targets = BenchmarkTargets(mql_to_sql_target=10)
    assert calculate_scenario(funnel, targets).bottleneck_stage == 'sql_to_opp'


def test_shortfalls_are_not_clamped(example_funnel):
    rates = indicators.get_conversion_rates(example_funnel)
    shortfalls = indicators.get_stage_shortfalls(rates, BenchmarkTargets())
    assert shortfalls['sql_to_opp'] == pytest.approx(-5.0)


# --- Deal size ---

def test_deal_size_metrics(example_funnel):
    result = calculate_scenario(example_funnel, BenchmarkTargets(avg_deal_size_target=60000))
    assert result.average_deal_size == pytest.approx(50000)
    assert result.deal_size_gap == pytest.approx(10000)
    assert result.lead_to_win_rate == pytest.approx(0.5)


def test_no_wins_gives_zero_deal_size():
    result = calculate_scenario(FunnelPeriod(new_recurring_revenue=1000))
    assert result.average_deal_size == 0
    assert result.lead_to_win_rate == 0


# --- Purity ---

def test_inputs_are_not_mutated(example_funnel, example_targets):
    funnel_before = dataclasses.asdict(example_funnel)
    targets_before = dataclasses.asdict(example_targets)
    calculate_scenario(example_funnel, example_targets)
    assert dataclasses.asdict(example_funnel) == funnel_before
    assert dataclasses.asdict(example_targets) == targets_before


def test_same_inputs_same_result(example_funnel, example_targets):
    assert calculate_scenario(example_funnel, example_targets) == calculate_scenario(example_funnel, example_targets)


def test_result_is_immutable(example_funnel):
    result = calculate_scenario(example_funnel)
    with pytest.raises(dataclasses.FrozenInstanceError):
        result.gap_to_target = 0


def test_default_targets_match_fallbacks():
    targets = BenchmarkTargets()
    assert (targets.lead_to_mql_target, targets.mql_to_sql_target, targets.sql_to_opp_target,
            targets.opp_to_proposal_target, targets.proposal_to_win_target) == (25, 40, 35, 50, 25)


# --- Stage breakdown ---

def test_stage_breakdown(example_funnel):
    targets = BenchmarkTargets(opp_to_proposal_target=60)
    result = calculate_scenario(example_funnel, targets)
    breakdown_df = indicators.get_stage_breakdown(result, targets)
    assert list(breakdown_df['Stage Key']) == ['lead_to_mql', 'mql_to_sql', 'sql_to_opp', 'opp_to_proposal', 'proposal_to_win']
    bottleneck_rows = breakdown_df[breakdown_df['Is Bottleneck']]
    assert list(bottleneck_rows['Stage Key']) == ['opp_to_proposal']
    assert bottleneck_rows['Shortfall (pts)'].iloc[0] == pytest.approx(10.0)


def test_stage_breakdown_without_bottleneck(example_funnel):
    targets = BenchmarkTargets()
    breakdown_df = indicators.get_stage_breakdown(calculate_scenario(example_funnel, targets), targets)
    assert not breakdown_df['Is Bottleneck'].any()
