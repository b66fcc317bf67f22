import logging
import math
import re
from dataclasses import fields

import pandas as pd

from benchmark_targets import CURRENCY_SYMBOLS, DEFAULT_CURRENCY, FUNNEL_STAGES
from indicators import BenchmarkTargets, FunnelPeriod

logger = logging.getLogger(__name__)

STAGE_COUNT_FIELDS = ['leads', 'mqls', 'sqls', 'opportunities', 'proposals', 'wins']

# --- Helper Functions ---

def safe_to_number(value, default=0.0, remove_chars=r'[€$£,%\s]'):
    """
    Coerces a raw widget or text value to a finite float.

    Currency symbols, thousands separators and percent signs are stripped.
    Empty, unparseable and non-finite values come back as `default`.
    """
    if value is None:
        return default
    if isinstance(value, (int, float)):
        number = value
    else:
        cleaned = re.sub(remove_chars, '', str(value))
        if cleaned == '':
            return default
        number = pd.to_numeric(cleaned, errors='coerce')
    if pd.isna(number) or not math.isfinite(number):
        return default
    return float(number)


def resolve_currency_code(value):
    currency_code = str(value or DEFAULT_CURRENCY).strip().upper()
    if currency_code not in CURRENCY_SYMBOLS:
        logger.warning("Unsupported currency %r, using %s", currency_code, DEFAULT_CURRENCY)
        return DEFAULT_CURRENCY
    return currency_code


def _read_number(raw, key, default):
    if key not in raw or raw[key] is None or raw[key] == '':
        return default
    number = safe_to_number(raw[key], default=None)
    if number is None:
        logger.warning("Could not parse %s=%r, using default %s", key, raw[key], default)
        return default
    return number

# --- Record Builders ---

def build_funnel_period(raw):
    """Builds a FunnelPeriod from raw collector values; absent counts read as 0."""
    values = {name: _read_number(raw, name, 0.0) for name in STAGE_COUNT_FIELDS}
    values['new_recurring_revenue'] = _read_number(raw, 'new_recurring_revenue', 0.0)
    values['period_weeks'] = _read_number(raw, 'period_weeks', 1.0)

    negatives = [name for name, value in values.items() if value < 0]
    if negatives:
        logger.warning("Negative funnel inputs: %s", ", ".join(negatives))

    # Non-descending counts are tolerated, only flagged
    for _, label, upstream, downstream, _ in FUNNEL_STAGES:
        if values[downstream] > values[upstream]:
            logger.warning("Funnel stage %s has more %s (%s) than %s (%s)",
                           label, downstream, values[downstream], upstream, values[upstream])

    return FunnelPeriod(**values)


def build_benchmark_targets(raw):
    """Builds BenchmarkTargets from raw collector values, falling back to the documented defaults."""
    values = {}
    for field in fields(BenchmarkTargets):
        if field.name == 'currency_code':
            continue
        values[field.name] = _read_number(raw, field.name, float(field.default))

    values['currency_code'] = resolve_currency_code(raw.get('currency_code'))

    return BenchmarkTargets(**values)
