"""
Budget Lifecycle Engine

Period calculation, proration into half-months, recurring budget
generation, category aggregation, the transaction ledger and the legacy
category migration.
"""

from finance_tracker.engine.aggregation import CategoryAggregator
from finance_tracker.engine.categories import CategoryStore
from finance_tracker.engine.ledger import TransactionLedger
from finance_tracker.engine.migration import LegacyCategoryMigration
from finance_tracker.engine.periods import (
    HalfMonth,
    PeriodRange,
    add_months,
    compute_period,
    half_month_periods,
    months_in_period,
    next_occurrence,
    split_into_half_months,
)
from finance_tracker.engine.proration import ProrationEngine, split_amount
from finance_tracker.engine.recurrence import DataIntegrityWarning, RecurrenceGenerator

__all__ = [
    # Periods
    "HalfMonth",
    "PeriodRange",
    "add_months",
    "compute_period",
    "half_month_periods",
    "months_in_period",
    "next_occurrence",
    "split_into_half_months",
    # Engines
    "CategoryAggregator",
    "CategoryStore",
    "DataIntegrityWarning",
    "LegacyCategoryMigration",
    "ProrationEngine",
    "RecurrenceGenerator",
    "TransactionLedger",
    "split_amount",
]
