"""Custom business metrics for habit streaks.

Counters are created via ``opentelemetry.metrics.get_meter()`` which resolves
against whatever global ``MeterProvider`` is installed. Without an SDK the
OTel API returns no-op instruments.

Usage in services::

    from core.metrics import HABIT_COMPLETED_COUNTER

    HABIT_COMPLETED_COUNTER.add(1, {"frequency": "daily"})
"""

from __future__ import annotations

from opentelemetry import metrics

_meter = metrics.get_meter("habit_streaks")

# ── Completion ledger ─────────────────────────────────────────────────

HABIT_COMPLETED_COUNTER = _meter.create_counter(
    name="habit.completed",
    description="Completion records created",
    unit="{completion}",
)

HABIT_UNCOMPLETED_COUNTER = _meter.create_counter(
    name="habit.uncompleted",
    description="Completion records removed by toggle-off",
    unit="{completion}",
)

# ── Reconciliation ────────────────────────────────────────────────────

RECONCILE_HABITS_COUNTER = _meter.create_counter(
    name="streak.reconcile.habits",
    description="Habits visited by the daily reconciliation job, by outcome",
    unit="{habit}",
)

RECONCILE_DURATION = _meter.create_histogram(
    name="streak.reconcile.duration",
    description="Wall time of a full reconciliation run",
    unit="s",
)
