"""Cost aggregation over a user's slice of the usage ledger."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from llm_gateway.errors import ValidationError
from llm_gateway.ledger.cost_calculator import micros_to_major
from llm_gateway.ledger.usage_store import UsageStore
from llm_gateway.models.usage import (
    DailyBucket,
    ModelBreakdown,
    RecentRequest,
    UsageEntry,
    UsageSummary,
    as_utc,
    utc_now,
)

DEFAULT_RANGE_DAYS = 7
MAX_RANGE_DAYS = 3660
RECENT_LIMIT = 50


def _to_instant(value: str | datetime, field: str, *, end_of_day: bool) -> datetime:
    try:
        if isinstance(value, datetime):
            return as_utc(value)
        text = value.strip()
        if len(text) == 10:
            day = date.fromisoformat(text)
            return datetime.combine(day, time.max if end_of_day else time.min, timezone.utc)
        return as_utc(datetime.fromisoformat(text))
    except (OverflowError, ValueError) as e:
        raise ValidationError(f"Invalid {field} timestamp: {value!r}") from e


def _check_span(start: datetime, end: datetime, max_days: int) -> None:
    if start > end:
        raise ValidationError(
            f"start ({start.isoformat()}) must not be after end ({end.isoformat()})"
        )
    if (end.date() - start.date()).days >= max_days:
        raise ValidationError(f"Range must not span more than {max_days} days")


def resolve_range(
    start: str | datetime | None = None,
    end: str | datetime | None = None,
    *,
    now: datetime | None = None,
    default_days: int = DEFAULT_RANGE_DAYS,
    max_days: int = MAX_RANGE_DAYS,
) -> tuple[datetime, datetime]:
    """Turn optional caller-supplied bounds into an inclusive UTC range.

    Missing bounds default to the last ``default_days`` days ending now. A
    date-only ``end`` covers that whole day.

    Raises:
        ValidationError: A bound does not parse or falls outside the calendar,
            start is after end, or the range covers more than ``max_days`` days.
    """
    now = as_utc(now) if now is not None else utc_now()
    end_dt = now if end is None else _to_instant(end, "end", end_of_day=True)

    if start is None:
        try:
            start_dt = end_dt - timedelta(days=default_days)
        except OverflowError as e:
            raise ValidationError(
                f"end ({end_dt.date()}) leaves no room for a {default_days}-day range"
            ) from e
    else:
        start_dt = _to_instant(start, "start", end_of_day=False)

    _check_span(start_dt, end_dt, max_days)
    return start_dt, end_dt


def build_daily_series(
    entries: list[UsageEntry],
    start: datetime,
    end: datetime,
) -> list[DailyBucket]:
    """One zero-seeded bucket per calendar day in [start, end], oldest first."""
    first, last = as_utc(start).date(), as_utc(end).date()
    totals: dict[date, list[int]] = {}
    day = first
    while day <= last:
        totals[day] = [0, 0, 0]  # cost_micros, requests, tokens
        day += timedelta(days=1)

    for entry in entries:
        bucket = totals.get(entry.created_at.date())
        if bucket is None:
            continue
        bucket[0] += entry.cost_micros
        bucket[1] += 1
        bucket[2] += entry.total_tokens

    return [
        DailyBucket(
            date=day.isoformat(),
            cost_micros=cost,
            cost=micros_to_major(cost),
            requests=requests,
            tokens=tokens,
        )
        for day, (cost, requests, tokens) in sorted(totals.items())
    ]


def build_model_breakdown(entries: list[UsageEntry]) -> list[ModelBreakdown]:
    """Per-model cost and request counts, most expensive first."""
    per_model: dict[str, list[int]] = {}
    for entry in entries:
        stats = per_model.setdefault(entry.model, [0, 0])
        stats[0] += entry.cost_micros
        stats[1] += 1

    total = sum(cost for cost, _ in per_model.values())
    breakdown = [
        ModelBreakdown(
            model=model,
            cost_micros=cost,
            cost=micros_to_major(cost),
            requests=requests,
            percentage_of_total=(cost / total * 100) if total > 0 else 0.0,
        )
        for model, (cost, requests) in per_model.items()
    ]
    breakdown.sort(key=lambda b: (-b.cost_micros, b.model))
    return breakdown


class CostAggregator:
    """Summarises a user's usage over a time range. Read-only."""

    def __init__(
        self,
        store: UsageStore,
        *,
        recent_limit: int = RECENT_LIMIT,
        max_range_days: int = MAX_RANGE_DAYS,
    ):
        self.store = store
        self.recent_limit = recent_limit
        self.max_range_days = max_range_days

    def summarize(self, user_id: str, start: datetime, end: datetime) -> UsageSummary:
        if not user_id:
            raise ValidationError("user_id is required")
        start, end = as_utc(start), as_utc(end)
        _check_span(start, end, self.max_range_days)

        entries = self.store.list_for_user(user_id, start, end)
        total_micros = sum(e.cost_micros for e in entries)

        recent = [
            RecentRequest(
                id=e.id,
                model=e.model,
                input_tokens=e.input_tokens,
                output_tokens=e.output_tokens,
                cost=micros_to_major(e.cost_micros),
                success=e.success,
                created_at=e.created_at,
            )
            for e in entries[: self.recent_limit]
        ]

        return UsageSummary(
            start=start,
            end=end,
            total_cost=micros_to_major(total_micros),
            total_cost_micros=total_micros,
            total_requests=len(entries),
            total_tokens=sum(e.total_tokens for e in entries),
            daily_series=build_daily_series(entries, start, end),
            model_breakdown=build_model_breakdown(entries),
            recent_requests=recent,
        )
