"""Cost calculation in integer micro-USD."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from llm_gateway.registry import ModelRegistry

MICROS_PER_UNIT = 1_000_000


def calculate_cost_micros(
    registry: ModelRegistry,
    model: str,
    input_tokens: int,
    output_tokens: int,
) -> int:
    """Calculate the cost of one call in micro-USD.

    Registry prices are USD per 1M tokens, so each token costs exactly the
    listed price in micro-USD.

    Args:
        registry: Model metadata with per-1M-token prices.
        model: Model id as sent to the routing proxy.
        input_tokens: Prompt tokens reported by the upstream.
        output_tokens: Completion tokens reported by the upstream.

    Returns:
        Cost rounded half-up to a whole micro-USD. Unknown models cost 0.
    """
    info = registry.get(model)
    if info is None:
        return 0
    total = (
        Decimal(input_tokens) * Decimal(str(info.input_cost))
        + Decimal(output_tokens) * Decimal(str(info.output_cost))
    )
    return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def micros_to_major(micros: int) -> float:
    """Convert micro-USD to USD for presentation."""
    return micros / MICROS_PER_UNIT
