"""
Counterbalancing Engine

Deterministic assignment of condition orders to participants.

Every function here is pure: the same (participant, conditions, config)
always yields the same CounterbalanceResult, so the result can be recomputed
on every call or cached for the session.

Modes:
- LATIN_SQUARE: cyclic n x n square, row = participant % n (default)
- FULL_PERMUTATION: all n! orders, index = participant % n!
- RANDOM: shuffle seeded by the participant index
- CUSTOM: explicit order per participant key
- LEGACY: even participants natural order, odd reversed

Start/end pins are applied after the mode's order: start first, then end,
so when both name the same condition it ends up last.
"""

import hashlib
import itertools
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

from aura.common.config import CounterbalanceConfig, CounterbalanceMode
from aura.common.exceptions import ConfigError
from aura.common.logging_setup import get_service_logger

logger = get_service_logger("counterbalance")

# 8! = 40320 orders; beyond this the full table is impractical
MAX_PERMUTATION_CONDITIONS = 8


@dataclass
class CounterbalanceResult:
    """Order assigned to one participant plus the table it came from."""
    order: list[str]
    group_index: int
    mode: CounterbalanceMode
    total_groups: int  # -1 = unbounded (RANDOM)
    all_groups: list[list[str]] = field(default_factory=list)
    fallback: bool = False  # CUSTOM found no order for this participant


def participant_index(user_id: str) -> int:
    """
    Map a user id onto a non-negative integer.

    Numeric ids are used directly ("7" -> 7, "-3" -> 3). Other ids use a
    stable SHA-256 based hash, identical across processes and platforms.
    """
    try:
        return abs(int(user_id.strip()))
    except ValueError:
        digest = hashlib.sha256(user_id.encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big") & 0x7FFFFFFFFFFFFFFF


def generate_latin_square(conditions: Sequence[str]) -> list[list[str]]:
    """
    Cyclic Latin square: row r, column c = conditions[(r + c) % n].

    Example for A, B, C:
        Row 0: A -> B -> C
        Row 1: B -> C -> A
        Row 2: C -> A -> B
    """
    n = len(conditions)
    return [[conditions[(row + col) % n] for col in range(n)] for row in range(n)]


def generate_all_permutations(conditions: Sequence[str]) -> list[list[str]]:
    """All n! orders, lexicographic with respect to the declared order."""
    if len(conditions) > MAX_PERMUTATION_CONDITIONS:
        raise ConfigError(
            f"FULL_PERMUTATION supports at most {MAX_PERMUTATION_CONDITIONS} conditions, "
            f"got {len(conditions)}"
        )
    return [list(p) for p in itertools.permutations(conditions)]


def is_permutation(order: Sequence[str], conditions: Sequence[str]) -> bool:
    """True if `order` holds exactly the conditions, each as often."""
    return Counter(order) == Counter(conditions)


def apply_constraints(order: list[str], config: CounterbalanceConfig) -> list[str]:
    """Pin start_condition first, then end_condition last (end wins)."""
    order = list(order)

    start = config.start_condition
    if start is not None and start in order:
        order.remove(start)
        order.insert(0, start)

    end = config.end_condition
    if end is not None and end in order:
        order.remove(end)
        order.append(end)

    return order


# ============================================
# MODES
# ============================================

def _latin_square_order(conditions: list[str], index: int, config: CounterbalanceConfig) -> CounterbalanceResult:
    if config.custom_latin_square is not None:
        square = [list(row) for row in config.custom_latin_square]
        if not square:
            raise ConfigError("custom_latin_square is empty")
        for r, row in enumerate(square):
            if not is_permutation(row, conditions):
                raise ConfigError(
                    f"custom_latin_square row {r} {row} is not a permutation of {conditions}"
                )
    else:
        square = generate_latin_square(conditions)

    group = index % len(square)
    return CounterbalanceResult(
        order=list(square[group]),
        group_index=group,
        mode=CounterbalanceMode.LATIN_SQUARE,
        total_groups=len(square),
        all_groups=square,
    )


def _full_permutation_order(conditions: list[str], index: int, config: CounterbalanceConfig) -> CounterbalanceResult:
    permutations = generate_all_permutations(conditions)
    group = index % len(permutations)
    return CounterbalanceResult(
        order=list(permutations[group]),
        group_index=group,
        mode=CounterbalanceMode.FULL_PERMUTATION,
        total_groups=len(permutations),
        all_groups=permutations,
    )


def _random_order(conditions: list[str], index: int, config: CounterbalanceConfig) -> CounterbalanceResult:
    order = list(conditions)
    random.Random(index).shuffle(order)
    return CounterbalanceResult(
        order=order,
        group_index=index,
        mode=CounterbalanceMode.RANDOM,
        total_groups=-1,
        all_groups=[list(order)],
    )


def _custom_order(conditions: list[str], user_id: str, config: CounterbalanceConfig) -> CounterbalanceResult:
    orders = config.custom_orders
    if orders is None:
        raise ConfigError("CUSTOM mode requires custom_orders")

    keys = list(orders.keys())
    key = None
    if user_id in orders:
        key = user_id
    elif keys:
        try:
            key = keys[int(user_id) % len(keys)]
        except ValueError:
            key = None

    if key is None:
        logger.warning(
            f"No custom order for participant {user_id!r}, using declared condition order",
            extra={"user_id": user_id, "custom_keys": keys},
        )
        return CounterbalanceResult(
            order=list(conditions),
            group_index=0,
            mode=CounterbalanceMode.CUSTOM,
            total_groups=len(orders),
            all_groups=[list(o) for o in orders.values()],
            fallback=True,
        )

    order = list(orders[key])
    if not is_permutation(order, conditions):
        raise ConfigError(
            f"custom order for {key!r} {order} is not a permutation of {conditions}"
        )

    return CounterbalanceResult(
        order=order,
        group_index=keys.index(key),
        mode=CounterbalanceMode.CUSTOM,
        total_groups=len(orders),
        all_groups=[list(o) for o in orders.values()],
    )


def _legacy_order(conditions: list[str], index: int, config: CounterbalanceConfig) -> CounterbalanceResult:
    natural = list(conditions)
    reversed_ = natural[::-1]
    return CounterbalanceResult(
        order=list(natural if index % 2 == 0 else reversed_),
        group_index=index % 2,
        mode=CounterbalanceMode.LEGACY,
        total_groups=2,
        all_groups=[natural, reversed_],
    )


def compute_order(
    user_id: str,
    conditions: Sequence[str],
    config: CounterbalanceConfig,
) -> CounterbalanceResult:
    """
    Counterbalanced condition order for one participant.

    Args:
        user_id: Participant id (numeric ids map directly to groups)
        conditions: Declared conditions, in declaration order
        config: Strategy and pins

    Returns:
        CounterbalanceResult whose order is a permutation of `conditions`

    Raises:
        ConfigError: invalid custom square/orders, or too many conditions
            for FULL_PERMUTATION
    """
    conditions = list(conditions)
    mode = config.mode

    if not conditions:
        return CounterbalanceResult(order=[], group_index=0, mode=mode, total_groups=0, all_groups=[])

    if len(conditions) == 1:
        return CounterbalanceResult(
            order=list(conditions),
            group_index=0,
            mode=mode,
            total_groups=1,
            all_groups=[list(conditions)],
        )

    index = participant_index(user_id)

    if mode == CounterbalanceMode.LATIN_SQUARE:
        result = _latin_square_order(conditions, index, config)
    elif mode == CounterbalanceMode.FULL_PERMUTATION:
        result = _full_permutation_order(conditions, index, config)
    elif mode == CounterbalanceMode.RANDOM:
        result = _random_order(conditions, index, config)
    elif mode == CounterbalanceMode.CUSTOM:
        result = _custom_order(conditions, user_id, config)
    elif mode == CounterbalanceMode.LEGACY:
        result = _legacy_order(conditions, index, config)
    else:
        raise ConfigError(f"Unsupported counterbalance mode: {mode}")

    result.order = apply_constraints(result.order, config)
    return result


def format_summary(result: CounterbalanceResult, conditions: Sequence[str], user_id: str) -> str:
    """Human-readable table of every group, for the experimenter."""
    total = "unbounded" if result.total_groups < 0 else str(result.total_groups)
    lines = [
        "=== Counterbalancing Summary ===",
        f"Mode: {result.mode.value}",
        f"Conditions: {list(conditions)}",
        f"Current Participant: {user_id} (Group {result.group_index})",
        f"Current Order: {' -> '.join(result.order)}",
    ]
    if result.fallback:
        lines.append("WARNING: no custom order matched this participant; declared order used")
    lines.append("")
    lines.append(f"All Groups ({total} total):")
    for i, order in enumerate(result.all_groups):
        lines.append(f"  Group {i}: {' -> '.join(order)}")
    return "\n".join(lines) + "\n"
