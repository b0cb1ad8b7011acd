"""Deterministic consensus policy.

Everything in this module is a pure function of its arguments. Malformed
signals (unknown status, missing or non-numeric timestamp) are skipped
rather than raised, so a recompute pass can never fail.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import Any

from sparkmap._constants import MS_PER_MINUTE
from sparkmap.config import ConsensusSettings
from sparkmap.models.consensus import LotConsensus, PendingTransition
from sparkmap.models.signal import LotStatus

_DEFAULT_SETTINGS = ConsensusSettings()


def sigmoid(x: float) -> float:
    return 1.0 / (1.0 + math.exp(-x))


def decay_weight(
    age_minutes: float,
    *,
    decay_minutes: float = _DEFAULT_SETTINGS.decay_minutes,
    max_age_minutes: float = _DEFAULT_SETTINGS.max_age_minutes,
) -> float:
    """Vote weight of a signal that is *age_minutes* old.

    ``exp(-age / decay_minutes)`` inside the retention window, ``0.0``
    outside it. Signals stamped in the future count as brand new.
    """
    if age_minutes > max_age_minutes:
        return 0.0
    return math.exp(-max(0.0, age_minutes) / decay_minutes)


def _fresh_vote(signal: Any, now_ms: int, settings: ConsensusSettings) -> tuple[LotStatus, float] | None:
    status = LotStatus.parse(getattr(signal, "status", None))
    if status is None:
        return None
    created_at = getattr(signal, "created_at", None)
    if isinstance(created_at, bool) or not isinstance(created_at, (int, float)):
        return None
    age_minutes = (now_ms - created_at) / MS_PER_MINUTE
    if math.isnan(age_minutes) or age_minutes > settings.max_age_minutes:
        return None
    weight = decay_weight(
        age_minutes,
        decay_minutes=settings.decay_minutes,
        max_age_minutes=settings.max_age_minutes,
    )
    return status, weight


def tally(
    signals: Iterable[Any],
    now_ms: int,
    settings: ConsensusSettings = _DEFAULT_SETTINGS,
) -> tuple[dict[LotStatus, float], int]:
    """Sum decayed weights per status.

    Returns the weights (every status present, zero when unvoted) and the
    number of fresh, well-formed signals that contributed.
    """
    weights: dict[LotStatus, float] = {status: 0.0 for status in LotStatus}
    fresh = 0
    for signal in signals:
        vote = _fresh_vote(signal, now_ms, settings)
        if vote is None:
            continue
        status, weight = vote
        weights[status] += weight
        fresh += 1
    return weights, fresh


def rank(weights: dict[LotStatus, float]) -> list[tuple[LotStatus, float]]:
    """Order statuses by weight, heaviest first. Ties keep declaration order."""
    ordered = [(status, weights.get(status, 0.0)) for status in LotStatus]
    return sorted(ordered, key=lambda item: item[1], reverse=True)


def compute_consensus(
    prior: LotConsensus,
    signals: Iterable[Any],
    now_ms: int,
    settings: ConsensusSettings = _DEFAULT_SETTINGS,
) -> LotConsensus:
    """Derive the next consensus for one lot.

    The displayed status only moves once the same challenger has led on
    two consecutive recomputations; a lone outlier report therefore
    never flips a lot by itself.
    """
    weights, fresh = tally(signals, now_ms, settings)
    ordered = rank(weights)
    top_status, top_weight = ordered[0]
    runner_weight = ordered[1][1] if len(ordered) > 1 else 0.0

    margin = max(0.0, top_weight - runner_weight)
    has_signals = fresh > 0
    confidence = sigmoid(settings.confidence_gain * margin) if has_signals else settings.confidence_floor

    status = prior.status
    updated_at = prior.updated_at
    pending = prior.pending

    if top_weight == 0 and not has_signals:
        pending = None
    elif top_status == prior.status:
        pending = None
    elif margin > 0:
        if pending is not None and pending.status == top_status:
            status = top_status
            updated_at = now_ms
            pending = None
        else:
            pending = PendingTransition(status=top_status, seen_at=now_ms)
    else:
        pending = None

    return LotConsensus(
        status=status,
        margin=margin,
        confidence=confidence,
        updated_at=updated_at,
        pending=pending,
    )
