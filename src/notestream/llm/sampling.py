"""Repetition-penalty greedy sampler.

Pure functions of (logits, recently generated token ids): no model state,
so they can be exercised with hand-written score vectors.

The penalty always pushes a repeated token down.  A positive logit is
divided by the penalty and a non-positive one is multiplied by it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

REPETITION_PENALTY = 1.2
PENALTY_WINDOW = 64


@dataclass(frozen=True)
class SamplingCandidate:
    token_id: int
    logit: float


def recent_window(tokens: Sequence[int], window: int = PENALTY_WINDOW) -> Sequence[int]:
    """The last *window* tokens of *tokens*."""
    if window <= 0:
        return tokens[:0]
    return tokens[-window:]


def penalize(
    logits: Sequence[float] | np.ndarray,
    recent_tokens: Sequence[int],
    penalty: float = REPETITION_PENALTY,
) -> np.ndarray:
    """Return a penalized copy of *logits* (float32, one entry per token id)."""
    scores = np.array(logits, dtype=np.float32, copy=True)
    if len(recent_tokens) == 0 or scores.size == 0:
        return scores
    ids = np.unique(np.asarray(recent_tokens, dtype=np.int64))
    ids = ids[(ids >= 0) & (ids < scores.size)]
    if ids.size == 0:
        return scores
    picked = scores[ids]
    scores[ids] = np.where(picked > 0, picked / penalty, picked * penalty)
    return scores


def rank_candidates(
    logits: Sequence[float] | np.ndarray,
    recent_tokens: Sequence[int],
    penalty: float = REPETITION_PENALTY,
    top_k: int | None = None,
) -> list[SamplingCandidate]:
    """Candidates by penalized score, best first.

    Ties keep ascending token-id order, so the ranking is deterministic.
    """
    scores = penalize(logits, recent_tokens, penalty)
    order = np.argsort(-scores, kind="stable")
    if top_k is not None:
        order = order[:top_k]
    return [SamplingCandidate(int(i), float(scores[i])) for i in order]


def select_token(
    logits: Sequence[float] | np.ndarray,
    recent_tokens: Sequence[int],
    penalty: float = REPETITION_PENALTY,
) -> int:
    """Greedy pick: the top-ranked candidate after the penalty.

    Equivalent to ``rank_candidates(...)[0].token_id`` without the full sort.
    """
    scores = penalize(logits, recent_tokens, penalty)
    if scores.size == 0:
        raise ValueError("no candidates to sample from")
    # argmax returns the first (lowest id) maximum, matching the stable rank
    return int(np.argmax(scores))
