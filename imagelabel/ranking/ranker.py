# imagelabel/ranking/ranker.py

from __future__ import annotations

from typing import List, NamedTuple, Sequence, Tuple, Union

import numpy as np

from imagelabel.errors import InvalidInputError

ProbabilityVector = Union[Sequence[float], np.ndarray]


class RankEntry(NamedTuple):
    """One position in a ranking: a class probability and its index."""

    probability: float
    index: int


class Prediction(NamedTuple):
    """Best match resolved against the label list."""

    index: int
    label: str
    score: float


def _as_vector(probabilities: ProbabilityVector) -> np.ndarray:
    """Validate a probability vector and return it as a 1-D float array.

    Raises:
        InvalidInputError: If the vector is empty, not 1-D, or contains NaN.
    """
    arr = np.asarray(probabilities, dtype=np.float64)

    if arr.ndim != 1:
        raise InvalidInputError(
            f"Expected a 1-D probability vector, but got shape {arr.shape}."
        )
    if arr.size == 0:
        raise InvalidInputError("Probability vector must be non-empty.")
    if np.isnan(arr).any():
        raise InvalidInputError("Probability vector must not contain NaN values.")

    return arr


def best_match(probabilities: ProbabilityVector) -> Tuple[int, float]:
    """Return the index of the highest probability and the probability itself.

    On exact ties the lowest index wins, so the result is deterministic.

    Args:
        probabilities: Per-class probabilities, indexed 0..N-1.

    Returns:
        A tuple ``(index, score)``.

    Raises:
        InvalidInputError: If the vector is empty or malformed.
    """
    arr = _as_vector(probabilities)
    # np.argmax returns the first occurrence of the maximum.
    idx = int(np.argmax(arr))
    return idx, float(arr[idx])


def rank_all(probabilities: ProbabilityVector) -> List[RankEntry]:
    """Rank every class by probability, highest first.

    Every index (including 0) appears exactly once. Equal probabilities keep
    ascending index order.

    Args:
        probabilities: Per-class probabilities, indexed 0..N-1.

    Returns:
        List of :class:`RankEntry` with non-increasing probabilities.

    Raises:
        InvalidInputError: If the vector is empty or malformed.
    """
    arr = _as_vector(probabilities)
    # Stable sort on the negated values keeps ties in ascending index order.
    order = np.argsort(-arr, kind="stable")
    return [RankEntry(probability=float(arr[i]), index=int(i)) for i in order]


def ensure_aligned(probabilities: ProbabilityVector, labels: Sequence[str]) -> None:
    """Check that the label list has one entry per probability.

    Raises:
        InvalidInputError: If the lengths differ.
    """
    n_probs = len(probabilities)
    n_labels = len(labels)
    if n_probs != n_labels:
        raise InvalidInputError(
            "Number of probabilities and labels must match. "
            f"Got {n_probs} probabilities and {n_labels} labels."
        )


def top_prediction(probabilities: ProbabilityVector, labels: Sequence[str]) -> Prediction:
    """Resolve the best match to its label name."""
    arr = _as_vector(probabilities)
    ensure_aligned(arr, labels)
    idx, score = best_match(arr)
    return Prediction(index=idx, label=labels[idx], score=score)
