# imagelabel/output/reporting.py

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from imagelabel.ranking.ranker import Prediction, RankEntry, ensure_aligned


def _check_top_k(top_k: Optional[int]) -> None:
    if top_k is not None and top_k < 1:
        raise ValueError(f"top_k must be >= 1, got {top_k}.")


def format_best_match(prediction: Prediction) -> str:
    """Render the best match as ``BEST MATCH: <label> (<pct>% likely)``."""
    return f"BEST MATCH: {prediction.label} ({prediction.score * 100.0:.2f}% likely)"


def format_ranking(
    ranking: Sequence[RankEntry],
    *,
    labels: Optional[Sequence[str]] = None,
    top_k: Optional[int] = None,
) -> List[str]:
    """Render a ranking as ``<probability> -> <index>`` lines, best first.

    Args:
        ranking: Output of :func:`imagelabel.ranking.ranker.rank_all`.
        labels: When given, each line is suffixed with the label name.
        top_k: Optional cap on the number of lines.

    Raises:
        ValueError: If ``top_k`` is not positive.
    """
    _check_top_k(top_k)
    if top_k is not None:
        ranking = ranking[:top_k]

    lines = []
    for entry in ranking:
        line = f"{entry.probability} -> {entry.index}"
        if labels is not None:
            line += f" ({labels[entry.index]})"
        lines.append(line)
    return lines


def build_report(
    prediction: Prediction,
    ranking: Sequence[RankEntry],
    labels: Sequence[str],
    *,
    image_path: Optional[str] = None,
    top_k: Optional[int] = None,
) -> Dict[str, Any]:
    """Build a JSON-serializable summary of one classification.

    Raises:
        InvalidInputError: If ``ranking`` and ``labels`` differ in length.
        ValueError: If ``top_k`` is not positive.
    """
    ensure_aligned(ranking, labels)
    _check_top_k(top_k)
    entries = ranking[:top_k] if top_k is not None else ranking

    return {
        "image_path": image_path,
        "best_match": {
            "index": prediction.index,
            "label": prediction.label,
            "score": prediction.score,
        },
        "ranking": [
            {
                "rank": position,
                "index": entry.index,
                "label": labels[entry.index],
                "probability": entry.probability,
            }
            for position, entry in enumerate(entries)
        ],
    }


def save_report_to_json(report: Dict[str, Any], path: str | Path) -> None:
    """Save a classification report to a JSON file.

    Args:
        report: Dictionary as returned by :func:`build_report`.
        path: Destination path for the JSON file.
    """
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with output_path.open("w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False)
