from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from imagelabel.config import ModelConfig, PreprocessConfig
from imagelabel.models.onnx_inference import OnnxImageClassifier
from imagelabel.preprocessing.normalize import build_normalize_graph
from imagelabel.preprocessing.runtime import run_graph
from imagelabel.ranking.ranker import Prediction, RankEntry, rank_all, top_prediction
from imagelabel.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass(frozen=True)
class ClassificationResult:
    """Best match and full ranking for one image."""

    prediction: Prediction
    ranking: List[RankEntry]
    labels: List[str]
    image_path: Optional[str] = None


def build_classifier(model_bytes: bytes, model_cfg: ModelConfig) -> OnnxImageClassifier:
    """Create the inference engine described by ``model_cfg`` from model bytes."""
    return OnnxImageClassifier.from_bytes(
        model_bytes,
        input_name=model_cfg.input_layer,
        output_name=model_cfg.output_layer,
        providers=model_cfg.providers,
    )


def normalize_image(
    image_bytes: bytes,
    preprocess_cfg: PreprocessConfig,
    providers: Optional[Sequence[str]] = None,
) -> np.ndarray:
    """Decode, resize and normalize a JPEG into a ``[1, H, W, C]`` float tensor."""
    graph = build_normalize_graph(image_bytes, preprocess_cfg)
    return run_graph(graph, providers=providers)


def classify_image_bytes(
    image_bytes: bytes,
    classifier: OnnxImageClassifier,
    labels: Sequence[str],
    preprocess_cfg: PreprocessConfig,
    *,
    providers: Optional[Sequence[str]] = None,
    image_path: Optional[str] = None,
) -> ClassificationResult:
    """Run preprocessing, inference and ranking for one image.

    Raises:
        ImageDecodeError: If the image is not a decodable JPEG.
        ShapeMismatchError: If the model output is not ``[1, N]``.
        InvalidInputError: If the number of labels differs from N.
    """
    image = normalize_image(image_bytes, preprocess_cfg, providers)
    probabilities = classifier.predict(image)

    prediction = top_prediction(probabilities, labels)
    ranking = rank_all(probabilities)

    logger.info(
        "Image classified",
        extra={
            "phase": "classify",
            "image_path": image_path,
            "num_labels": len(labels),
            "best_index": prediction.index,
            "score": prediction.score,
        },
    )

    return ClassificationResult(
        prediction=prediction,
        ranking=ranking,
        labels=list(labels),
        image_path=image_path,
    )
