# api/app.py

from __future__ import annotations

import base64
import binascii
import os
from pathlib import Path
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from api.schemas import BestMatch, PredictRequest, PredictResponse, RankedLabel
from imagelabel.config import ModelConfig, PreprocessConfig, get_settings
from imagelabel.data.loaders import load_labels, load_model_bytes
from imagelabel.errors import ImageLabelError
from imagelabel.models.onnx_inference import OnnxImageClassifier
from imagelabel.output.reporting import build_report
from imagelabel.pipeline.classification_pipeline import build_classifier, classify_image_bytes


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    model_path: str


def _resolve_model_config() -> ModelConfig:
    """Resolve model and label paths from environment variables.

    Priority:
      1) IMAGELABEL_MODEL_PATH / IMAGELABEL_LABELS_PATH
      2) ModelConfig defaults under Settings.models_dir
    """
    defaults = ModelConfig().resolve_paths(get_settings().models_dir)
    return ModelConfig(
        model_path=Path(os.getenv("IMAGELABEL_MODEL_PATH", defaults.model_path.as_posix())),
        labels_path=Path(os.getenv("IMAGELABEL_LABELS_PATH", defaults.labels_path.as_posix())),
        input_layer=os.getenv("IMAGELABEL_INPUT_LAYER", defaults.input_layer),
        output_layer=os.getenv("IMAGELABEL_OUTPUT_LAYER", defaults.output_layer),
        providers=["CPUExecutionProvider"],
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(title="imagelabel - Inference API", version="0.1.0")

    model_cfg = _resolve_model_config()
    preprocess_cfg = PreprocessConfig()

    # Lazy-initialized singletons
    clf: Optional[OnnxImageClassifier] = None
    labels: List[str] = []

    @app.on_event("startup")
    def _startup() -> None:
        nonlocal clf, labels
        model_res = load_model_bytes(model_cfg.model_path)
        labels_res = load_labels(model_cfg.labels_path)
        for res in (model_res, labels_res):
            if not res.ok:
                raise RuntimeError(str(res.error))

        clf = build_classifier(model_res.unwrap(), model_cfg)
        labels = labels_res.unwrap()

        n_classes = clf.num_classes
        if n_classes is not None and n_classes != len(labels):
            raise RuntimeError(
                f"Model produces {n_classes} classes but {model_cfg.labels_path} "
                f"lists {len(labels)} labels."
            )

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(status="ok", model_path=model_cfg.model_path.as_posix())

    @app.post("/predict", response_model=PredictResponse)
    def predict(req: PredictRequest) -> PredictResponse:
        if clf is None:
            raise HTTPException(status_code=503, detail="Model is not initialized.")

        try:
            image_bytes = base64.b64decode(req.image_base64, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise HTTPException(status_code=400, detail=f"Invalid base64 image: {exc}") from exc

        try:
            result = classify_image_bytes(
                image_bytes,
                clf,
                labels,
                preprocess_cfg,
                providers=model_cfg.providers,
            )
        except ImageLabelError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        report = build_report(result.prediction, result.ranking, result.labels, top_k=req.top_k)
        return PredictResponse(
            best_match=BestMatch(**report["best_match"]),
            ranking=[RankedLabel(**entry) for entry in report["ranking"]],
        )

    return app


app = create_app()
