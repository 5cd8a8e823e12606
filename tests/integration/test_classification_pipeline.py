# tests/integration/test_classification_pipeline.py

from pathlib import Path

import pytest

import classify as classify_module
from imagelabel.config import ModelConfig, PreprocessConfig
from imagelabel.errors import ImageDecodeError, InvalidInputError
from imagelabel.pipeline.classification_pipeline import build_classifier, classify_image_bytes


@pytest.mark.slow
class TestClassificationPipeline:
    """End-to-end: JPEG bytes -> normalization graph -> ONNX model -> ranking."""

    @pytest.mark.parametrize(
        "color, expected",
        [((255, 0, 0), "red"), ((0, 255, 0), "green"), ((0, 0, 255), "blue")],
    )
    def test_classifies_solid_colors(self, color_model_bytes, jpeg_factory, color, expected) -> None:
        clf = build_classifier(color_model_bytes, ModelConfig())
        cfg = PreprocessConfig(input_height=32, input_width=32)

        result = classify_image_bytes(
            jpeg_factory(color=color),
            clf,
            ["red", "green", "blue"],
            cfg,
            image_path="solid.jpg",
        )

        assert result.prediction.label == expected
        assert result.ranking[0].index == result.prediction.index
        assert len(result.ranking) == 3
        assert result.image_path == "solid.jpg"

    def test_label_count_mismatch_raises(self, color_model_bytes, jpeg_factory) -> None:
        clf = build_classifier(color_model_bytes, ModelConfig())

        with pytest.raises(InvalidInputError):
            classify_image_bytes(
                jpeg_factory(),
                clf,
                ["red", "green"],
                PreprocessConfig(input_height=8, input_width=8),
            )

    def test_non_jpeg_raises(self, color_model_bytes) -> None:
        clf = build_classifier(color_model_bytes, ModelConfig())

        with pytest.raises(ImageDecodeError):
            classify_image_bytes(b"GIF89a", clf, ["r", "g", "b"], PreprocessConfig())

    def test_cli_end_to_end(self, model_files, jpeg_factory, tmp_path: Path, capsys) -> None:
        model_path, labels_path = model_files()
        image_path = tmp_path / "blue.jpg"
        image_path.write_bytes(jpeg_factory(color=(0, 0, 255)))

        code = classify_module.main(
            [
                "--config", str(tmp_path / "absent.yaml"),
                "--model", str(model_path),
                "--labels", str(labels_path),
                "--image", str(image_path),
            ]
        )

        out = capsys.readouterr().out.splitlines()
        assert code == 0
        assert out[0].startswith("BEST MATCH: blue (")
        assert len(out) == 1 + 3
        assert out[1].endswith("-> 2")
