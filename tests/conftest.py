# tests/conftest.py

from __future__ import annotations

import io
from pathlib import Path
from typing import Callable, Sequence, Tuple

import numpy as np
import pytest
from onnx import TensorProto, helper, numpy_helper
from PIL import Image


def make_jpeg_bytes(
    color: Tuple[int, int, int] = (255, 0, 0),
    size: Tuple[int, int] = (40, 30),
) -> bytes:
    """Encode a solid-color RGB image as JPEG."""
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="JPEG", quality=95)
    return buf.getvalue()


def make_oversized_jpeg_bytes(height: int = 60000, width: int = 60000) -> bytes:
    """Encode a small JPEG whose SOF0 header claims ``height x width`` pixels."""
    data = bytearray(make_jpeg_bytes(size=(8, 8)))
    sof = data.index(b"\xff\xc0")
    # Marker (2) + segment length (2) + precision (1), then height and width.
    data[sof + 5 : sof + 7] = height.to_bytes(2, "big")
    data[sof + 7 : sof + 9] = width.to_bytes(2, "big")
    return bytes(data)


def make_classifier_model_bytes(
    weights: np.ndarray,
    *,
    input_name: str = "Mul",
    output_name: str = "final_result",
    bad_output_shape: bool = False,
) -> bytes:
    """Build a tiny ONNX image classifier.

    The model averages every channel over the image, multiplies the
    [1, 3] channel means by ``weights`` ([3, N]) and applies softmax,
    producing a [1, N] probability tensor. With ``bad_output_shape`` the
    output is reshaped to [1, N, 1].
    """
    n_classes = weights.shape[1]
    softmax_out = "probs" if bad_output_shape else output_name

    nodes = [
        helper.make_node("ReduceMean", [input_name], ["channel_means"], axes=[1, 2], keepdims=0),
        helper.make_node("MatMul", ["channel_means", "weights"], ["logits"]),
        helper.make_node("Softmax", ["logits"], [softmax_out], axis=-1),
    ]
    initializers = [numpy_helper.from_array(weights.astype(np.float32), name="weights")]
    out_shape = [1, n_classes]

    if bad_output_shape:
        initializers.append(numpy_helper.from_array(np.array([2], dtype=np.int64), name="axes"))
        nodes.append(helper.make_node("Unsqueeze", [softmax_out, "axes"], [output_name]))
        out_shape = [1, n_classes, 1]

    graph = helper.make_graph(
        nodes,
        "tiny_classifier",
        [helper.make_tensor_value_info(input_name, TensorProto.FLOAT, [1, "height", "width", 3])],
        [helper.make_tensor_value_info(output_name, TensorProto.FLOAT, out_shape)],
        initializer=initializers,
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)], ir_version=7)
    return model.SerializeToString()


# Red, green and blue images map to classes 0, 1 and 2.
COLOR_WEIGHTS = np.eye(3, dtype=np.float32) * 5.0
COLOR_LABELS = ["red", "green", "blue"]


@pytest.fixture
def jpeg_factory() -> Callable[..., bytes]:
    return make_jpeg_bytes


@pytest.fixture
def color_model_bytes() -> bytes:
    return make_classifier_model_bytes(COLOR_WEIGHTS)


@pytest.fixture
def model_files(tmp_path: Path, color_model_bytes: bytes) -> Callable[..., Tuple[Path, Path]]:
    """Write a color classifier and its labels to ``tmp_path``."""

    def _write(labels: Sequence[str] = COLOR_LABELS) -> Tuple[Path, Path]:
        model_path = tmp_path / "models" / "output_graph.onnx"
        labels_path = tmp_path / "models" / "output_labels.txt"
        model_path.parent.mkdir(parents=True, exist_ok=True)
        model_path.write_bytes(color_model_bytes)
        labels_path.write_text("\n".join(labels) + "\n", encoding="utf-8")
        return model_path, labels_path

    return _write
