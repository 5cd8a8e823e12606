# tests/unit/test_preprocessing_runtime.py

import io

import numpy as np
import onnxruntime as ort
import pytest
from PIL import Image

from conftest import make_oversized_jpeg_bytes
from imagelabel.config import PreprocessConfig
from imagelabel.errors import ImageDecodeError
from imagelabel.preprocessing.graph import DType, GraphBuilder, PreprocessGraph
from imagelabel.preprocessing.normalize import build_normalize_graph
from imagelabel.preprocessing.runtime import compile_graph, decode_jpeg, run_graph


class TestDecodeJpeg:
    """Unit tests for host-side JPEG decoding."""

    def test_rgb_shape_and_dtype(self, jpeg_factory) -> None:
        arr = decode_jpeg(jpeg_factory(size=(40, 30)), channels=3)

        assert arr.shape == (30, 40, 3)
        assert arr.dtype == np.uint8

    def test_grayscale_keeps_channel_axis(self, jpeg_factory) -> None:
        arr = decode_jpeg(jpeg_factory(size=(8, 6)), channels=1)

        assert arr.shape == (6, 8, 1)

    def test_garbage_bytes_raise(self) -> None:
        with pytest.raises(ImageDecodeError):
            decode_jpeg(b"definitely not an image")

    def test_png_is_rejected(self) -> None:
        buf = io.BytesIO()
        Image.new("RGB", (4, 4)).save(buf, format="PNG")

        with pytest.raises(ImageDecodeError) as exc:
            decode_jpeg(buf.getvalue())

        assert "PNG" in str(exc.value)

    def test_oversized_header_raises_decode_error(self) -> None:
        """A header claiming billions of pixels is rejected as undecodable."""
        with pytest.raises(ImageDecodeError):
            decode_jpeg(make_oversized_jpeg_bytes())

    def test_unsupported_channels_raise(self, jpeg_factory) -> None:
        with pytest.raises(ValueError):
            decode_jpeg(jpeg_factory(), channels=4)


@pytest.mark.slow
class TestRunGraph:
    """Tests that execute compiled preprocessing graphs with ONNX Runtime."""

    def test_default_normalization(self, jpeg_factory) -> None:
        graph = build_normalize_graph(jpeg_factory(color=(128, 128, 128), size=(50, 40)))

        out = run_graph(graph)

        assert out.shape == (1, 299, 299, 3)
        assert out.dtype == np.float32
        np.testing.assert_allclose(out, 128.0 / 255.0, atol=0.03)

    def test_mean_and_std_from_config(self, jpeg_factory) -> None:
        cfg = PreprocessConfig(input_height=16, input_width=12, mean=128.0, std=128.0)
        graph = build_normalize_graph(jpeg_factory(color=(128, 128, 128)), cfg)

        out = run_graph(graph)

        assert out.shape == (1, 16, 12, 3)
        np.testing.assert_allclose(out, 0.0, atol=0.05)

    def test_grayscale_pipeline(self, jpeg_factory) -> None:
        cfg = PreprocessConfig(input_height=10, input_width=10, channels=1)
        out = run_graph(build_normalize_graph(jpeg_factory(color=(255, 255, 255)), cfg))

        assert out.shape == (1, 10, 10, 1)
        np.testing.assert_allclose(out, 1.0, atol=0.02)

    def test_invalid_image_raises_before_execution(self) -> None:
        with pytest.raises(ImageDecodeError):
            run_graph(build_normalize_graph(b"not a jpeg"))

    def test_decode_only_graph_returns_host_value(self, jpeg_factory) -> None:
        b = GraphBuilder()
        graph = PreprocessGraph.from_output(b.decode_jpeg(b.constant("input", jpeg_factory()), 3))

        out = run_graph(graph)

        assert out.shape == (30, 40, 3)
        assert out.dtype == np.uint8

    def test_bilinear_resize_uses_asymmetric_coordinates(self) -> None:
        """Upsampling 2x2 -> 4x4 samples source pixels at x / 2, clamped at the edge."""
        b = GraphBuilder()
        decoded = b.decode_jpeg(b.constant("input", b"unused"), 1)
        out = b.resize_bilinear(
            b.expand_dims(b.cast(decoded, DType.FLOAT), b.constant("make_batch", 0)),
            b.constant("size", [4, 4]),
        )
        graph = PreprocessGraph.from_output(out)
        pixels = np.array([[0, 100], [200, 255]], dtype=np.uint8)[:, :, np.newaxis]
        host_values = {"DecodeJpeg": pixels}

        model = compile_graph(graph, host_values)
        session = ort.InferenceSession(model.SerializeToString(), providers=["CPUExecutionProvider"])
        result = session.run(["ResizeBilinear"], host_values)[0]

        assert result.shape == (1, 4, 4, 1)
        np.testing.assert_allclose(result[0, 0, :, 0], [0.0, 50.0, 100.0, 100.0])
        np.testing.assert_allclose(result[0, :, 0, 0], [0.0, 100.0, 200.0, 200.0])
