# imagelabel/preprocessing/normalize.py

from __future__ import annotations

from imagelabel.config import PreprocessConfig
from imagelabel.preprocessing.graph import DType, GraphBuilder, PreprocessGraph


def build_normalize_graph(
    image_bytes: bytes,
    cfg: PreprocessConfig | None = None,
) -> PreprocessGraph:
    """Describe the graph that turns raw JPEG bytes into a model input.

    The pipeline decodes the JPEG, casts it to float, adds a batch dimension,
    resizes it bilinearly to ``input_height x input_width`` and normalizes
    every channel with ``(value - mean) / std``.

    The image is embedded as a constant because the graph is built once per
    image. If the graph were reused for several images, a placeholder input
    would be more appropriate.

    Args:
        image_bytes: Raw JPEG file content.
        cfg: Preprocessing settings; defaults to :class:`PreprocessConfig`.

    Returns:
        Immutable graph whose output is a float tensor of shape
        ``[1, input_height, input_width, channels]``.
    """
    cfg = cfg or PreprocessConfig()
    b = GraphBuilder()

    image = b.constant("input", image_bytes)
    output = b.div(
        b.sub(
            b.resize_bilinear(
                b.expand_dims(
                    b.cast(b.decode_jpeg(image, cfg.channels), DType.FLOAT),
                    b.constant("make_batch", 0),
                ),
                b.constant("size", [cfg.input_height, cfg.input_width]),
            ),
            b.constant("mean", float(cfg.mean)),
        ),
        b.constant("std", float(cfg.std)),
    )
    return PreprocessGraph.from_output(output)
