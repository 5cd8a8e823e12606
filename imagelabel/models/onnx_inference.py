# imagelabel/models/onnx_inference.py

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence

import numpy as np
import onnxruntime as ort

from imagelabel.errors import ShapeMismatchError
from imagelabel.utils.logger import setup_logger

logger = setup_logger(__name__)


class OnnxImageClassifier:
    """Thin wrapper around an ONNX Runtime session for image classification.

    The wrapped model takes one normalized image batch and produces a
    ``[1, N]`` tensor of class probabilities, N being the number of labels.
    """

    def __init__(
        self,
        session: ort.InferenceSession,
        *,
        input_name: str = "Mul",
        output_name: str = "final_result",
    ) -> None:
        self.session = session
        self.input_name = input_name
        self.output_name = output_name

        available_inputs = [i.name for i in session.get_inputs()]
        if input_name not in available_inputs:
            raise ValueError(
                f"Model has no input named '{input_name}'. Available inputs: {available_inputs}"
            )
        available_outputs = [o.name for o in session.get_outputs()]
        if output_name not in available_outputs:
            raise ValueError(
                f"Model has no output named '{output_name}'. Available outputs: {available_outputs}"
            )

    @classmethod
    def from_bytes(
        cls,
        model_bytes: bytes,
        *,
        input_name: str = "Mul",
        output_name: str = "final_result",
        providers: Optional[Sequence[str]] = None,
        sess_options: Optional[ort.SessionOptions] = None,
    ) -> "OnnxImageClassifier":
        """Create a classifier from a serialized ONNX model."""
        session = ort.InferenceSession(
            model_bytes,
            sess_options=sess_options,
            providers=list(providers or ["CPUExecutionProvider"]),
        )
        return cls(session, input_name=input_name, output_name=output_name)

    @classmethod
    def from_file(
        cls,
        onnx_path: str | Path,
        *,
        input_name: str = "Mul",
        output_name: str = "final_result",
        providers: Optional[Sequence[str]] = None,
        sess_options: Optional[ort.SessionOptions] = None,
    ) -> "OnnxImageClassifier":
        """Create a classifier from an ONNX file on disk."""
        path = Path(onnx_path)
        logger.info("Loading ONNX model", extra={"model_path": path.as_posix()})
        return cls.from_bytes(
            path.read_bytes(),
            input_name=input_name,
            output_name=output_name,
            providers=providers,
            sess_options=sess_options,
        )

    @property
    def num_classes(self) -> Optional[int]:
        """Width N of the declared ``[1, N]`` output, or None if it is dynamic."""
        for output in self.session.get_outputs():
            if output.name == self.output_name:
                shape = output.shape
                if len(shape) == 2 and isinstance(shape[1], int):
                    return shape[1]
        return None

    def predict(self, image: np.ndarray) -> np.ndarray:
        """Run the model on one normalized image.

        Args:
            image: Float tensor of shape ``[1, height, width, channels]``.

        Returns:
            1-D float array of N class probabilities.

        Raises:
            ShapeMismatchError: If the model output is not shaped ``[1, N]``.
        """
        feed = {self.input_name: np.asarray(image, dtype=np.float32)}
        result = self.session.run([self.output_name], feed)[0]

        shape = tuple(result.shape)
        if len(shape) != 2 or shape[0] != 1:
            raise ShapeMismatchError(
                "Expected model to produce a [1 N] shaped tensor where N is the number "
                f"of labels, instead it produced one with shape {list(shape)}"
            )

        return np.asarray(result[0], dtype=np.float32)
