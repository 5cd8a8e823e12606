# imagelabel/preprocessing/runtime.py

from __future__ import annotations

import io
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import onnx
import onnxruntime as ort
from onnx import TensorProto, helper, numpy_helper
from PIL import Image, UnidentifiedImageError

from imagelabel.errors import ImageDecodeError
from imagelabel.preprocessing.graph import (
    Cast,
    Const,
    DecodeJpeg,
    Div,
    DType,
    ExpandDims,
    Operation,
    PreprocessGraph,
    ResizeBilinear,
    Sub,
)
from imagelabel.utils.logger import setup_logger

logger = setup_logger(__name__)

ONNX_OPSET = 13

_ONNX_TYPES: Dict[DType, int] = {
    DType.FLOAT: TensorProto.FLOAT,
    DType.INT32: TensorProto.INT32,
    DType.INT64: TensorProto.INT64,
    DType.UINT8: TensorProto.UINT8,
}

_NUMPY_TYPES: Dict[DType, type] = {
    DType.FLOAT: np.float32,
    DType.INT32: np.int32,
    DType.INT64: np.int64,
    DType.UINT8: np.uint8,
}

_PIL_MODES = {1: "L", 3: "RGB"}

Shape = Tuple[int, ...]


def decode_jpeg(data: bytes, channels: int = 3) -> np.ndarray:
    """Decode JPEG bytes into a uint8 array of shape [height, width, channels].

    Raises:
        ImageDecodeError: If the bytes are not a decodable JPEG image.
        ValueError: If ``channels`` is not 1 or 3.
    """
    mode = _PIL_MODES.get(channels)
    if mode is None:
        raise ValueError(f"Unsupported channel count for JPEG decoding: {channels}")

    try:
        with Image.open(io.BytesIO(data)) as img:
            if img.format != "JPEG":
                raise ImageDecodeError(
                    f"Expected JPEG image data, got {img.format or 'unknown'} format."
                )
            arr = np.asarray(img.convert(mode), dtype=np.uint8)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as exc:
        raise ImageDecodeError(f"Unable to decode JPEG image: {exc}") from exc

    if arr.ndim == 2:
        arr = arr[:, :, np.newaxis]
    return arr


def _const_of(node: Operation, consumer: Operation) -> Const:
    if not isinstance(node, Const):
        raise ValueError(
            f"{consumer.op_type.value} '{consumer.name}' requires a constant "
            f"'{node.name}' input, got {node.op_type.value}."
        )
    return node


class _OnnxCompiler:
    """Lower preprocessing records that run inside ONNX Runtime to an ONNX model.

    Host-evaluated records (JPEG decoding and the byte constants feeding it)
    become graph inputs; everything downstream becomes ONNX nodes.
    """

    def __init__(self, host_values: Dict[str, np.ndarray]) -> None:
        self.host_values = host_values
        self.nodes: List[onnx.NodeProto] = []
        self.initializers: List[onnx.TensorProto] = []
        self.inputs: List[onnx.ValueInfoProto] = []
        self.shapes: Dict[str, Shape] = {}
        self.dtypes: Dict[str, DType] = {}

    def _initializer(self, name: str, value: np.ndarray) -> str:
        if all(init.name != name for init in self.initializers):
            self.initializers.append(numpy_helper.from_array(value, name=name))
        return name

    def _operand(self, node: Operation, like: DType) -> str:
        """Name of a binary-op operand; constants are materialized as ``like``."""
        if isinstance(node, Const):
            value = np.asarray(node.value, dtype=_NUMPY_TYPES[like])
            self.shapes[node.name] = tuple(value.shape)
            self.dtypes[node.name] = like
            return self._initializer(node.name, value)
        if self.dtypes[node.name] != like:
            raise ValueError(
                f"Operand '{node.name}' has type {self.dtypes[node.name].value}, "
                f"expected {like.value}."
            )
        return node.name

    def compile(self, graph: PreprocessGraph) -> onnx.ModelProto:
        for node in graph.nodes:
            if isinstance(node, Const):
                # Constants are emitted by their consumers.
                continue
            if isinstance(node, DecodeJpeg):
                value = self.host_values[node.name]
                self.shapes[node.name] = tuple(value.shape)
                self.dtypes[node.name] = DType.UINT8
                self.inputs.append(
                    helper.make_tensor_value_info(node.name, TensorProto.UINT8, list(value.shape))
                )
            elif isinstance(node, Cast):
                self._cast(node)
            elif isinstance(node, ExpandDims):
                self._expand_dims(node)
            elif isinstance(node, ResizeBilinear):
                self._resize_bilinear(node)
            elif isinstance(node, (Sub, Div)):
                self._binary(node)
            else:
                raise TypeError(f"Unsupported operation: {node!r}")

        out = graph.output
        outputs = [
            helper.make_tensor_value_info(
                out.name, _ONNX_TYPES[self.dtypes[out.name]], list(self.shapes[out.name])
            )
        ]
        onnx_graph = helper.make_graph(
            self.nodes,
            "preprocess",
            self.inputs,
            outputs,
            initializer=self.initializers,
        )
        return helper.make_model(
            onnx_graph,
            opset_imports=[helper.make_opsetid("", ONNX_OPSET)],
            ir_version=7,
            producer_name="imagelabel",
        )

    def _cast(self, node: Cast) -> None:
        self.nodes.append(
            helper.make_node(
                "Cast",
                [node.value.name],
                [node.name],
                name=node.name,
                to=_ONNX_TYPES[node.dst_type],
            )
        )
        self.shapes[node.name] = self.shapes[node.value.name]
        self.dtypes[node.name] = node.dst_type

    def _expand_dims(self, node: ExpandDims) -> None:
        in_shape = self.shapes[node.input.name]
        dim = int(np.asarray(_const_of(node.dim, node).value).reshape(-1)[0])
        if dim < 0:
            dim += len(in_shape) + 1
        if not 0 <= dim <= len(in_shape):
            raise ValueError(f"ExpandDims '{node.name}': dim {dim} out of range for rank {len(in_shape)}.")

        axes = self._initializer(f"{node.name}/axes", np.array([dim], dtype=np.int64))
        self.nodes.append(
            helper.make_node("Unsqueeze", [node.input.name, axes], [node.name], name=node.name)
        )
        self.shapes[node.name] = in_shape[:dim] + (1,) + in_shape[dim:]
        self.dtypes[node.name] = self.dtypes[node.input.name]

    def _resize_bilinear(self, node: ResizeBilinear) -> None:
        in_shape = self.shapes[node.images.name]
        if len(in_shape) != 4:
            raise ValueError(
                f"ResizeBilinear '{node.name}' expects a [batch, height, width, channels] "
                f"input, got shape {list(in_shape)}."
            )
        size = np.asarray(_const_of(node.size, node).value).reshape(-1)
        if size.shape != (2,):
            raise ValueError(f"ResizeBilinear '{node.name}': size must hold [height, width].")
        height, width = int(size[0]), int(size[1])
        batch, _, _, channels = in_shape

        # ONNX Runtime resizes NCHW tensors; transpose around the resize.
        nchw = f"{node.name}/nchw"
        resized = f"{node.name}/resized"
        sizes = self._initializer(
            f"{node.name}/sizes", np.array([batch, channels, height, width], dtype=np.int64)
        )
        self.nodes.extend(
            [
                helper.make_node(
                    "Transpose", [node.images.name], [nchw], name=nchw, perm=[0, 3, 1, 2]
                ),
                helper.make_node(
                    "Resize",
                    [nchw, "", "", sizes],
                    [resized],
                    name=resized,
                    mode="linear",
                    # Matches align_corners=False, half_pixel_centers=False.
                    coordinate_transformation_mode="asymmetric",
                ),
                helper.make_node(
                    "Transpose", [resized], [node.name], name=node.name, perm=[0, 2, 3, 1]
                ),
            ]
        )
        self.shapes[node.name] = (batch, height, width, channels)
        self.dtypes[node.name] = self.dtypes[node.images.name]

    def _binary(self, node: Sub | Div) -> None:
        if isinstance(node.x, Const) and isinstance(node.y, Const):
            raise ValueError(f"{node.op_type.value} '{node.name}' has no tensor operand.")
        like = self.dtypes[node.y.name] if isinstance(node.x, Const) else self.dtypes[node.x.name]
        x = self._operand(node.x, like)
        y = self._operand(node.y, like)
        self.nodes.append(helper.make_node(node.op_type.value, [x, y], [node.name], name=node.name))
        self.shapes[node.name] = tuple(np.broadcast_shapes(self.shapes[x], self.shapes[y]))
        self.dtypes[node.name] = like


def _evaluate_host_ops(graph: PreprocessGraph) -> Dict[str, np.ndarray]:
    """Run the records ONNX Runtime cannot execute: JPEG decoding."""
    values: Dict[str, np.ndarray] = {}
    for node in graph.nodes:
        if isinstance(node, DecodeJpeg):
            contents = _const_of(node.contents, node)
            if contents.dtype != DType.STRING:
                raise ValueError(f"DecodeJpeg '{node.name}' requires a byte string input.")
            values[node.name] = decode_jpeg(contents.value, node.channels)
    return values


def compile_graph(
    graph: PreprocessGraph,
    host_values: Dict[str, np.ndarray],
) -> onnx.ModelProto:
    """Build the ONNX model for ``graph`` given already decoded host inputs."""
    return _OnnxCompiler(host_values).compile(graph)


def run_graph(
    graph: PreprocessGraph,
    providers: Optional[Sequence[str]] = None,
) -> np.ndarray:
    """Execute a preprocessing graph and return the value of its output.

    Args:
        graph: Graph produced by the builder.
        providers: ONNX Runtime execution providers. Defaults to CPU.

    Returns:
        The output tensor as a numpy array.

    Raises:
        ImageDecodeError: If the embedded image cannot be decoded.
    """
    host_values = _evaluate_host_ops(graph)
    if graph.output.name in host_values:
        return host_values[graph.output.name]

    model = compile_graph(graph, host_values)
    session = ort.InferenceSession(
        model.SerializeToString(),
        providers=list(providers or ["CPUExecutionProvider"]),
    )
    result = session.run([graph.output.name], host_values)[0]

    logger.debug(
        "Preprocessing graph executed",
        extra={"phase": "preprocess", "shape": list(result.shape)},
    )
    return result
