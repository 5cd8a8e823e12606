# imagelabel/preprocessing/graph.py

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, List, Tuple, Union

import numpy as np


class OpType(str, Enum):
    """Primitives the preprocessing runtime knows how to execute."""

    CONST = "Const"
    DECODE_JPEG = "DecodeJpeg"
    CAST = "Cast"
    EXPAND_DIMS = "ExpandDims"
    RESIZE_BILINEAR = "ResizeBilinear"
    SUB = "Sub"
    DIV = "Div"


class DType(str, Enum):
    """Element types a node can produce."""

    FLOAT = "float32"
    INT32 = "int32"
    INT64 = "int64"
    UINT8 = "uint8"
    STRING = "string"


# Records compare by identity: two constants holding equal values are still
# distinct nodes in the graph.


@dataclass(frozen=True, eq=False)
class Const:
    name: str
    value: Any
    dtype: DType

    op_type: ClassVar[OpType] = OpType.CONST

    @property
    def inputs(self) -> Tuple["Operation", ...]:
        return ()


@dataclass(frozen=True, eq=False)
class DecodeJpeg:
    name: str
    contents: "Operation"
    channels: int

    op_type: ClassVar[OpType] = OpType.DECODE_JPEG

    @property
    def inputs(self) -> Tuple["Operation", ...]:
        return (self.contents,)


@dataclass(frozen=True, eq=False)
class Cast:
    name: str
    value: "Operation"
    dst_type: DType

    op_type: ClassVar[OpType] = OpType.CAST

    @property
    def inputs(self) -> Tuple["Operation", ...]:
        return (self.value,)


@dataclass(frozen=True, eq=False)
class ExpandDims:
    name: str
    input: "Operation"
    dim: "Operation"

    op_type: ClassVar[OpType] = OpType.EXPAND_DIMS

    @property
    def inputs(self) -> Tuple["Operation", ...]:
        return (self.input, self.dim)


@dataclass(frozen=True, eq=False)
class ResizeBilinear:
    name: str
    images: "Operation"
    size: "Operation"

    op_type: ClassVar[OpType] = OpType.RESIZE_BILINEAR

    @property
    def inputs(self) -> Tuple["Operation", ...]:
        return (self.images, self.size)


@dataclass(frozen=True, eq=False)
class Sub:
    name: str
    x: "Operation"
    y: "Operation"

    op_type: ClassVar[OpType] = OpType.SUB

    @property
    def inputs(self) -> Tuple["Operation", ...]:
        return (self.x, self.y)


@dataclass(frozen=True, eq=False)
class Div:
    name: str
    x: "Operation"
    y: "Operation"

    op_type: ClassVar[OpType] = OpType.DIV

    @property
    def inputs(self) -> Tuple["Operation", ...]:
        return (self.x, self.y)


Operation = Union[Const, DecodeJpeg, Cast, ExpandDims, ResizeBilinear, Sub, Div]


def _infer_const(value: Any) -> Tuple[Any, DType]:
    """Pick the element type for a constant the same way a tensor factory would."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value), DType.STRING
    if isinstance(value, bool):
        raise TypeError("Boolean constants are not supported.")
    if isinstance(value, float):
        return np.asarray(value, dtype=np.float32), DType.FLOAT
    if isinstance(value, int):
        return np.asarray(value, dtype=np.int32), DType.INT32

    arr = np.asarray(value)
    if arr.dtype.kind == "f":
        return arr.astype(np.float32), DType.FLOAT
    if arr.dtype.kind in ("i", "u"):
        return arr.astype(np.int32), DType.INT32
    raise TypeError(f"Unsupported constant value of type {type(value).__name__}.")


class GraphBuilder:
    """Creates operation records for the preprocessing graph.

    The builder holds no graph state: every method returns a new immutable
    record that references its inputs. Node names default to the op type and
    are prefixed with ``scope`` when one is given.
    """

    def __init__(self, scope: str = "") -> None:
        self.scope = scope

    def _name(self, name: str) -> str:
        return f"{self.scope}/{name}" if self.scope else name

    def constant(self, name: str, value: Any) -> Const:
        data, dtype = _infer_const(value)
        return Const(name=self._name(name), value=data, dtype=dtype)

    def decode_jpeg(self, contents: Operation, channels: int) -> DecodeJpeg:
        return DecodeJpeg(name=self._name("DecodeJpeg"), contents=contents, channels=channels)

    def cast(self, value: Operation, dtype: DType) -> Cast:
        return Cast(name=self._name("Cast"), value=value, dst_type=dtype)

    def expand_dims(self, input: Operation, dim: Operation) -> ExpandDims:
        return ExpandDims(name=self._name("ExpandDims"), input=input, dim=dim)

    def resize_bilinear(self, images: Operation, size: Operation) -> ResizeBilinear:
        return ResizeBilinear(name=self._name("ResizeBilinear"), images=images, size=size)

    def sub(self, x: Operation, y: Operation) -> Sub:
        return Sub(name=self._name("Sub"), x=x, y=y)

    def div(self, x: Operation, y: Operation) -> Div:
        return Div(name=self._name("Div"), x=x, y=y)


@dataclass(frozen=True)
class PreprocessGraph:
    """Ordered, immutable description of a preprocessing pipeline.

    ``nodes`` lists every record exactly once, inputs before consumers, and
    ends with ``output``.
    """

    nodes: Tuple[Operation, ...]
    output: Operation

    @classmethod
    def from_output(cls, output: Operation) -> "PreprocessGraph":
        """Collect all records reachable from ``output`` in dependency order.

        Raises:
            ValueError: If two distinct records share a name.
        """
        ordered: List[Operation] = []
        seen: set[int] = set()
        names: Dict[str, Operation] = {}

        def visit(node: Operation) -> None:
            if id(node) in seen:
                return
            seen.add(id(node))
            for parent in node.inputs:
                visit(parent)

            other = names.get(node.name)
            if other is not None:
                raise ValueError(
                    f"Duplicate node name '{node.name}' "
                    f"({other.op_type.value} and {node.op_type.value})."
                )
            names[node.name] = node
            ordered.append(node)

        visit(output)
        return cls(nodes=tuple(ordered), output=output)

    def node(self, name: str) -> Operation:
        """Look up a record by name."""
        for n in self.nodes:
            if n.name == name:
                return n
        raise KeyError(name)

    def op_types(self) -> List[OpType]:
        return [n.op_type for n in self.nodes]
