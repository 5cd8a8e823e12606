# imagelabel/data/loaders.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generic, List, Optional, TypeVar

from imagelabel.errors import LoadError
from imagelabel.utils.logger import setup_logger

logger = setup_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class LoadResult(Generic[T]):
    """Outcome of reading one input file.

    Exactly one of ``value`` / ``error`` is set. Loaders never terminate the
    process; the caller decides what a failure means.
    """

    path: Path
    value: Optional[T] = None
    error: Optional[LoadError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the loaded value, raising the stored error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


def _load(path: str | Path, reader: Callable[[Path], T], kind: str) -> LoadResult[T]:
    p = Path(path)
    try:
        value = reader(p)
    except (OSError, UnicodeDecodeError) as exc:
        reason = exc.strerror if isinstance(exc, OSError) and exc.strerror else str(exc)
        error = LoadError(p.as_posix(), reason)
        logger.error(str(error), extra={"phase": f"load_{kind}"})
        return LoadResult(path=p, error=error)

    logger.info("Loaded %s file.", kind, extra={"phase": f"load_{kind}"})
    return LoadResult(path=p, value=value)


def _read_lines(path: Path) -> List[str]:
    # Only \n, \r\n and \r end a label; other Unicode separators stay inside it.
    with path.open("r", encoding="utf-8") as f:
        return [line.rstrip("\r\n") for line in f]


def load_model_bytes(path: str | Path) -> LoadResult[bytes]:
    """Read a serialized model into memory."""
    return _load(path, Path.read_bytes, "model")


def load_labels(path: str | Path) -> LoadResult[List[str]]:
    """Read a UTF-8 label file, one class name per line, in output order."""
    return _load(path, _read_lines, "labels")


def load_image_bytes(path: str | Path) -> LoadResult[bytes]:
    """Read raw image file content."""
    return _load(path, Path.read_bytes, "image")
