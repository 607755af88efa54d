"""File canonicalizers.

A canonicalizer turns raw file text into a stable form before hashing, so that
line endings, trailing blanks and comments do not change a file's hash. Every
canonicalizer:

- rejects ``None`` with ``TypeError``
- maps ``\\r\\n`` and ``\\r`` to ``\\n``
- ends its output with exactly one ``\\n`` (empty input gives ``"\\n"``)
- is idempotent

:class:`CanonicalizerRegistry` maps lowercase file extensions (with the leading
dot) to canonicalizers; the last registration for an extension wins.
"""

from __future__ import annotations

import abc
import logging
import pathlib
import re
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from simplelicense.core import detect_format, load_json, load_yaml

logger = logging.getLogger(__name__)


def normalize_extension(ext: str) -> str:
    ext = (ext or "").strip().lower()
    if not ext:
        raise ValueError("extension must be a non-empty string")
    return ext if ext.startswith(".") else "." + ext


def _split_lines(text: str) -> List[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


class FileCanonicalizer(abc.ABC):
    """Base class: subclasses implement :meth:`canonicalize_lines`."""

    name: str = ""
    default_extensions: Tuple[str, ...] = ()

    def __init__(self, extensions: Optional[Iterable[str]] = None) -> None:
        exts = list(extensions or []) or list(self.default_extensions)
        self.extensions: Tuple[str, ...] = tuple(dict.fromkeys(normalize_extension(e) for e in exts))

    def canonicalize(self, text: str) -> str:
        if text is None:
            raise TypeError(f"{type(self).__name__}.canonicalize() requires text, got None")
        if not isinstance(text, str):
            raise TypeError(f"{type(self).__name__}.canonicalize() requires str, got {type(text).__name__}")
        return "\n".join(self.canonicalize_lines(_split_lines(text))) + "\n"

    @abc.abstractmethod
    def canonicalize_lines(self, lines: List[str]) -> List[str]:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(extensions={list(self.extensions)!r})"


class GenericTextCanonicalizer(FileCanonicalizer):
    """Conservative normalization for arbitrary text files.

    Leading indentation (spaces and tabs) is kept byte-for-byte; runs of two or
    more whitespace characters after it collapse to one space. Full-line
    comments starting with ``#``, ``;`` or ``//`` are dropped, as are blank
    lines.
    """

    name = "text"
    default_extensions = (".txt",)

    COMMENT_MARKERS = ("#", ";", "//")
    _INDENT_RE = re.compile(r"^[ \t]*")
    _RUN_RE = re.compile(r"\s{2,}")

    def canonicalize_lines(self, lines: List[str]) -> List[str]:
        out = []
        for raw in lines:
            line = raw.rstrip()
            if not line.strip():
                continue
            if line.lstrip().startswith(self.COMMENT_MARKERS):
                continue
            indent = self._INDENT_RE.match(line).group(0)
            body = self._RUN_RE.sub(" ", line[len(indent):])
            out.append(indent + body)
        return out


class InpCanonicalizer(FileCanonicalizer):
    """Normalization for EPANET-style ``.inp`` network model files.

    - ``;`` starts a comment (full-line or inline)
    - section headers (``[name]``) are uppercased; the ``[TITLE]`` section is
      dropped up to the next header
    - every line is trimmed and whitespace runs collapse to one space
    """

    name = "inp"
    default_extensions = (".inp",)

    TITLE_SECTION = "TITLE"
    _HEADER_RE = re.compile(r"^\s*\[(?P<name>[^\]]+)\]\s*$")
    _WS_RE = re.compile(r"\s+")

    def canonicalize_lines(self, lines: List[str]) -> List[str]:
        out = []
        in_title = False
        for raw in lines:
            line = raw.split(";", 1)[0]
            m = self._HEADER_RE.match(line)
            section = self._WS_RE.sub(" ", m.group("name").strip()).upper() if m else ""
            if section:
                in_title = section == self.TITLE_SECTION
                if not in_title:
                    out.append(f"[{section}]")
                continue
            if in_title:
                continue
            line = self._WS_RE.sub(" ", line.strip())
            if line:
                out.append(line)
        return out


CANONICALIZER_TYPES: Dict[str, Type[FileCanonicalizer]] = {
    GenericTextCanonicalizer.name: GenericTextCanonicalizer,
    InpCanonicalizer.name: InpCanonicalizer,
}


class CanonicalizerRegistry:
    """Extension to canonicalizer lookup."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_ext: Dict[str, FileCanonicalizer] = {}

    @classmethod
    def with_defaults(cls) -> "CanonicalizerRegistry":
        reg = cls()
        reg.register(GenericTextCanonicalizer())
        reg.register(InpCanonicalizer())
        return reg

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Iterable[str]]) -> "CanonicalizerRegistry":
        """Build a registry from ``{"text": [".txt", ...], "inp": [".inp"]}``."""
        reg = cls()
        reg.load_mapping(mapping)
        return reg

    def load_mapping(self, mapping: Mapping[str, Iterable[str]]) -> None:
        if not isinstance(mapping, Mapping):
            raise ValueError("canonicalizer mapping must be an object of kind -> [extensions]")
        for kind, exts in mapping.items():
            cls = CANONICALIZER_TYPES.get(str(kind).strip().lower())
            if cls is None:
                raise ValueError(
                    f"unknown canonicalizer kind {kind!r} (known: {', '.join(sorted(CANONICALIZER_TYPES))})"
                )
            if isinstance(exts, str):
                exts = [exts]
            self.register(cls(list(exts)))

    def load_file(self, path: Union[str, pathlib.Path]) -> None:
        """Load a mapping from a JSON or YAML file."""
        data = load_json(path) if detect_format(path) == "json" else load_yaml(path)
        self.load_mapping(data or {})

    def register(self, canonicalizer: FileCanonicalizer, extensions: Optional[Iterable[str]] = None) -> None:
        if canonicalizer is None:
            raise TypeError("canonicalizer must not be None")
        exts = [normalize_extension(e) for e in (extensions or canonicalizer.extensions)]
        with self._lock:
            table = dict(self._by_ext)
            for ext in exts:
                prev = table.get(ext)
                if prev is not None and prev is not canonicalizer:
                    logger.debug("canonicalizer for %s replaced by %r", ext, canonicalizer)
                table[ext] = canonicalizer
            self._by_ext = table

    def get(self, extension: str) -> Optional[FileCanonicalizer]:
        try:
            return self._by_ext.get(normalize_extension(extension))
        except ValueError:
            return None

    def for_path(self, path: Union[str, pathlib.Path]) -> Optional[FileCanonicalizer]:
        suffix = pathlib.Path(path).suffix
        return self.get(suffix) if suffix else None

    def extensions(self) -> List[str]:
        return sorted(self._by_ext)

    def as_mapping(self) -> Dict[str, Any]:
        return {ext: type(c).__name__ for ext, c in sorted(self._by_ext.items())}

    def __contains__(self, extension: object) -> bool:
        return isinstance(extension, str) and self.get(extension) is not None

    def __len__(self) -> int:
        return len(self._by_ext)
