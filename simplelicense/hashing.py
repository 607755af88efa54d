"""SHA-256 hashing of text and files.

When a canonicalizer applies, the file text is canonicalized before hashing and
the digest covers the encoded canonical text. Otherwise the raw bytes are
hashed.
"""

from __future__ import annotations

import codecs
import pathlib
from typing import Dict, Iterable, Optional, Union

from simplelicense.canonicalizers import CanonicalizerRegistry, FileCanonicalizer
from simplelicense.core import sha256_bytes

DEFAULT_ENCODING = "utf-8"

PathLike = Union[str, pathlib.Path]


def resolve_encoding(name: Optional[str]) -> str:
    """Return the codec name for ``name`` (``utf8``, ``UTF-8``, ``latin-1`` ...)."""
    name = (name or DEFAULT_ENCODING).strip()
    try:
        return codecs.lookup(name).name
    except LookupError as exc:
        raise ValueError(f"unknown text encoding: {name!r}") from exc


def sha256_text(text: str, encoding: str = DEFAULT_ENCODING) -> str:
    if text is None:
        raise TypeError("text must not be None")
    return sha256_bytes(text.encode(resolve_encoding(encoding)))


def hash_file(
    path: PathLike,
    canonicalizer: Optional[FileCanonicalizer] = None,
    encoding: str = DEFAULT_ENCODING,
) -> str:
    """Lowercase hex SHA-256 of a file, canonicalized first when a canonicalizer is given."""
    if path is None:
        raise TypeError("path must not be None")
    data = pathlib.Path(path).read_bytes()
    if canonicalizer is None:
        return sha256_bytes(data)
    enc = resolve_encoding(encoding)
    # utf-8-sig drops a leading BOM when decoding only
    text = data.decode("utf-8-sig" if enc == "utf-8" else enc)
    return sha256_text(canonicalizer.canonicalize(text), enc)


def hash_files(
    paths: Iterable[PathLike],
    registry: Optional[CanonicalizerRegistry] = None,
    encoding: str = DEFAULT_ENCODING,
    base_dir: Optional[PathLike] = None,
) -> Dict[str, str]:
    """Hash several files, keyed by the path as given.

    Relative paths resolve against ``base_dir`` when set. Each file is
    canonicalized by the registry entry for its extension, if any.
    """
    out: Dict[str, str] = {}
    for p in paths:
        full = pathlib.Path(p)
        if base_dir is not None and not full.is_absolute():
            full = pathlib.Path(base_dir) / full
        if not full.is_file():
            raise FileNotFoundError(f"File not found for hashing: {full}")
        canonicalizer = registry.for_path(full) if registry is not None else None
        out[str(p)] = hash_file(full, canonicalizer, encoding)
    return out
