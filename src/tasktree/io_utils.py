"""UTF-8 text and JSON snapshot file helpers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

PathLike = Path | str


def read_text(path: PathLike, errors: str = "strict", **kwargs: Any) -> str:
    """Read path as text with UTF-8 encoding. Forwards extra kwargs to Path.read_text."""
    p = path if isinstance(path, Path) else Path(path)
    return p.read_text(encoding="utf-8", errors=errors, **kwargs)


def write_text(path: PathLike, text: str, **kwargs: Any) -> None:
    """Write text to path with UTF-8 encoding. Forwards extra kwargs to Path.write_text."""
    p = path if isinstance(path, Path) else Path(path)
    p.write_text(text, encoding="utf-8", **kwargs)


def load_snapshot(path: PathLike) -> tuple[list[dict[str, Any]], str]:
    """Load a snapshot file and return ``(documents, project_type)``.

    A snapshot file holds either a JSON list of project documents or an
    object with a ``documents`` list and an optional ``projectType`` label.
    """
    data = json.loads(read_text(path))
    if isinstance(data, list):
        return [d for d in data if isinstance(d, dict)], ""
    if isinstance(data, dict):
        docs = data.get("documents") or []
        if not isinstance(docs, list):
            raise ValueError(f"{path}: 'documents' must be a list")
        project_type = str(data.get("projectType") or "")
        return [d for d in docs if isinstance(d, dict)], project_type
    raise ValueError(f"{path}: expected a list or an object with 'documents'")


def dump_snapshot(path: PathLike, documents: list[dict[str, Any]], project_type: str = "") -> None:
    """Write documents in the snapshot file format read by :func:`load_snapshot`."""
    payload: dict[str, Any] = {"documents": documents}
    if project_type:
        payload["projectType"] = project_type
    write_text(path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
