"""Text file ingestion into a highlight workspace.

Reads uploaded files into plain strings and loads them in the order given.
A file whose name is already loaded is skipped, so re-uploading the same
file never creates a second document.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from marginalia.highlights.workspace import HighlightWorkspace

logger = logging.getLogger(__name__)


class DuplicateDocumentError(Exception):
    """Raised when a document with the same name is already loaded."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Document {name!r} is already loaded")


def decode_text(content: bytes) -> str:
    """Decode file bytes as UTF-8, falling back to latin-1."""
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        # latin-1 accepts all byte values
        return content.decode("latin-1")


def read_text_file(path: Path | str) -> str:
    return decode_text(Path(path).read_bytes())


def load_file(workspace: HighlightWorkspace, path: Path | str) -> str:
    """Load one file into *workspace*, returning the new document id.

    Raises:
        DuplicateDocumentError: A document with this file name is loaded.
        OSError: The file could not be read.
    """
    path = Path(path)
    if workspace.find_document(path.name) is not None:
        raise DuplicateDocumentError(path.name)
    return workspace.load_document(path.name, read_text_file(path))


def load_files(
    workspace: HighlightWorkspace, paths: Iterable[Path | str]
) -> list[str]:
    """Load several files in order, skipping names that are already loaded.

    Returns:
        Ids of the documents that were loaded.
    """
    loaded: list[str] = []
    for path in paths:
        try:
            loaded.append(load_file(workspace, path))
        except DuplicateDocumentError as exc:
            logger.warning("Skipping %s: %s", path, exc)
    return loaded
