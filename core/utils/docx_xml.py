"""Utilities for docx XML operations.

All container-level access to docx content lives here: plain text extraction
for detection and the raw ``word/document.xml`` body used for substitution.
"""

from __future__ import annotations

import io
import zipfile
from pathlib import Path

from docx import Document
from docx.table import Table
from docx.text.paragraph import Paragraph

DOCUMENT_XML_PART = "word/document.xml"

DocxSource = Path | bytes


def extract_docx_text(source: DocxSource) -> str:
    """Return body text in document order, one line per paragraph.

    Table cells are walked row by row; a merged cell is emitted once.
    """

    document = Document(_as_stream(source))
    lines: list[str] = []
    _collect_blocks(document.iter_inner_content(), lines, set())
    return "\n".join(lines)


def read_document_xml(source: DocxSource) -> str:
    """Return the serialized main document part as text."""

    try:
        with zipfile.ZipFile(_as_stream(source)) as archive:
            return archive.read(DOCUMENT_XML_PART).decode("utf-8")
    except zipfile.BadZipFile as exc:
        raise ValueError("Document is not a valid docx container") from exc
    except KeyError as exc:
        raise ValueError(f"Document has no {DOCUMENT_XML_PART} part") from exc


def replace_document_xml(source: DocxSource, document_xml: str) -> bytes:
    """Return a copy of the docx container with ``word/document.xml`` replaced."""

    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(_as_stream(source)) as original, zipfile.ZipFile(
            buffer, "w", compression=zipfile.ZIP_DEFLATED
        ) as rewritten:
            if DOCUMENT_XML_PART not in original.namelist():
                raise ValueError(f"Document has no {DOCUMENT_XML_PART} part")
            for item in original.infolist():
                if item.filename == DOCUMENT_XML_PART:
                    rewritten.writestr(item, document_xml.encode("utf-8"))
                else:
                    rewritten.writestr(item, original.read(item.filename))
    except zipfile.BadZipFile as exc:
        raise ValueError("Document is not a valid docx container") from exc
    return buffer.getvalue()


def _collect_blocks(blocks, lines: list[str], seen_cells: set[object]) -> None:
    for block in blocks:
        if isinstance(block, Paragraph):
            lines.append(block.text)
        elif isinstance(block, Table):
            _collect_table(block, lines, seen_cells)


def _collect_table(table: Table, lines: list[str], seen_cells: set[object]) -> None:
    for row in table.rows:
        for cell in row.cells:
            if cell._tc in seen_cells:
                continue
            seen_cells.add(cell._tc)
            _collect_blocks(cell.iter_inner_content(), lines, seen_cells)


def _as_stream(source: DocxSource) -> io.BytesIO | str:
    if isinstance(source, bytes):
        return io.BytesIO(source)
    return str(source)
