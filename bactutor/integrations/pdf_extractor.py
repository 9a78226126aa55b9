"""Document text extraction for lesson uploads and yearly programs."""

from __future__ import annotations

from pathlib import Path

import fitz  # PyMuPDF
from loguru import logger

from bactutor.errors import ExtractionError

TEXT_SUFFIXES = {".txt", ".md"}


def extract_text(path: Path | str) -> str:
    """
    Extract plain text from a PDF (page by page) or a text file.

    Raises:
        ExtractionError: unreadable file or no text found
    """
    path = Path(path)
    if not path.is_file():
        raise ExtractionError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix in TEXT_SUFFIXES:
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            raise ExtractionError(f"Cannot read {path.name}: {e}") from e
    elif suffix == ".pdf":
        text = _extract_pdf(path)
    else:
        raise ExtractionError(f"Unsupported file type: {path.suffix or path.name}")

    text = text.strip()
    if not text:
        raise ExtractionError(f"No text found in {path.name}")

    logger.info(f"Extracted {len(text)} characters from {path.name}")
    return text


def _extract_pdf(path: Path) -> str:
    try:
        with fitz.open(str(path)) as doc:
            pages = [page.get_text() for page in doc]
    except (fitz.FileDataError, RuntimeError) as e:
        raise ExtractionError(f"Cannot read PDF {path.name}: {e}") from e
    return "\n\n".join(pages)
