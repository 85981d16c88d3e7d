"""
Document Extractor
==================

Converts a stored file into plain text.

Dispatch order: file extension first, declared media type second.
Supported: PDF (PyPDF2), DOCX (python-docx), plain text, Markdown.
Anything else is decoded as raw text.
"""

import logging
import os
from typing import Callable, Dict

from docx import Document as DocxDocument
from PyPDF2 import PdfReader

from ..core.errors import ExtractionError

logger = logging.getLogger(__name__)

PDF = "pdf"
DOCX = "docx"
TEXT = "text"

EXTENSION_KINDS: Dict[str, str] = {
    ".pdf": PDF,
    ".docx": DOCX,
    ".txt": TEXT,
    ".md": TEXT,
    ".markdown": TEXT,
}

MIME_KINDS: Dict[str, str] = {
    "application/pdf": PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DOCX,
    "text/plain": TEXT,
    "text/markdown": TEXT,
    "text/x-markdown": TEXT,
}


def detect_kind(file_path: str, mime_type: str) -> str:
    """Resolve the parser to use; unknown formats fall back to raw text."""
    ext = os.path.splitext(file_path)[1].lower()
    if ext in EXTENSION_KINDS:
        return EXTENSION_KINDS[ext]
    mime = (mime_type or "").split(";")[0].strip().lower()
    return MIME_KINDS.get(mime, TEXT)


class DocumentExtractor:
    """Extracts text from PDF, DOCX, text and Markdown files."""

    def __init__(self):
        self._parsers: Dict[str, Callable[[str], str]] = {
            PDF: self._extract_pdf,
            DOCX: self._extract_docx,
            TEXT: self._extract_text,
        }

    def extract(self, file_path: str, mime_type: str = "") -> str:
        """
        Extract the text of a stored file.

        Args:
            file_path: Location of the stored file
            mime_type: Declared media type from the upload

        Returns:
            Extracted text

        Raises:
            ExtractionError: If the file is empty, missing, or the parser fails
        """
        kind = detect_kind(file_path, mime_type)

        try:
            if os.path.getsize(file_path) == 0:
                raise ExtractionError("Document file is empty", file_path=file_path)
            text = self._parsers[kind](file_path)
        except ExtractionError:
            raise
        except Exception as e:
            logger.error(f"Error extracting text from {file_path}: {e}")
            raise ExtractionError(
                f"Failed to extract text from document: {e}",
                file_path=file_path,
            ) from e

        logger.debug(f"Extracted {len(text)} characters from {file_path} as {kind}")
        return text

    @staticmethod
    def _extract_text(file_path: str) -> str:
        with open(file_path, "rb") as f:
            content = f.read()
        try:
            return content.decode("utf-8")
        except UnicodeDecodeError:
            return content.decode("latin-1")

    @staticmethod
    def _extract_pdf(file_path: str) -> str:
        reader = PdfReader(file_path)
        text_parts = []
        for page in reader.pages:
            text = page.extract_text()
            if text:
                text_parts.append(text)
        return "\n\n".join(text_parts)

    @staticmethod
    def _extract_docx(file_path: str) -> str:
        doc = DocxDocument(file_path)
        return "\n".join(paragraph.text for paragraph in doc.paragraphs)
