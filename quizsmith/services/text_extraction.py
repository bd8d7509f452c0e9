"""
Document Text Extraction

Format-dispatching binary -> text conversion for uploaded documents.

Each format is a TextExtractor strategy registered on an ExtractorRegistry.
Dispatch tries the declared MIME type first and falls back to the filename
extension, since browsers and storage layers often report a generic or wrong
content type. The first matching extractor wins.

Supported out of the box:
- plain text (.txt, .md, .csv, ...)
- word-processor documents (.docx via python-docx)
- presentations (.pptx via python-pptx)
- PDFs with a text layer (pypdf). There is no OCR: image-only pages
  contribute nothing and the minimum-length check catches empty results.
"""

import io
import logging
import os
import re
import unicodedata
from typing import Iterable, List, Optional, Tuple

from quizsmith.exceptions import DocumentDecodeError, EmptyExtraction, UnsupportedFormat

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 50

# Postgres TEXT cannot contain NUL; keep \t \n \r.
_CTRL_RE = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """NFC-normalize, drop control characters and collapse runs of blank lines."""
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CTRL_RE.sub(" ", text)
    text = unicodedata.normalize("NFC", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def _extension(filename: Optional[str]) -> str:
    return os.path.splitext((filename or "").lower())[1]


def _base_mime(mime_type: Optional[str]) -> str:
    # "text/plain; charset=utf-8" -> "text/plain"
    return (mime_type or "").split(";")[0].strip().lower()


# =============================================================================
# STRATEGY INTERFACE
# =============================================================================

class TextExtractor:
    """
    One document format.

    Subclasses declare the MIME types and extensions they accept and
    implement `extract`. Override `supports_mime` for prefix matching.
    """

    name = "base"
    mime_types: Tuple[str, ...] = ()
    extensions: Tuple[str, ...] = ()

    def supports_mime(self, mime_type: str) -> bool:
        return _base_mime(mime_type) in self.mime_types

    def supports_extension(self, filename: str) -> bool:
        return _extension(filename) in self.extensions

    def supports(self, mime_type: Optional[str], filename: Optional[str]) -> bool:
        return self.supports_mime(mime_type or "") or self.supports_extension(filename or "")

    def extract(self, data: bytes) -> str:
        raise NotImplementedError


class PlainTextExtractor(TextExtractor):
    name = "text"
    mime_types = ("application/json", "application/xml", "application/csv")
    extensions = (".txt", ".text", ".md", ".markdown", ".csv", ".tsv", ".json", ".xml", ".html", ".htm", ".rst")

    def supports_mime(self, mime_type: str) -> bool:
        base = _base_mime(mime_type)
        return base.startswith("text/") or base in self.mime_types

    def extract(self, data: bytes) -> str:
        return decode_text(data)


class DocxExtractor(TextExtractor):
    name = "docx"
    mime_types = ("application/vnd.openxmlformats-officedocument.wordprocessingml.document",)
    extensions = (".docx",)

    def extract(self, data: bytes) -> str:
        from docx import Document as DocxDocument
        from docx.oxml.ns import qn
        from docx.table import Table
        from docx.text.paragraph import Paragraph

        try:
            doc = DocxDocument(io.BytesIO(data))
        except Exception as e:
            raise DocumentDecodeError("Could not read word-processor document", detail=str(e)) from e

        # Walk the body so paragraphs and tables keep their reading order.
        blocks: List[str] = []
        for child in doc.element.body.iterchildren():
            if child.tag == qn("w:p"):
                text = Paragraph(child, doc).text
                if text.strip():
                    blocks.append(text)
            elif child.tag == qn("w:tbl"):
                for row in Table(child, doc).rows:
                    cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                    if cells:
                        blocks.append("\t".join(cells))
        return "\n".join(blocks)


class PptxExtractor(TextExtractor):
    name = "pptx"
    mime_types = ("application/vnd.openxmlformats-officedocument.presentationml.presentation",)
    extensions = (".pptx",)

    def extract(self, data: bytes) -> str:
        from pptx import Presentation

        try:
            prs = Presentation(io.BytesIO(data))
        except Exception as e:
            raise DocumentDecodeError("Could not read presentation document", detail=str(e)) from e

        slide_texts: List[str] = []
        for slide in prs.slides:
            lines: List[str] = []
            for shape in slide.shapes:
                lines.extend(self._shape_lines(shape))
            slide_text = "\n".join(lines).strip()
            if slide_text:
                slide_texts.append(slide_text)
        return "\n\n".join(slide_texts)

    def _shape_lines(self, shape) -> Iterable[str]:
        # Group shapes nest their children
        if hasattr(shape, "shapes"):
            for child in shape.shapes:
                yield from self._shape_lines(child)
            return
        if getattr(shape, "has_text_frame", False) and shape.has_text_frame:
            text = shape.text_frame.text.strip()
            if text:
                yield text
        if getattr(shape, "has_table", False) and shape.has_table:
            for row in shape.table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    yield "\t".join(cells)


class PdfExtractor(TextExtractor):
    name = "pdf"
    mime_types = ("application/pdf", "application/x-pdf")
    extensions = (".pdf",)

    def extract(self, data: bytes) -> str:
        from pypdf import PdfReader
        from pypdf.errors import PyPdfError

        try:
            reader = PdfReader(io.BytesIO(data))
            pages = list(reader.pages)
        except Exception as e:
            raise DocumentDecodeError("Could not read PDF document", detail=str(e)) from e

        page_texts: List[str] = []
        for idx, page in enumerate(pages):
            try:
                text = page.extract_text() or ""
            except (PyPdfError, ValueError, KeyError, TypeError, AttributeError) as e:
                # One damaged page should not sink the whole document
                logger.warning("Skipping unreadable PDF page %d: %s", idx + 1, e)
                continue
            if text.strip():
                page_texts.append(text.strip())
            else:
                logger.debug("PDF page %d has no text layer", idx + 1)
        return "\n\n".join(page_texts)


def decode_text(data: bytes) -> str:
    """Decode raw bytes to str, honouring BOMs and falling back to cp1252/latin-1."""
    if data.startswith(b"\xef\xbb\xbf"):
        return data[3:].decode("utf-8", errors="replace")
    if data.startswith(b"\xff\xfe") or data.startswith(b"\xfe\xff"):
        return data.decode("utf-16", errors="replace")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        pass
    try:
        return data.decode("cp1252")
    except UnicodeDecodeError:
        return data.decode("latin-1")


# =============================================================================
# REGISTRY
# =============================================================================

class ExtractorRegistry:
    """Ordered collection of extractors with MIME-then-extension dispatch."""

    def __init__(self, extractors: Optional[Iterable[TextExtractor]] = None, min_length: int = MIN_TEXT_LENGTH):
        self._extractors: List[TextExtractor] = list(extractors or [])
        self.min_length = min_length

    def register(self, extractor: TextExtractor) -> None:
        self._extractors.append(extractor)

    @property
    def extractors(self) -> List[TextExtractor]:
        return list(self._extractors)

    def resolve(self, mime_type: Optional[str], filename: Optional[str]) -> TextExtractor:
        """Pick the extractor for a document or raise UnsupportedFormat."""
        for extractor in self._extractors:
            if extractor.supports_mime(mime_type or ""):
                return extractor
        for extractor in self._extractors:
            if extractor.supports_extension(filename or ""):
                return extractor
        raise UnsupportedFormat(
            f"Unsupported document format: {mime_type or 'unknown'} ({filename or 'unnamed'})"
        )

    def extract(self, data: bytes, mime_type: Optional[str], filename: Optional[str]) -> str:
        extractor = self.resolve(mime_type, filename)
        text = normalize_text(extractor.extract(data))

        logger.info(
            "Extracted %d chars from %s using %s extractor",
            len(text), filename or "document", extractor.name
        )

        if len(text) < self.min_length:
            raise EmptyExtraction(
                "No readable text could be extracted from the document",
                detail=f"{len(text)} characters extracted, minimum is {self.min_length}",
            )
        return text


def default_registry() -> ExtractorRegistry:
    return ExtractorRegistry([
        PdfExtractor(),
        DocxExtractor(),
        PptxExtractor(),
        PlainTextExtractor(),
    ])
