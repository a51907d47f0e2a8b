"""Text extraction from uploaded assignment files.

Each supported format is an `Extractor` subclass registered against the media
types it understands. `extract_text` looks the declared type up in the
registry, so adding a format is a matter of registering a new class.

PDF: text runs are read straight from the page content streams. Scanned PDFs
(little or no text) fall back to OCR; OCR failure there is not fatal.
Images: OCR only, and OCR failure is fatal.
"""
from __future__ import annotations

import io
import logging
import mimetypes
import os
import shutil
import tempfile
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple, Type

import PyPDF2
from PyPDF2.generic import ContentStream, FloatObject, NumberObject
import docx
import openpyxl

from solvem8.errors import ExtractionError, Solvem8Error, UnsupportedMediaType

try:
    import fitz  # PyMuPDF
except Exception:
    fitz = None

try:
    from PIL import Image
except Exception:
    Image = None

try:
    import pytesseract
except Exception:
    pytesseract = None

# Ensure pytesseract can find the tesseract binary
if pytesseract is not None:
    if shutil.which("tesseract") is None:
        for cand in ("/usr/bin/tesseract", "/usr/local/bin/tesseract"):
            if os.path.exists(cand):
                pytesseract.pytesseract.tesseract_cmd = cand
                break

logger = logging.getLogger(__name__)

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
JPEG = "image/jpeg"
PNG = "image/png"

OCR_LANGUAGE = "eng"
DEFAULT_OCR_TIMEOUT = 30
MIN_PDF_TEXT_LENGTH = 100
MAX_OCR_PAGES = 12

NO_TEXT_IN_PDF = "No readable text could be extracted from this PDF."
NO_TEXT_IN_IMAGE = "No text found in the image."

# Kerning offsets in a TJ array below this value are treated as word gaps
TJ_SPACE_THRESHOLD = -200

_TEXT_SHOW_OPS = {b"Tj", b"TJ", b"'", b'"'}
_LINE_MOVE_OPS = {b"Td", b"TD", b"T*", b"Tm", b"'", b'"'}


@contextmanager
def scratch_file(data: bytes, suffix: str = "") -> Iterator[str]:
    """Write data to a private temp file and remove it on every exit path."""
    fd, path = tempfile.mkstemp(prefix="solvem8_", suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass


def ocr_ready() -> Tuple[bool, str]:
    if fitz is None:
        return False, "PyMuPDF not available"
    if Image is None:
        return False, "Pillow not available"
    if pytesseract is None:
        return False, "pytesseract not available"
    try:
        _ = pytesseract.get_tesseract_version()
    except Exception as e:
        return False, f"tesseract not available: {e}"
    return True, ""


def text_is_meaningful(text: str) -> bool:
    s = (text or "").strip()
    if len(s) < MIN_PDF_TEXT_LENGTH:
        return False
    alpha = sum(1 for ch in s if ch.isalpha())
    return alpha / max(len(s), 1) >= 0.25


class Extractor:
    """Base class for one extraction strategy"""
    media_types: Tuple[str, ...] = ()

    def __init__(self, ocr_timeout: int = DEFAULT_OCR_TIMEOUT):
        self.ocr_timeout = ocr_timeout

    def extract(self, data: bytes) -> str:
        raise NotImplementedError


_REGISTRY: Dict[str, Type[Extractor]] = {}


def register(cls: Type[Extractor]) -> Type[Extractor]:
    for media_type in cls.media_types:
        _REGISTRY[media_type] = cls
    return cls


def supported_media_types() -> List[str]:
    return sorted(_REGISTRY)


def resolve_media_type(declared: Optional[str], filename: str = "") -> str:
    """Normalise a declared content type, guessing from the file name when the
    client sent nothing useful."""
    media_type = (declared or "").split(";", 1)[0].strip().lower()
    if media_type in ("", "application/octet-stream"):
        guessed, _ = mimetypes.guess_type(filename or "")
        if guessed:
            media_type = guessed.lower()
    return media_type


def extract_text(data: bytes, media_type: str, ocr_timeout: int = DEFAULT_OCR_TIMEOUT) -> str:
    """Return plain text for data of the given media type.

    Raises UnsupportedMediaType for unknown types (before any temp file is
    created) and ExtractionError for everything that goes wrong inside a
    strategy.
    """
    media_type = resolve_media_type(media_type)
    cls = _REGISTRY.get(media_type)
    if cls is None:
        raise UnsupportedMediaType(media_type)

    try:
        return cls(ocr_timeout=ocr_timeout).extract(data)
    except Solvem8Error:
        raise
    except Exception as e:
        logger.exception("%s failed on %d bytes of %s", cls.__name__, len(data or b""), media_type)
        raise ExtractionError() from e


@register
class PdfExtractor(Extractor):
    media_types = (PDF,)

    def extract(self, data: bytes) -> str:
        try:
            text = self.content_stream_text(data)
        except Exception:
            logger.warning("PDF content stream parse failed, trying OCR", exc_info=True)
            text = ""

        if not text_is_meaningful(text):
            ocr_text = self.ocr_text(data)
            if len(ocr_text.strip()) > len(text.strip()):
                text = ocr_text

        text = text.strip()
        return text or NO_TEXT_IN_PDF

    def content_stream_text(self, data: bytes) -> str:
        reader = PyPDF2.PdfReader(io.BytesIO(data))
        pages: List[str] = []
        for page in reader.pages:
            contents = page.get_contents()
            if contents is None:
                pages.append("")
                continue
            if not isinstance(contents, ContentStream):
                contents = ContentStream(contents, reader)
            pages.append(self._page_text(contents))
        return "\n".join(pages).strip()

    @staticmethod
    def _page_text(contents: ContentStream) -> str:
        lines: List[str] = []
        current: List[str] = []

        def newline():
            if current:
                lines.append("".join(current).strip())
                current.clear()

        for operands, operator in contents.operations:
            if operator in _LINE_MOVE_OPS:
                newline()
            if operator not in _TEXT_SHOW_OPS:
                continue

            if operator == b"TJ":
                for item in operands[0] if operands else []:
                    if isinstance(item, (FloatObject, NumberObject)):
                        if item < TJ_SPACE_THRESHOLD:
                            current.append(" ")
                        continue
                    current.append(_as_text(item))
            elif operands:
                # Tj: (string); ': (string); ": aw ac (string)
                current.append(_as_text(operands[-1]))
        newline()
        return "\n".join(line for line in lines if line)

    def ocr_text(self, data: bytes) -> str:
        ok, msg = ocr_ready()
        if not ok:
            logger.warning("Skipping PDF OCR fallback: %s", msg)
            return ""
        try:
            with scratch_file(data, ".pdf") as path:
                return self._ocr_pages(path)
        except Exception:
            logger.warning("PDF OCR fallback failed", exc_info=True)
            return ""

    def _ocr_pages(self, path: str) -> str:
        doc = fitz.open(path)
        parts: List[str] = []
        try:
            for i in range(min(len(doc), MAX_OCR_PAGES)):
                page = doc.load_page(i)
                pix = page.get_pixmap(dpi=220, alpha=False)
                img = Image.open(io.BytesIO(pix.tobytes("png"))).convert("L")
                parts.append(pytesseract.image_to_string(
                    img, lang=OCR_LANGUAGE, config="--psm 6", timeout=self.ocr_timeout) or "")
        finally:
            doc.close()
        return "\n".join(parts).strip()


def _as_text(value) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return str(value)


@register
class DocxExtractor(Extractor):
    media_types = (DOCX,)

    def extract(self, data: bytes) -> str:
        document = docx.Document(io.BytesIO(data))
        parts = [p.text for p in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                parts.append("\t".join(cell.text.strip() for cell in row.cells))
        return "\n".join(parts).strip()


@register
class SpreadsheetExtractor(Extractor):
    media_types = (XLSX,)

    def extract(self, data: bytes) -> str:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        blocks: List[str] = []
        try:
            for sheet in workbook.worksheets:
                rows = [f"Sheet: {sheet.title}"]
                for row in sheet.iter_rows(values_only=True):
                    rows.append("\t".join("" if cell is None else str(cell) for cell in row))
                blocks.append("\n".join(rows))
        finally:
            workbook.close()
        return "\n\n".join(blocks).strip()


@register
class ImageExtractor(Extractor):
    media_types = (JPEG, PNG)

    def extract(self, data: bytes) -> str:
        if Image is None or pytesseract is None:
            raise ExtractionError("Image OCR dependencies missing")
        with scratch_file(data, ".img") as path:
            with Image.open(path) as img:
                text = pytesseract.image_to_string(img, lang=OCR_LANGUAGE, timeout=self.ocr_timeout)
        return (text or "").strip() or NO_TEXT_IN_IMAGE
