# =====================================================
# FILE: app/services/content_extractor.py
# Identity document text extraction (OCR adapter)
# =====================================================

import logging
import os
import re
import shutil
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pdf2image
import pytesseract
from PIL import Image, ImageFilter, ImageOps

from app.core.config import settings
from app.core.exceptions import ExtractionFailed, ExtractionUnavailable

logger = logging.getLogger(__name__)

PDF_SUFFIXES = {".pdf"}

_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^\w\s\-./]")


def clean_extracted_text(text: str) -> str:
    """
    Normalize raw OCR output: collapse whitespace, keep only word
    characters, whitespace, hyphen, period and slash, trim.
    """
    text = _WHITESPACE_RE.sub(" ", text or "")
    text = _DISALLOWED_RE.sub("", text)
    return text.strip()


@dataclass
class PreprocessConfig:
    """Image preparation applied before OCR."""
    max_dimension: int = 2000
    binarize_threshold: int = 128
    sharpen: bool = True
    normalize_contrast: bool = True
    pdf_dpi: int = 300

    @classmethod
    def from_settings(cls) -> "PreprocessConfig":
        return cls(
            max_dimension=settings.OCR_MAX_DIMENSION,
            binarize_threshold=settings.OCR_BINARIZE_THRESHOLD,
            pdf_dpi=settings.OCR_PDF_DPI,
        )


class OCRBackend(ABC):
    """Pluggable OCR engine producing raw text from an image file."""

    name = "abstract"

    @abstractmethod
    def is_available(self) -> bool:
        """True when the engine can be invoked."""

    @abstractmethod
    def recognize(self, image_path: str) -> str:
        """Return raw text for one image; raise on engine errors."""


class TesseractBackend(OCRBackend):
    """Tesseract via pytesseract."""

    name = "tesseract"

    def __init__(self, language: str = "eng", tesseract_cmd: Optional[str] = None):
        self.language = language
        self.tesseract_cmd = tesseract_cmd

        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def is_available(self) -> bool:
        try:
            pytesseract.get_tesseract_version()
            return True
        except Exception as e:
            logger.warning(f"Tesseract binary not available: {e}")
            return False

    def recognize(self, image_path: str) -> str:
        with Image.open(image_path) as image:
            return pytesseract.image_to_string(image, lang=self.language)


class ContentExtractor:
    """
    Turns an identity document image or PDF into normalized text.

    Preprocessing (resize, sharpen, contrast, binarize) is best effort:
    when it fails the original page image is handed to the OCR backend.
    """

    def __init__(self, backend: Optional[OCRBackend], config: Optional[PreprocessConfig] = None):
        self.backend = backend
        self.config = config or PreprocessConfig()

    def extract(self, file_path: str) -> str:
        if self.backend is None:
            raise ExtractionUnavailable("No OCR backend configured")
        if not self.backend.is_available():
            raise ExtractionUnavailable(f"OCR backend '{self.backend.name}' is not available")

        path = Path(file_path)
        if not path.exists():
            raise ExtractionFailed(f"Document file not found: {file_path}")

        workdir = tempfile.mkdtemp(prefix="ocr_")
        try:
            pages = self._page_images(path, workdir)
            raw_parts = []
            for page_path in pages:
                prepared = self.preprocess(page_path, workdir)
                try:
                    raw_parts.append(self.backend.recognize(prepared))
                except ExtractionUnavailable:
                    raise
                except Exception as e:
                    logger.error(f"OCR failed on {page_path}: {e}")
                    raise ExtractionFailed(f"Failed to extract text from document: {e}") from e
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

        text = clean_extracted_text(" ".join(raw_parts))
        logger.info(f"Extracted {len(text)} characters from {path.name} ({len(pages)} page(s))")
        return text

    def _page_images(self, path: Path, workdir: str) -> List[str]:
        if path.suffix.lower() not in PDF_SUFFIXES:
            return [str(path)]

        try:
            images = pdf2image.convert_from_path(str(path), dpi=self.config.pdf_dpi)
        except Exception as e:
            logger.error(f"PDF rasterization failed for {path.name}: {e}")
            raise ExtractionFailed(f"Could not rasterize PDF: {e}") from e

        page_paths = []
        for number, image in enumerate(images, start=1):
            page_path = os.path.join(workdir, f"page_{number}.png")
            image.save(page_path)
            page_paths.append(page_path)
        return page_paths

    def preprocess(self, image_path: str, workdir: str) -> str:
        """
        Returns the path of the prepared image, or the original path
        when preparation fails.
        """
        try:
            output_path = os.path.join(workdir, f"{Path(image_path).stem}_processed.png")
            with Image.open(image_path) as source:
                image = ImageOps.grayscale(source)

                # thumbnail keeps aspect ratio and never enlarges
                if max(image.size) > self.config.max_dimension:
                    image.thumbnail((self.config.max_dimension, self.config.max_dimension))

                if self.config.sharpen:
                    image = image.filter(ImageFilter.SHARPEN)
                if self.config.normalize_contrast:
                    image = ImageOps.autocontrast(image)

                threshold = self.config.binarize_threshold
                image = image.point(lambda p: 255 if p >= threshold else 0)
                image.save(output_path)
            return output_path
        except Exception as e:
            logger.warning(f"Image preprocessing failed, using original file: {e}")
            return image_path


def build_content_extractor() -> ContentExtractor:
    """Extractor wired to the configured OCR engine"""
    backend = None
    if settings.OCR_ENABLED:
        backend = TesseractBackend(settings.OCR_LANGUAGE, settings.TESSERACT_CMD)
    return ContentExtractor(backend, PreprocessConfig.from_settings())
