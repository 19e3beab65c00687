"""
OCR client for readnotes.
Sends page photos to an external text-recognition service and turns the
recognized text into OCR-sourced highlights.

The service is expected to answer ``POST <base_url>/recognize`` (multipart
``image`` plus a ``language`` field) with
``{"text": ..., "confidence": 0-100, "regions": [...]}``.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

import httpx

from notes_model import (
    Annotation,
    AnnotationKind,
    AnnotationSource,
    BookBundle,
    BookMetadata,
    generate_id,
)

logger = logging.getLogger(__name__)

DEFAULT_OCR_URL = "http://localhost:8866"


class OCRError(Exception):
    """The recognition service failed or returned an unusable answer."""
    pass


@dataclass
class OCRConfig:
    """Configuration for the OCR client."""
    base_url: str = DEFAULT_OCR_URL
    language: str = "chi_sim+eng"
    timeout: float = 60.0


@dataclass
class OCRRegion:
    """One recognized word or block with its bounding box."""
    text: str
    confidence: float = 0.0
    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0


@dataclass
class OCRResult:
    text: str
    confidence: float = 0.0
    regions: List[OCRRegion] = field(default_factory=list)


class OCRService:
    """
    Client for an external OCR service.
    Reuses a persistent httpx.AsyncClient for connection pooling.

    Usage:
        ocr = OCRService()
        result = await ocr.recognize_image("page.png")
        bundle = build_ocr_bundle(result, "Some Book")
    """

    def __init__(self, config: Optional[OCRConfig] = None):
        self.config = config or self._load_config()
        self._client: Optional[httpx.AsyncClient] = None

    def _load_config(self) -> OCRConfig:
        """Load config from file or environment."""
        config_path = os.path.join(os.path.dirname(__file__), "ocr_config.json")

        if os.path.exists(config_path):
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    data = json.load(f)
                return OCRConfig(
                    base_url=data.get("base_url") or os.environ.get("READNOTES_OCR_URL", DEFAULT_OCR_URL),
                    language=data.get("language", "chi_sim+eng"),
                    timeout=float(data.get("timeout", 60.0)),
                )
            except (OSError, ValueError, TypeError) as e:
                logger.warning("Ignoring unreadable OCR config %s: %s", config_path, e)

        # Default config with environment variable fallback
        return OCRConfig(base_url=os.environ.get("READNOTES_OCR_URL", DEFAULT_OCR_URL))

    def save_config(self) -> None:
        """Save current config to file."""
        config_path = os.path.join(os.path.dirname(__file__), "ocr_config.json")
        data = {
            "base_url": self.config.base_url,
            "language": self.config.language,
            "timeout": self.config.timeout,
        }
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    async def _get_client(self) -> httpx.AsyncClient:
        """Return a persistent httpx client (connection pooling)."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def check_availability(self) -> dict:
        """Check if the OCR service is reachable."""
        result = {"available": False, "base_url": self.config.base_url,
                  "language": self.config.language, "error": None}

        try:
            client = await self._get_client()
            response = await client.get(f"{self.config.base_url}/health", timeout=5.0)
            if response.status_code == 200:
                result["available"] = True
            else:
                result["error"] = f"OCR service answered {response.status_code}"
        except httpx.ConnectError:
            result["error"] = "Cannot connect to the OCR service. Is it running?"
        except httpx.HTTPError as e:
            result["error"] = str(e)

        return result

    async def recognize_image(self, image: Union[str, bytes],
                              language: Optional[str] = None) -> OCRResult:
        """
        Recognize the text on one image.

        Args:
            image: Path to an image file, or its raw bytes
            language: Tesseract-style language string; defaults to the config

        Returns:
            OCRResult with the trimmed text, overall confidence and regions

        Raises:
            OCRError: The service is unreachable or answered with an error
        """
        if isinstance(image, str):
            filename = os.path.basename(image)
            with open(image, "rb") as f:
                payload = f.read()
        else:
            filename = "image.png"
            payload = image

        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.config.base_url}/recognize",
                files={"image": (filename, payload)},
                data={"language": language or self.config.language},
            )
        except httpx.HTTPError as e:
            raise OCRError(f"OCR recognition failed: {e}") from e

        if response.status_code != 200:
            raise OCRError(f"OCR service error {response.status_code}: {response.text}")

        try:
            data = response.json()
        except ValueError as e:
            raise OCRError("OCR service returned invalid JSON") from e

        regions = [
            OCRRegion(
                text=str(r.get("text", "")),
                confidence=float(r.get("confidence") or 0),
                x=int(r.get("x") or 0),
                y=int(r.get("y") or 0),
                width=int(r.get("width") or 0),
                height=int(r.get("height") or 0),
            )
            for r in data.get("regions") or []
        ]
        confidence = data.get("confidence")
        if confidence is None and regions:
            confidence = sum(r.confidence for r in regions) / len(regions)

        return OCRResult(
            text=str(data.get("text") or "").strip(),
            confidence=float(confidence or 0),
            regions=regions,
        )


def split_paragraphs(text: str) -> List[str]:
    """Split OCR text on blank lines, joining wrapped lines within a paragraph."""
    paragraphs = []
    for block in re.split(r"\n\s*\n", text):
        joined = " ".join(line.strip() for line in block.splitlines() if line.strip())
        if joined:
            paragraphs.append(joined)
    return paragraphs


def build_ocr_bundle(result: OCRResult, title: str, author: Optional[str] = None,
                     chapter: Optional[str] = None, min_confidence: float = 0) -> BookBundle:
    """
    Turn recognized text into a bundle of OCR highlights, one per paragraph.
    A result below min_confidence yields a bundle with no annotations.
    """
    annotations = []
    if result.confidence >= min_confidence:
        now = datetime.now()
        for index, paragraph in enumerate(split_paragraphs(result.text)):
            annotations.append(Annotation(
                id=f"ocr_{generate_id()}",
                book_title=title,
                book_author=author,
                content=paragraph,
                kind=AnnotationKind.HIGHLIGHT,
                source=AnnotationSource.OCR,
                position=index,
                chapter=chapter,
                created_at=now,
            ))
    else:
        logger.warning("Discarding OCR text with confidence %.1f (< %.1f)",
                       result.confidence, min_confidence)

    bundle = BookBundle(
        metadata=BookMetadata(title=title, author=author, last_sync_date=datetime.now()),
        annotations=annotations,
    )
    bundle.refresh_count()
    return bundle


# Singleton instance
_ocr_service: Optional[OCRService] = None


def get_ocr_service() -> OCRService:
    """Get or create the OCR service singleton."""
    global _ocr_service
    if _ocr_service is None:
        _ocr_service = OCRService()
    return _ocr_service


def reset_ocr_service() -> None:
    """Reset the OCR service (useful after config changes)."""
    global _ocr_service
    _ocr_service = None
