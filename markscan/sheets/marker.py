"""Generate the QR identity markers printed on answer sheets."""

import io
import logging
import re
from pathlib import Path
from typing import Iterable, Optional

import qrcode
from PIL import Image

from ..config import MARKERS_FOLDER
from ..grading.qr_scanner import IdentityPayload, StudentRecord

logger = logging.getLogger(__name__)


def build_payloads(students: Iterable[StudentRecord], quiz_id: str) -> list[IdentityPayload]:
    """One payload per student, numbered from 1 in directory order."""
    return [
        IdentityPayload(
            external_id=student.external_id,
            quiz_id=quiz_id,
            ordinal=ordinal,
            first_name=student.first_name or None,
            last_name=student.last_name or None,
        )
        for ordinal, student in enumerate(students, start=1)
    ]


def make_marker_image(payload: IdentityPayload, box_size: int = 8, border: int = 2) -> Image.Image:
    """Render a payload as a black-on-white QR code."""
    qr = qrcode.QRCode(version=None, box_size=box_size, border=border)
    qr.add_data(payload.encode())
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    # Round-trip through PNG to get a plain Pillow image
    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    buffer.seek(0)

    return Image.open(buffer).convert("RGB")


def _file_name(payload: IdentityPayload) -> str:
    stem = f"{payload.ordinal or 0:03d}_{payload.external_id}"
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", stem) + ".png"


def save_markers(payloads: Iterable[IdentityPayload], folder: Optional[Path] = None,
                 box_size: int = 8) -> list[Path]:
    """
    Write one PNG per payload.

    Args:
        payloads: Payloads to render
        folder: Output folder; defaults to MARKERS_FOLDER/<quiz id>
        box_size: Pixel size of one QR module

    Returns:
        Paths of the written files
    """
    paths = []
    for payload in payloads:
        target = Path(folder) if folder else MARKERS_FOLDER / (payload.quiz_id or "unassigned")
        target.mkdir(parents=True, exist_ok=True)

        path = target / _file_name(payload)
        make_marker_image(payload, box_size=box_size).save(path)
        paths.append(path)

    logger.info("Wrote %d markers", len(paths))
    return paths
