"""QR code scanning for automatic student identification."""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from PIL import Image, ImageEnhance

from .errors import IdentityNotFound, PayloadNotFound
from .frame import Frame
from .layout import SheetLayout

logger = logging.getLogger(__name__)

# Try to import pyzbar, but don't fail if zbar library isn't installed
PYZBAR_AVAILABLE = False
pyzbar = None

try:
    from pyzbar import pyzbar as _pyzbar
    pyzbar = _pyzbar
    PYZBAR_AVAILABLE = True
except (ImportError, OSError):
    # pyzbar requires libzbar0 system library
    # If not installed, QR scanning will be disabled
    pass

PAYLOAD_SEPARATOR = "|"

Decoder = Callable[[Image.Image], Optional[str]]


def is_qr_scanning_available() -> bool:
    """Check if QR scanning is available."""
    return PYZBAR_AVAILABLE


def scan_qr_from_image(image: Image.Image) -> Optional[str]:
    """
    Decode the first QR code found in an image.

    Args:
        image: Pillow image (any mode)

    Returns:
        The decoded QR code data, or None if no QR code found
    """
    if not PYZBAR_AVAILABLE:
        return None

    try:
        for obj in pyzbar.decode(image):
            if obj.type == 'QRCODE':
                return obj.data.decode('utf-8')

        return None
    except Exception as e:
        logger.warning("Error scanning QR from image: %s", e)
        return None


@dataclass(frozen=True)
class IdentityPayload:
    """Data printed in a sheet's QR code: ``externalId|quizId|ordinal|firstName|lastName``."""

    external_id: str
    quiz_id: Optional[str] = None
    ordinal: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> "IdentityPayload":
        parts = [p.strip() for p in raw.split(PAYLOAD_SEPARATOR)]
        parts += [""] * (5 - len(parts))

        ordinal = None
        if parts[2]:
            try:
                ordinal = int(parts[2])
            except ValueError:
                logger.warning("Ignoring non-numeric ordinal in payload: %r", parts[2])

        return cls(
            external_id=parts[0],
            quiz_id=parts[1] or None,
            ordinal=ordinal,
            first_name=parts[3] or None,
            last_name=parts[4] or None,
        )

    def encode(self) -> str:
        fields = [
            self.external_id,
            self.quiz_id or "",
            "" if self.ordinal is None else str(self.ordinal),
            self.first_name or "",
            self.last_name or "",
        ]
        return PAYLOAD_SEPARATOR.join(fields)


@dataclass(frozen=True)
class StudentRecord:
    """One entry of the student directory."""

    id: int
    external_id: str
    first_name: str = ""
    last_name: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class ResolvedIdentity:
    id: int
    external_id: str
    display_name: str


def _normalize_id(value: str) -> str:
    return "".join((value or "").split()).casefold()


def resolve_identity(external_id: str, directory: Iterable[StudentRecord]) -> ResolvedIdentity:
    """
    Find the student a decoded identifier belongs to.

    Exact matches win. Otherwise identifiers are compared without whitespace
    and case, and one may contain the other.

    Raises:
        IdentityNotFound: If no directory entry matches.
    """
    students = list(directory)
    wanted = _normalize_id(external_id)
    if not wanted:
        raise IdentityNotFound(external_id)

    match = next((s for s in students if s.external_id == external_id), None)

    if match is None:
        for student in students:
            candidate = _normalize_id(student.external_id)
            if not candidate:
                continue
            if candidate == wanted or candidate in wanted or wanted in candidate:
                match = student
                logger.info("Matched '%s' to student '%s' after normalizing", external_id, student.external_id)
                break

    if match is None:
        raise IdentityNotFound(external_id)

    return ResolvedIdentity(
        id=match.id,
        external_id=match.external_id,
        display_name=match.display_name,
    )


def enhance_full_frame(image: Image.Image) -> Image.Image:
    """Second attempt: strong contrast, brighter, grayscale."""
    image = ImageEnhance.Contrast(image.convert("RGB")).enhance(2.5)
    image = ImageEnhance.Brightness(image).enhance(1.5)
    return image.convert("L")


def enhance_marker_region(image: Image.Image) -> Image.Image:
    """Third attempt: the cropped marker region with even stronger contrast."""
    image = ImageEnhance.Contrast(image.convert("RGB")).enhance(3.0)
    return ImageEnhance.Brightness(image).enhance(1.2)


class IdentityDecoder:
    """Read a sheet's QR code and resolve it against the student directory."""

    ATTEMPTS = ("direct", "enhanced", "marker region")

    def __init__(self, decoder: Optional[Decoder] = None, layout: Optional[SheetLayout] = None):
        """
        Initialize the decoder.

        Args:
            decoder: Function returning the payload found in an image, or None.
                Defaults to pyzbar.
            layout: Sheet layout giving the marker region (defaults to the fixed template)
        """
        self.decoder = decoder or scan_qr_from_image
        self.layout = layout or SheetLayout()

    def read_payload(self, frame: Frame) -> tuple[str, str]:
        """
        Decode the raw payload, trying up to three progressively enhanced images.

        Returns:
            (payload, name of the attempt that succeeded)

        Raises:
            PayloadNotFound: If no attempt decodes anything.
        """
        image = frame.to_image()

        for attempt in self.ATTEMPTS:
            if attempt == "direct":
                candidate = image
            elif attempt == "enhanced":
                candidate = enhance_full_frame(image)
            else:
                candidate = enhance_marker_region(image.crop(self.layout.marker_region(frame.width, frame.height)))

            payload = self.decoder(candidate)
            if payload:
                logger.debug("QR decoded on %s attempt: %s", attempt, payload)
                return payload, attempt
            logger.debug("No QR code on %s attempt", attempt)

        logger.warning("No QR code found after %d attempts", len(self.ATTEMPTS))
        raise PayloadNotFound(len(self.ATTEMPTS))

    def identify(self, frame: Frame, directory: Iterable[StudentRecord]) -> tuple[ResolvedIdentity, IdentityPayload]:
        """
        Decode the frame's QR code and resolve the student.

        Raises:
            PayloadNotFound: If no QR code could be decoded.
            IdentityNotFound: If the decoded identifier matches no student.
        """
        raw, _ = self.read_payload(frame)
        payload = IdentityPayload.parse(raw)
        try:
            identity = resolve_identity(payload.external_id, directory)
        except IdentityNotFound as e:
            e.payload = raw
            logger.warning("Student not found for payload %r", raw)
            raise
        return identity, payload
