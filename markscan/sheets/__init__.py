"""Identity markers printed on answer sheets."""

from .marker import build_payloads, make_marker_image, save_markers

__all__ = ["build_payloads", "make_marker_image", "save_markers"]
