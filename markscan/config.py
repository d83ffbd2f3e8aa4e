"""Configuration management for the markscan answer-sheet scanner."""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def get_setting(key: str, default: str = "") -> str:
    """Get a setting from the environment, stripped of surrounding whitespace."""
    return os.getenv(key, default).strip()


# --- Logging Setup ---
LOG_LEVEL = get_setting("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("markscan")

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(get_setting("MARKSCAN_DATA_DIR") or BASE_DIR / "data")

# Database
DATABASE_PATH = Path(os.getenv("DATABASE_PATH", DATA_DIR / "markscan.db"))

# Folders
SCANS_FOLDER = Path(os.getenv("SCANS_FOLDER", DATA_DIR / "scans"))
MARKERS_FOLDER = Path(os.getenv("MARKERS_FOLDER", DATA_DIR / "markers"))

# Persisted scan settings (thresholds, weights, policies)
SETTINGS_PATH = Path(os.getenv("SETTINGS_PATH", DATA_DIR / "scan_settings.yaml"))

# Sheet template
MAX_QUESTIONS = 20  # The fixed template holds 20 questions in 3 columns

# Capture session timing (seconds)
ASSESSOR_INTERVAL = float(get_setting("ASSESSOR_INTERVAL", "0.15"))
MIN_CAPTURE_INTERVAL = float(get_setting("MIN_CAPTURE_INTERVAL", "1.5"))

# Watch mode: wait for a dropped file to be fully written
SCAN_SETTLE_DELAY = float(get_setting("SCAN_SETTLE_DELAY", "1.0"))


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def validate_config() -> list[str]:
    """Validate configuration and return list of issues.

    Returns:
        List of warning strings for non-critical issues.

    Raises:
        ConfigurationError: If a timing value is negative.
    """
    issues = []

    if ASSESSOR_INTERVAL <= 0:
        raise ConfigurationError(f"ASSESSOR_INTERVAL must be positive, got {ASSESSOR_INTERVAL}")

    if MIN_CAPTURE_INTERVAL < 0:
        raise ConfigurationError(f"MIN_CAPTURE_INTERVAL must not be negative, got {MIN_CAPTURE_INTERVAL}")

    if not SCANS_FOLDER.exists():
        issues.append(f"Scans folder does not exist: {SCANS_FOLDER}")

    if not MARKERS_FOLDER.exists():
        issues.append(f"Markers folder does not exist: {MARKERS_FOLDER}")

    if not SETTINGS_PATH.exists():
        issues.append(f"No settings file at {SETTINGS_PATH}, defaults will be used")

    return issues


def ensure_folders():
    """Create the data folders if they are missing."""
    for folder in (DATA_DIR, SCANS_FOLDER, MARKERS_FOLDER):
        folder.mkdir(parents=True, exist_ok=True)


def get_database_url() -> str:
    """Get SQLAlchemy database URL."""
    return f"sqlite:///{DATABASE_PATH}"
