#!/usr/bin/env python3
"""
Diagnostic script for markscan.
Run this to check if everything is set up correctly.
"""

import sys
import os
from pathlib import Path

def check(name, condition, fix=""):
    if condition:
        print(f"  [OK] {name}")
        return True
    else:
        print(f"  [FAIL] {name}")
        if fix:
            print(f"         Fix: {fix}")
        return False

def main():
    print("=" * 50)
    print("  markscan Diagnostic Check")
    print("=" * 50)
    print()

    script_dir = Path(__file__).parent.resolve()
    os.chdir(script_dir)

    all_ok = True

    # Python version
    print("Python:")
    py_version = sys.version_info
    all_ok &= check(f"Python {py_version.major}.{py_version.minor}.{py_version.micro}",
                    py_version >= (3, 9),
                    "Need Python 3.9+")
    print()

    # Project structure
    print("Project Structure:")
    all_ok &= check("markscan package exists", (script_dir / "markscan").is_dir())
    all_ok &= check("pyproject.toml exists", (script_dir / "pyproject.toml").is_file())
    check(".env exists (optional)", (script_dir / ".env").is_file())
    print()

    # Third-party packages
    print("Packages:")
    sys.path.insert(0, str(script_dir))

    for module, package in (("click", "click"), ("numpy", "numpy"), ("PIL", "Pillow"),
                            ("qrcode", "qrcode"), ("yaml", "PyYAML"), ("sqlalchemy", "SQLAlchemy"),
                            ("watchdog", "watchdog"), ("dotenv", "python-dotenv")):
        try:
            __import__(module)
            all_ok &= check(f"{package} imports OK", True)
        except ImportError:
            all_ok &= check(f"{package} import FAILED", False, f"pip install {package}")
    print()

    # QR decoding
    print("QR Decoding:")
    try:
        from markscan.grading.qr_scanner import is_qr_scanning_available
        all_ok &= check("pyzbar and the zbar library available", is_qr_scanning_available(),
                        "pip install pyzbar, then install libzbar0 (apt) or zbar (brew)")
    except ImportError as e:
        all_ok &= check(f"markscan.grading import FAILED: {e}", False)
    print()

    # Data
    print("Data:")
    try:
        from markscan.config import DATABASE_PATH, SETTINGS_PATH, ConfigurationError, ensure_folders
        from markscan.database import init_db, load_directory
        from markscan.grading import load_settings

        ensure_folders()
        init_db()
        students = load_directory()
        all_ok &= check(f"Database OK at {DATABASE_PATH} ({len(students)} students)", True)
        check("Students imported", bool(students), "Run: markscan import-roster roster.yaml")

        try:
            settings = load_settings()
            all_ok &= check(f"Scan settings OK (method: {settings.general.method.value})", True)
        except ConfigurationError as e:
            all_ok &= check(f"Scan settings at {SETTINGS_PATH} invalid: {e}", False,
                            "Run: markscan settings reset")
    except ImportError as e:
        all_ok &= check(f"markscan import FAILED: {e}", False)

    print()
    print("=" * 50)
    if all_ok:
        print("  All checks passed! Try running:")
        print("    markscan scan --quiz <QUIZ_ID> sheet.jpg")
    else:
        print("  Some checks failed. Fix the issues above.")
    print("=" * 50)

if __name__ == "__main__":
    main()
