"""markscan: score printed multiple-choice answer sheets from captured images."""

__version__ = "0.1.0"
