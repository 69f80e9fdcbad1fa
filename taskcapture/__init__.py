"""taskcapture - screen and audio recording pipeline for task submissions."""

__version__ = "0.1.0"
