#!/usr/bin/env python3
"""Headless Voice Dictation Studio.

Usage:
    python cli.py dictate                    # Record, press Enter, print raw + polished text
    python cli.py transcribe <file>          # Transcribe and polish an audio file
    python cli.py polish "<text>"            # Polish a raw transcription
    python cli.py formats                    # Show audio format negotiation
    python cli.py check-mic                  # Check microphone access
"""

import sys

from dictation.cli_runtime import run_cli


def main():
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
