"""Command-line interface for splitbill.

Usage:
    splitbill parse <text-file>
    splitbill parse - --json < ocr.txt
    splitbill scan <image>
    splitbill scan <image> --yes [--engine NAME] [--no-save]
    splitbill serve [--port]
"""
