"""Installer subprocess runner.

This module manages sub-tool installation:
- Subprocess invocation with the sub-tool path
- Optional timeout enforcement
- stdout/stderr capture and streaming
- Exit code handling for success/failure determination
"""
