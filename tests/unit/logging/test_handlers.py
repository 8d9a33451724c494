# tests/unit/logging/test_handlers.py — v2
"""Tests for logging/handlers.py — file rotation handler."""

from __future__ import annotations

import logging

import pytest

from docmapper.logging.handlers import create_rotating_handler, parse_size


class TestParseSize:
    def test_mb(self):
        assert parse_size("10MB") == 10 * 1024 * 1024

    def test_kb_lowercase(self):
        assert parse_size("512kb") == 512 * 1024

    def test_gb(self):
        assert parse_size("1GB") == 1024**3

    def test_plain_bytes(self):
        assert parse_size("4096") == 4096
        assert parse_size("100 B") == 100

    def test_invalid_format(self):
        with pytest.raises(ValueError, match="Invalid size"):
            parse_size("10bytes")

    def test_zero_rejected(self):
        with pytest.raises(ValueError, match="positive"):
            parse_size("0MB")


class TestCreateRotatingHandler:
    def test_creates_handler(self, tmp_path):
        handler = create_rotating_handler(tmp_path / "run.log", rotation="1MB", retention=5)
        assert handler.maxBytes == 1024 * 1024
        assert handler.backupCount == 5
        handler.close()

    def test_lazy_open(self, tmp_path):
        log_file = tmp_path / "sub" / "run.log"
        handler = create_rotating_handler(log_file, level=logging.WARNING)
        assert log_file.parent.exists()
        assert not log_file.exists()
        assert handler.level == logging.WARNING
        handler.close()
