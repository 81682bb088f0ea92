"""Shared fixtures: quiet logging, fresh settings, real pipes and files."""

from __future__ import annotations

import io
import os
import tempfile
from collections.abc import Iterator

import pytest

from loopstream.foundation.config import clear_settings_cache
from loopstream.runtime.observability import configure_logging

from .helpers import CountingFile


@pytest.fixture(autouse=True)
def quiet_logging() -> Iterator[None]:
    """Reset settings and silence log output around each test."""
    clear_settings_cache()
    configure_logging(format="none")
    yield
    clear_settings_cache()


@pytest.fixture
def pipe_pair() -> Iterator[tuple[io.FileIO, io.FileIO]]:
    """Unbuffered (reader, writer) ends of an OS pipe."""
    r, w = os.pipe()
    reader = io.FileIO(r, "rb")
    writer = io.FileIO(w, "wb")
    yield reader, writer
    for end in (reader, writer):
        if not end.closed:
            end.close()


@pytest.fixture
def counting_file() -> Iterator[CountingFile]:
    """Seekable temp file holding b"hello world"."""
    fd, path = tempfile.mkstemp()
    handle = CountingFile(fd, "r+b")
    handle.write(b"hello world")
    handle.seek(0)
    yield handle
    if not handle.closed:
        handle.close()
    os.unlink(path)

