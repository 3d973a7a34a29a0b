"""Shared fixtures for the Train Prep test suite"""

import io
import logging
import sys
import tarfile
from pathlib import Path

import pytest

# Add train_prep to path
sys.path.insert(0, str(Path(__file__).parent.parent))


def make_tar_gz(files, directories=()):
    """
    Build a gzip-compressed tar archive in memory

    Args:
        files: (name, bytes) pairs, written in order
        directories: Directory entry names, written before the files

    Returns:
        Archive bytes
    """
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name in directories:
            info = tarfile.TarInfo(name)
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            archive.addfile(info)
        for name, data in files:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


@pytest.fixture
def tar_gz():
    return make_tar_gz


@pytest.fixture(autouse=True)
def reset_logging():
    """Remove handlers installed by setup_logging"""
    yield
    logger = logging.getLogger("train_prep")
    for handler in logger.handlers:
        handler.close()
    logger.handlers = []
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
