"""
Archive unpacking and TOC indexing

Streams a gzip-compressed tar archive into a destination directory while
building a table of contents that assigns every file a numeric class label
derived from its parent directory.
"""

import logging
import os
import posixpath
import shutil
import tarfile
import zlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, List, Optional, Tuple, Union

from tqdm import tqdm

from ..errors import ExtractionFailed, WriteFailed
from ..utils import format_size

logger = logging.getLogger(__name__)


class LabelPolicy(Enum):
    """How directories are turned into numeric labels"""

    # A new label every time the directory changes, even when an earlier
    # directory comes back. Requires directory-sorted archives; this is the
    # format existing manifests were generated with.
    SEQUENTIAL = "sequential"
    # Each directory name keeps the index it was first seen with.
    STABLE = "stable"


@dataclass(frozen=True)
class TocEntry:
    """One manifest line: archive-relative path and numeric label"""

    path: str
    label: int

    def __str__(self) -> str:
        return f"{self.path} {self.label}"

    @classmethod
    def parse(cls, line: str) -> "TocEntry":
        path, label = line.rstrip("\n").rsplit(" ", 1)
        return cls(path, int(label))


Toc = List[TocEntry]


class TeeReader:
    """
    Binary stream wrapper that copies everything read into a second file

    Used to keep a raw copy of an archive as it is consumed.
    """

    def __init__(self, stream: BinaryIO, copy: BinaryIO):
        self.stream = stream
        self.copy = copy
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        data = self.stream.read(size)
        if data:
            try:
                self.copy.write(data)
            except OSError as e:
                name = getattr(self.copy, "name", None)
                raise WriteFailed(f"Cannot write raw copy {name}: {e}", source=name) from e
            self.bytes_read += len(data)
        return data

    def close(self):
        self.stream.close()


def _parent_dir(entry_path: str) -> str:
    parent = posixpath.dirname(entry_path.rstrip("/"))
    return parent or "."


def add_labels_to_toc(
    paths: Iterable[str], policy: LabelPolicy = LabelPolicy.SEQUENTIAL
) -> Tuple[Toc, List[str]]:
    """
    Label archive entries by parent directory

    Given:

        Q/Verdana-5-0.png
        Q/Arial-5-0.png
        R/Arial-5-0.png

    produce (Q/Verdana-5-0.png, 0), (Q/Arial-5-0.png, 0), (R/Arial-5-0.png, 1)
    and the vocabulary ["Q", "R"] (distinct directories, first-seen order).

    Args:
        paths: Archive-relative file paths, in archive order
        policy: Labeling policy, see LabelPolicy

    Returns:
        Tuple of (toc, labels)
    """
    toc = []
    labels = []
    stable_ids: Dict[str, int] = {}
    current_dir = None
    label_index = 0

    for index, entry_path in enumerate(paths):
        directory = _parent_dir(entry_path)

        if policy is LabelPolicy.STABLE:
            label = stable_ids.setdefault(directory, len(stable_ids))
        else:
            if index > 0 and directory != current_dir:
                label_index += 1
            current_dir = directory
            label = label_index

        if directory not in labels:
            labels.append(directory)

        toc.append(TocEntry(entry_path, label))

    return toc, labels


def add_parent_dir_to_toc(toc: Iterable[TocEntry], subdir: str) -> Toc:
    """
    Prefix every TOC path with a parent directory

    (Q/Verdana-5-0.png, 27) with "training-data" becomes
    (training-data/Q/Verdana-5-0.png, 27).
    """
    return [TocEntry(posixpath.join(subdir, entry.path), entry.label) for entry in toc]


def write_toc_to_file(toc: Iterable[TocEntry], dest_path: Union[str, Path]):
    """
    Write a TOC as "<path> <label>" lines, in order

    Raises:
        WriteFailed: If the manifest cannot be written
    """
    try:
        with open(dest_path, "w", encoding="utf-8") as f:
            for entry in toc:
                f.write(f"{entry}\n")
    except OSError as e:
        logger.error(f"Failed to write TOC to {dest_path}: {e}")
        raise WriteFailed(f"Cannot write TOC to {dest_path}: {e}", source=str(dest_path)) from e


def read_toc_file(path: Union[str, Path]) -> Toc:
    with open(path, "r", encoding="utf-8") as f:
        return [TocEntry.parse(line) for line in f if line.strip()]


def _safe_destination(dest_dir: Path, entry_name: str) -> Path:
    if posixpath.isabs(entry_name) or os.path.isabs(entry_name):
        raise ExtractionFailed(f"Archive entry has an absolute path: {entry_name}", source=entry_name)
    target = (dest_dir / entry_name).resolve()
    if target != dest_dir and dest_dir not in target.parents:
        raise ExtractionFailed(f"Archive entry escapes destination: {entry_name}", source=entry_name)
    return target


def _entry_path(member: tarfile.TarInfo) -> str:
    name = member.name
    while name.startswith("./"):
        name = name[2:]
    return name


def unpack_and_index(
    stream: BinaryIO,
    dest_dir: Union[str, Path],
    policy: LabelPolicy = LabelPolicy.SEQUENTIAL,
    show_progress: bool = False,
    source: Optional[str] = None,
) -> Tuple[Toc, List[str]]:
    """
    Extract a .tar.gz stream and index its regular files

    Args:
        stream: Readable binary stream of the compressed archive
        dest_dir: Directory to extract into (created if absent)
        policy: Labeling policy for the TOC
        show_progress: Display a tqdm progress bar while extracting
        source: Reference of the archive, recorded on errors

    Returns:
        Tuple of (toc, labels), toc in extraction order

    Raises:
        ExtractionFailed: If the stream is not a valid gzip tar archive
        WriteFailed: If an entry cannot be written
    """
    dest_dir = Path(dest_dir)
    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteFailed(f"Cannot create {dest_dir}: {e}", source=str(dest_dir)) from e
    dest_root = dest_dir.resolve()

    entry_paths = []
    extracted_bytes = 0
    try:
        with tarfile.open(fileobj=stream, mode="r|gz") as archive:
            members = tqdm(archive, desc=f"Extracting {source or dest_dir.name}", unit="file",
                           disable=not show_progress)
            for member in members:
                name = _entry_path(member)
                if not name:
                    continue
                target = _safe_destination(dest_root, name)

                if member.isdir():
                    _make_dirs(target)
                    continue
                if not member.isfile():
                    logger.debug(f"Skipping non-regular archive entry {member.name}")
                    continue

                _make_dirs(target.parent)
                extracted = archive.extractfile(member)
                try:
                    with open(target, "wb") as out:
                        shutil.copyfileobj(extracted, out)
                except OSError as e:
                    raise WriteFailed(f"Cannot write {target}: {e}", source=str(target)) from e
                finally:
                    extracted.close()

                logger.debug(f"Extracted {name} ({format_size(member.size)})")
                entry_paths.append(name)
                extracted_bytes += member.size
    except (tarfile.TarError, zlib.error, EOFError) as e:
        raise ExtractionFailed(f"Invalid archive {source or ''}: {e}".rstrip(), source=source) from e
    except OSError as e:
        # gzip.BadGzipFile is an OSError
        raise ExtractionFailed(f"Invalid archive {source or ''}: {e}".rstrip(), source=source) from e

    toc, labels = add_labels_to_toc(entry_paths, policy)
    logger.info(
        f"Extracted {len(toc)} files ({format_size(extracted_bytes)}) into {dest_dir} "
        f"({len(labels)} labels)"
    )
    return toc, labels


def _make_dirs(path: Path):
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise WriteFailed(f"Cannot create {path}: {e}", source=str(path)) from e
