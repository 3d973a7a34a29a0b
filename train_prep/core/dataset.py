"""
Training data assembly for Train Prep

Downloads the training and testing archives of a dataset from the blob store,
unpacks them into the job work directory and writes the labeled manifests the
training engine reads.
"""

import logging
import posixpath
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from ..errors import LabelVocabularyMismatch, WriteFailed
from ..utils import Timer, format_size
from .archive import (
    LabelPolicy,
    TeeReader,
    add_parent_dir_to_toc,
    unpack_and_index,
    write_toc_to_file,
)
from .rewriter import TESTING_DIR, TESTING_INDEX, TRAINING_DIR, TRAINING_INDEX

logger = logging.getLogger(__name__)

TRAINING_ARTIFACT = "training.tar.gz"
TESTING_ARTIFACT = "testing.tar.gz"
RAW_COPY_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class Dataset:
    """A named pair of packaged archives held in the blob store"""
    id: str

    def training_artifact_path(self) -> str:
        return f"{self.id}/{TRAINING_ARTIFACT}"

    def testing_artifact_path(self) -> str:
        return f"{self.id}/{TESTING_ARTIFACT}"


@dataclass(frozen=True)
class _Split:
    name: str
    artifact_path: str
    subdirectory: str
    index_filename: str


class TrainingDataAssembler:
    """
    Fetches and indexes both splits of a dataset into a local directory

    Layout produced under dest_dir:

        training.tar.gz        raw copy of the training archive
        testing.tar.gz         raw copy of the testing archive
        training-data/...      extracted training files
        testing-data/...       extracted testing files
        training_index.txt     "training-data/<path> <label>" lines
        testing_index.txt      "testing-data/<path> <label>" lines
    """

    def __init__(
        self,
        blob_store,
        policy: LabelPolicy = LabelPolicy.SEQUENTIAL,
        verify_vocabulary: bool = True,
        keep_raw_archives: bool = True,
        show_progress: bool = False,
    ):
        self.blob_store = blob_store
        self.policy = policy
        self.verify_vocabulary = verify_vocabulary
        self.keep_raw_archives = keep_raw_archives
        self.show_progress = show_progress

    @classmethod
    def from_config(cls, config, blob_store=None) -> "TrainingDataAssembler":
        """Create an assembler from a PrepConfig"""
        if blob_store is None:
            from ..adapters import create_blob_store

            blob_store = create_blob_store(config.store)

        return cls(
            blob_store,
            policy=LabelPolicy(config.labels.policy),
            verify_vocabulary=config.labels.verify_vocabulary,
            keep_raw_archives=config.work.keep_raw_archives,
            show_progress=config.work.show_progress,
        )

    def assemble(self, dataset: Dataset, dest_dir: Union[str, Path]) -> List[str]:
        """
        Download, unpack and index both splits of a dataset

        The training split is processed first. The first failure aborts the
        assembly; files already written stay in place.

        Args:
            dataset: Dataset whose archives to fetch
            dest_dir: Work directory to populate

        Returns:
            Label vocabulary of the training split (directory names in
            first-seen order)

        Raises:
            FetchFailed: If an archive is not available in the blob store
            ExtractionFailed: If an archive is corrupt
            WriteFailed: If a local file cannot be written
            LabelVocabularyMismatch: If the splits disagree on labels and
                verification is enabled
        """
        dest_dir = Path(dest_dir)
        try:
            dest_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteFailed(f"Cannot create {dest_dir}: {e}", source=str(dest_dir)) from e

        splits = [
            _Split("training", dataset.training_artifact_path(), TRAINING_DIR, TRAINING_INDEX),
            _Split("testing", dataset.testing_artifact_path(), TESTING_DIR, TESTING_INDEX),
        ]

        vocabularies = {}
        for split in splits:
            vocabularies[split.name] = self._assemble_split(split, dest_dir)

        training_labels = vocabularies["training"]
        testing_labels = vocabularies["testing"]
        if training_labels != testing_labels:
            if self.verify_vocabulary:
                raise LabelVocabularyMismatch(
                    training_labels, testing_labels, source=dataset.id
                )
            logger.warning(
                f"Dataset {dataset.id}: testing labels {testing_labels} "
                f"differ from training labels {training_labels}"
            )

        logger.info(f"Dataset {dataset.id} assembled in {dest_dir} with {len(training_labels)} labels")
        return training_labels

    def _assemble_split(self, split: _Split, dest_dir: Path) -> List[str]:
        logger.info(f"Cbfs get {split.artifact_path}")

        with ExitStack() as stack:
            stream = self.blob_store.get(split.artifact_path)
            stack.callback(stream.close)

            raw_copy: Optional[TeeReader] = None
            if self.keep_raw_archives:
                raw_path = dest_dir / posixpath.basename(split.artifact_path)
                logger.debug(f"Saving raw copy of {split.artifact_path} to {raw_path}")
                try:
                    copy_file = stack.enter_context(open(raw_path, "wb"))
                except OSError as e:
                    raise WriteFailed(f"Cannot create {raw_path}: {e}", source=str(raw_path)) from e
                raw_copy = TeeReader(stream, copy_file)
                stream = raw_copy

            with Timer() as timer:
                toc, labels = unpack_and_index(
                    stream,
                    dest_dir / split.subdirectory,
                    policy=self.policy,
                    show_progress=self.show_progress,
                    source=split.artifact_path,
                )

            if raw_copy is not None:
                # tarfile stops at the end-of-archive marker; copy the trailer too
                while raw_copy.read(RAW_COPY_CHUNK_SIZE):
                    pass

        toc = add_parent_dir_to_toc(toc, split.subdirectory)
        for entry in toc:
            logger.debug(f"tocEntry {entry}")
        write_toc_to_file(toc, dest_dir / split.index_filename)

        size = f", {format_size(raw_copy.bytes_read)}" if raw_copy is not None else ""
        logger.info(f"Unpacked {split.name} split: {len(toc)} files{size} in {timer}")
        return labels
