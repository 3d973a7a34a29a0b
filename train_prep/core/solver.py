"""
Job preparation for Train Prep

A solver describes one training run: a solver configuration, a net
configuration and a dataset. Preparing a job happens in two stages:

1. prepare_configs: the externally hosted configurations are fetched,
   rewritten to point at the local work layout and stored in the blob store;
   the solver record is updated to reference the stored copies.
2. prepare_work_directory: on the execution host, the rewritten
   configurations and the dataset are downloaded into a work directory.
"""

import logging
import posixpath
import shutil
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..errors import DocumentConflict, PrepError, WriteFailed
from ..utils import BlobReferenceResolver, Timer
from .dataset import Dataset, TrainingDataAssembler
from .rewriter import (
    CONFIG_EXTENSION,
    rewrite_network_text,
    rewrite_solver_text,
    solver_filename,
    solver_net_filename,
)

logger = logging.getLogger(__name__)

DOC_TYPE_SOLVER = "solver"
CONFIG_CONTENT_TYPE = "text/plain"


@dataclass
class Solver:
    """Solver (job) record as stored in the document database"""
    id: str
    dataset_id: str = ""
    specification_url: str = ""
    specification_net_url: str = ""
    rev: Optional[str] = None
    type: str = DOC_TYPE_SOLVER
    extra: Dict[str, Any] = field(default_factory=dict)  # Unknown document fields, kept on save

    _KEYS = {
        "_id": "id",
        "_rev": "rev",
        "type": "type",
        "dataset-id": "dataset_id",
        "specification-url": "specification_url",
        "specification-net-url": "specification_net_url",
    }

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "Solver":
        values = {attr: doc[key] for key, attr in cls._KEYS.items() if key in doc}
        extra = {key: value for key, value in doc.items() if key not in cls._KEYS}
        return cls(extra=extra, **values)

    def to_dict(self) -> Dict[str, Any]:
        doc = dict(self.extra)
        for key, attr in self._KEYS.items():
            value = getattr(self, attr)
            if value is not None:
                doc[key] = value
        return doc


class SaveStatus(Enum):
    UPDATED = "updated"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass
class SaveOutcome:
    """Result of persisting a solver record"""
    status: SaveStatus
    solver: Optional[Solver] = None
    error: Optional[Exception] = None
    attempts: int = 0

    @property
    def updated(self) -> bool:
        return self.status is SaveStatus.UPDATED


@dataclass
class Workspace:
    """A populated work directory and the label vocabulary of its dataset"""
    path: Path
    labels: List[str]


class JobPreparer:
    """
    Orchestrates configuration rewriting and work directory preparation

    All collaborators are injected; use from_config to build the default set.
    """

    def __init__(
        self,
        fetcher,
        blob_store,
        document_store,
        assembler: Optional[TrainingDataAssembler] = None,
        resolver: Optional[BlobReferenceResolver] = None,
        work_directory: Union[str, Path] = "/tmp/train-prep",
        max_save_attempts: int = 3,
        extension: str = CONFIG_EXTENSION,
    ):
        if max_save_attempts < 1:
            raise ValueError("max_save_attempts must be at least 1")
        self.fetcher = fetcher
        self.blob_store = blob_store
        self.document_store = document_store
        self.assembler = assembler or TrainingDataAssembler(blob_store)
        self.resolver = resolver or BlobReferenceResolver()
        self.work_directory = Path(work_directory)
        self.max_save_attempts = max_save_attempts
        self.extension = extension

    @classmethod
    def from_config(cls, config) -> "JobPreparer":
        """Create a preparer and its collaborators from a PrepConfig"""
        from ..adapters import create_blob_store, create_document_store
        from ..adapters.http import HttpFetcher

        blob_store = create_blob_store(config.store)
        return cls(
            fetcher=HttpFetcher(timeout=config.store.timeout),
            blob_store=blob_store,
            document_store=create_document_store(config.store),
            assembler=TrainingDataAssembler.from_config(config, blob_store=blob_store),
            resolver=BlobReferenceResolver(config.store.reference_prefix),
            work_directory=config.work.work_directory,
            max_save_attempts=config.persistence.max_save_attempts,
        )

    def load_solver(self, solver_id: str) -> Solver:
        return Solver.from_dict(self.document_store.retrieve(solver_id))

    def prepare_configs(self, solver: Solver) -> Solver:
        """
        Rewrite a solver's configurations into the blob store

        The solver configuration is stored at "<id>/solver.<ext>" and the net
        configuration at "<id>/solver-net.<ext>"; the record is then updated
        to reference both.

        Args:
            solver: Solver whose specification URLs point at the originals

        Returns:
            The stored solver record, with its latest revision

        Raises:
            FetchFailed: If an original configuration cannot be downloaded
            ConfigParseError: If a configuration is malformed
            WriteFailed: If storing a configuration or the record fails
        """
        solver_text = self.fetcher.fetch(solver.specification_url)
        solver_ref = self._store_config(
            solver.id,
            solver_filename(self.extension),
            rewrite_solver_text(solver_text, self.extension, source=solver.specification_url),
        )

        net_text = self.fetcher.fetch(solver.specification_net_url)
        net_ref = self._store_config(
            solver.id,
            solver_net_filename(self.extension),
            rewrite_network_text(net_text, source=solver.specification_net_url),
        )

        updated = replace(solver, specification_url=solver_ref, specification_net_url=net_ref)
        outcome = self.save_solver(updated)
        if not outcome.updated:
            raise WriteFailed(
                f"Could not save solver {solver.id} ({outcome.status.value} after "
                f"{outcome.attempts} attempts): {outcome.error}",
                source=solver.id,
            ) from outcome.error
        return outcome.solver

    def _store_config(self, solver_id: str, filename: str, content: str) -> str:
        dest_path = f"{solver_id}/{filename}"
        self.blob_store.put(dest_path, content.encode("utf-8"), content_type=CONFIG_CONTENT_TYPE)
        return self.resolver.to_reference(dest_path)

    def save_solver(self, solver: Solver) -> SaveOutcome:
        """
        Persist a solver record with optimistic concurrency

        On a revision conflict the latest record is re-read, the two
        configuration references of solver are applied to it and the edit is
        retried, up to max_save_attempts edits in total.
        """
        candidate = solver
        last_conflict = None

        for attempt in range(1, self.max_save_attempts + 1):
            try:
                self.document_store.edit(candidate.to_dict())
            except DocumentConflict as e:
                last_conflict = e
                logger.warning(
                    f"Revision conflict saving solver {solver.id} "
                    f"(attempt {attempt}/{self.max_save_attempts})"
                )
                try:
                    latest = self.load_solver(solver.id)
                except PrepError as fetch_error:
                    return SaveOutcome(SaveStatus.FAILED, error=fetch_error, attempts=attempt)
                candidate = replace(
                    latest,
                    specification_url=solver.specification_url,
                    specification_net_url=solver.specification_net_url,
                )
                continue
            except PrepError as e:
                logger.error(f"Failed to save solver {solver.id}: {e}")
                return SaveOutcome(SaveStatus.FAILED, error=e, attempts=attempt)

            try:
                stored = self.load_solver(solver.id)
            except PrepError as e:
                return SaveOutcome(SaveStatus.FAILED, error=e, attempts=attempt)
            logger.info(f"Saved solver {solver.id} at revision {stored.rev}")
            return SaveOutcome(SaveStatus.UPDATED, solver=stored, attempts=attempt)

        logger.error(f"Giving up saving solver {solver.id} after {self.max_save_attempts} conflicts")
        return SaveOutcome(
            SaveStatus.CONFLICT, error=last_conflict, attempts=self.max_save_attempts
        )

    def write_specs_to_dir(self, solver: Solver, dest_dir: Union[str, Path]) -> List[Path]:
        """
        Download both rewritten configurations into a directory

        Each file is named after the last segment of its blob path.

        Raises:
            InvalidReference: If the solver has not been through prepare_configs
        """
        dest_dir = Path(dest_dir)
        written = []
        for ref in (solver.specification_url, solver.specification_net_url):
            blob_path = self.resolver.to_relative_path(ref)
            written.append(self._write_blob_file(blob_path, dest_dir))
        return written

    def _write_blob_file(self, blob_path: str, dest_dir: Path) -> Path:
        dest_path = dest_dir / posixpath.basename(blob_path)
        logger.info(f"Cbfs get {blob_path}")
        stream = self.blob_store.get(blob_path)
        try:
            with open(dest_path, "wb") as f:
                shutil.copyfileobj(stream, f)
        except OSError as e:
            raise WriteFailed(f"Cannot write {dest_path}: {e}", source=str(dest_path)) from e
        finally:
            stream.close()
        logger.info(f"Wrote to {dest_path}")
        return dest_path

    def prepare_work_directory(self, solver: Solver, job_id: Optional[str] = None) -> Workspace:
        """
        Populate a work directory for running a solver

        Creates "<work_directory>/<job_id or solver id>", downloads the
        rewritten configurations and assembles the dataset into it.

        Returns:
            Workspace with the directory and the training label vocabulary
        """
        path = self.work_directory / (job_id or solver.id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise WriteFailed(f"Cannot create work directory {path}: {e}", source=str(path)) from e
        logger.info(f"Preparing work directory {path} for solver {solver.id}")

        with Timer() as timer:
            self.write_specs_to_dir(solver, path)
            labels = self.assembler.assemble(Dataset(solver.dataset_id), path)
        logger.info(f"Work directory {path} ready in {timer}")
        return Workspace(path=path, labels=labels)
