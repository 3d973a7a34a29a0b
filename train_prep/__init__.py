"""
Train Prep

Prepares Caffe training jobs for execution: rewrites solver and net
configurations so they point at the layout used on the execution host, and
unpacks dataset archives into a work directory together with labeled
training/testing manifests.

Main Components:
    - train_prep.core: Configuration rewriting, archive indexing, job preparation
    - train_prep.adapters: Blob store, document store and HTTP collaborators
    - train_prep.config: Configuration management
    - train_prep.cli: Command-line interface
    - train_prep.utils: Logging, reference resolution and helpers

Example Usage:
    >>> from train_prep import JobPreparer, PrepConfig
    >>>
    >>> config = PrepConfig.from_yaml("prep.yaml")
    >>> preparer = JobPreparer.from_config(config)
    >>>
    >>> # On the API host: rewrite configurations into the blob store
    >>> solver = preparer.prepare_configs(preparer.load_solver("solver-id"))
    >>>
    >>> # On the execution host: download configurations and dataset
    >>> workspace = preparer.prepare_work_directory(solver, job_id="job-id")
    >>> print(workspace.path, workspace.labels)
"""

__version__ = "1.0.0"

# Import order matters: utils and config before core
from .errors import (
    ConfigParseError,
    DocumentConflict,
    ExtractionFailed,
    FetchFailed,
    InvalidReference,
    LabelVocabularyMismatch,
    PrepError,
    WriteFailed,
)
from .utils import BlobReferenceResolver, setup_logging
from .config import (
    ConfigTemplateManager,
    ConfigValidator,
    LabelConfig,
    PersistenceConfig,
    PrepConfig,
    StoreConfig,
    ValidationResult,
    WorkConfig,
)
from .core import (
    Dataset,
    JobPreparer,
    LabelPolicy,
    SaveOutcome,
    SaveStatus,
    Solver,
    TrainingDataAssembler,
    Workspace,
)
from .adapters import (
    BlobStore,
    DocumentStore,
    LocalBlobStore,
    LocalDocumentStore,
    create_blob_store,
    create_document_store,
)

__all__ = [
    "PrepError",
    "InvalidReference",
    "ConfigParseError",
    "FetchFailed",
    "ExtractionFailed",
    "WriteFailed",
    "DocumentConflict",
    "LabelVocabularyMismatch",
    "BlobReferenceResolver",
    "setup_logging",
    "ConfigTemplateManager",
    "ConfigValidator",
    "ValidationResult",
    "PrepConfig",
    "StoreConfig",
    "WorkConfig",
    "LabelConfig",
    "PersistenceConfig",
    "Dataset",
    "JobPreparer",
    "LabelPolicy",
    "SaveOutcome",
    "SaveStatus",
    "Solver",
    "TrainingDataAssembler",
    "Workspace",
    "BlobStore",
    "DocumentStore",
    "LocalBlobStore",
    "LocalDocumentStore",
    "create_blob_store",
    "create_document_store",
]
