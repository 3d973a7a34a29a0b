"""
Core components of Train Prep

This module contains the job preparation pipeline:
- prototxt: Lossless text-format codec for Caffe configurations
- rewriter: Solver and net configuration rewriting
- archive: Archive unpacking and manifest (TOC) indexing
- dataset: TrainingDataAssembler, fetches and indexes dataset splits
- solver: JobPreparer, rewrites configurations and prepares work directories
"""

from .archive import (
    LabelPolicy,
    TocEntry,
    add_labels_to_toc,
    add_parent_dir_to_toc,
    unpack_and_index,
    write_toc_to_file,
)
from .dataset import Dataset, TrainingDataAssembler
from .prototxt import Message, parse_prototxt, serialize_prototxt
from .rewriter import (
    rewrite_network_config,
    rewrite_network_text,
    rewrite_solver_config,
    rewrite_solver_text,
)
from .solver import JobPreparer, SaveOutcome, SaveStatus, Solver, Workspace

__all__ = [
    "LabelPolicy",
    "TocEntry",
    "add_labels_to_toc",
    "add_parent_dir_to_toc",
    "unpack_and_index",
    "write_toc_to_file",
    "Dataset",
    "TrainingDataAssembler",
    "Message",
    "parse_prototxt",
    "serialize_prototxt",
    "rewrite_network_config",
    "rewrite_network_text",
    "rewrite_solver_config",
    "rewrite_solver_text",
    "JobPreparer",
    "SaveOutcome",
    "SaveStatus",
    "Solver",
    "Workspace",
]
