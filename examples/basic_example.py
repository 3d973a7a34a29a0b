#!/usr/bin/env python3
"""
Basic Example: Preparing a training job with Train Prep

This example shows how to:
1. Rewrite solver and net configurations locally
2. Stage a dataset and a solver record in local stores
3. Prepare a work directory the way an execution host does
"""

import io
import tarfile
import tempfile
from pathlib import Path

from train_prep import JobPreparer, LocalBlobStore, LocalDocumentStore
from train_prep.config import ConfigTemplateManager
from train_prep.core import rewrite_network_text, rewrite_solver_text
from train_prep.utils import setup_logging

SOLVER = """# LeNet solver
net: "examples/mnist/lenet_train_test.prototxt"
base_lr: 0.01
max_iter: 10000
snapshot_prefix: "examples/mnist/lenet"
"""

NET = """name: "LeNet"
layers {
  name: "mnist"
  type: IMAGE_DATA
  top: "data"
  top: "label"
  image_data_param {
    source: "train.txt"
    batch_size: 64
  }
  include: { phase: TRAIN }
}
layers {
  name: "mnist"
  type: IMAGE_DATA
  top: "data"
  top: "label"
  image_data_param {
    source: "test.txt"
    batch_size: 100
  }
  include: { phase: TEST }
}
"""


class StaticFetcher:
    """Serves configuration text from memory instead of over HTTP"""

    def __init__(self, pages):
        self.pages = pages

    def fetch(self, url):
        return self.pages[url].encode("utf-8")


def make_archive(files):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for name, data in files:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def example_rewrite():
    """Rewrite configurations without touching any store"""
    print("=== Rewrite Example ===")
    print(rewrite_solver_text(SOLVER))
    print(rewrite_network_text(NET))


def example_local_job(root: Path):
    """Run both preparation stages against local stores"""
    print("\n=== Local Job Example ===")

    config = ConfigTemplateManager.create_config_from_template(
        "local",
        store={"local_root": str(root / "store")},
        work={"work_directory": str(root / "work"), "show_progress": False},
        log_level="INFO",
    )
    setup_logging(config.log_level)

    blob_store = LocalBlobStore(config.store.local_root)
    blob_store.put("fonts/training.tar.gz", make_archive([
        ("Q/Verdana-5-0.png", b"..."),
        ("Q/Arial-5-0.png", b"..."),
        ("R/Arial-5-0.png", b"..."),
    ]))
    blob_store.put("fonts/testing.tar.gz", make_archive([
        ("Q/Times-5-0.png", b"..."),
        ("R/Times-5-0.png", b"..."),
    ]))

    documents = LocalDocumentStore(Path(config.store.local_root) / "_documents")
    documents.insert({
        "_id": "lenet-solver",
        "type": "solver",
        "dataset-id": "fonts",
        "specification-url": "http://example.com/solver.prototxt",
        "specification-net-url": "http://example.com/net.prototxt",
    })

    preparer = JobPreparer(
        StaticFetcher({
            "http://example.com/solver.prototxt": SOLVER,
            "http://example.com/net.prototxt": NET,
        }),
        blob_store,
        documents,
        work_directory=config.work.work_directory,
    )

    solver = preparer.prepare_configs(preparer.load_solver("lenet-solver"))
    print(f"Solver references: {solver.specification_url}, {solver.specification_net_url}")

    workspace = preparer.prepare_work_directory(solver, job_id="job-1")
    print(f"Work directory: {workspace.path}")
    print(f"Labels: {workspace.labels}")
    print((workspace.path / "training_index.txt").read_text())


if __name__ == "__main__":
    example_rewrite()
    with tempfile.TemporaryDirectory() as temp_dir:
        example_local_job(Path(temp_dir))
