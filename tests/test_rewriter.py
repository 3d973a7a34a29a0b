#!/usr/bin/env python3
"""
Tests for solver and net configuration rewriting
"""

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

# Add train_prep to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from train_prep.core.prototxt import parse_prototxt
from train_prep.core.rewriter import (
    SNAPSHOT_PREFIX,
    TESTING_DIR,
    TESTING_INDEX,
    TRAINING_DIR,
    TRAINING_INDEX,
    is_in_phase,
    rewrite_network_config,
    rewrite_network_text,
    rewrite_solver_config,
    rewrite_solver_text,
    solver_net_filename,
)
from train_prep.errors import ConfigParseError

SOLVER = """net: "examples/mnist/lenet_train_test.prototxt"
test_iter: 100
# snapshot intermediate results
snapshot: 5000
snapshot_prefix: "examples/mnist/lenet"
solver_mode: GPU
"""

V1_NET = """name: "LeNet"
layers {
  name: "mnist"
  type: IMAGE_DATA
  top: "data"
  image_data_param {
    source: "/data/train.txt"
    batch_size: 64
  }
  include: { phase: TRAIN }
}
layers {
  name: "mnist"
  type: IMAGE_DATA
  top: "data"
  image_data_param {
    source: "/data/test.txt"
    batch_size: 100
  }
  include: { phase: TEST }
}
layers {
  name: "conv1"
  type: CONVOLUTION
  bottom: "data"
}
"""

CURRENT_NET = """name: "LeNet"
layer {
  name: "mnist"
  type: "Data"
  top: "data"
  include {
    phase: TRAIN
  }
  data_param {
    source: "examples/mnist/mnist_train_lmdb"
    backend: LMDB
  }
}
layer {
  name: "mnist"
  type: "Data"
  top: "data"
  include {
    phase: TEST
  }
  data_param {
    source: "examples/mnist/mnist_test_lmdb"
    backend: LMDB
  }
}
"""


class TestSolverRewrite:
    """Test solver configuration rewriting"""

    def test_sets_net_and_snapshot_prefix(self):
        cfg = rewrite_solver_config(parse_prototxt(SOLVER))
        assert cfg.get_value("net") == "solver-net.prototxt"
        assert cfg.get_value("snapshot_prefix") == SNAPSHOT_PREFIX

    def test_other_fields_and_comments_preserved(self):
        expected = SOLVER.replace(
            '"examples/mnist/lenet_train_test.prototxt"', '"solver-net.prototxt"'
        ).replace('"examples/mnist/lenet"', '"snapshot"')
        assert rewrite_solver_text(SOLVER) == expected

    def test_missing_fields_are_added(self):
        assert rewrite_solver_text("base_lr: 0.01\n") == (
            'base_lr: 0.01\nnet: "solver-net.prototxt"\nsnapshot_prefix: "snapshot"\n'
        )

    def test_extension(self):
        assert solver_net_filename("pbtxt") == "solver-net.pbtxt"
        cfg = parse_prototxt(rewrite_solver_text(SOLVER, extension="pbtxt"))
        assert cfg.get_value("net") == "solver-net.pbtxt"

    def test_idempotent(self):
        once = rewrite_solver_text(SOLVER)
        assert rewrite_solver_text(once) == once

    def test_parse_error_surfaces(self):
        with pytest.raises(ConfigParseError):
            rewrite_solver_text("net: {")


class TestNetworkRewrite:
    """Test data layer source rewriting"""

    def _sources(self, text, layer_field, param):
        cfg = parse_prototxt(text)
        return [
            layer.message.get(param).message.get_value("source")
            for layer in cfg.fields(layer_field)
            if layer.message.get(param) is not None
        ]

    def test_image_data_layers(self):
        rewritten = rewrite_network_text(V1_NET)
        assert self._sources(rewritten, "layers", "image_data_param") == [
            TRAINING_INDEX,
            TESTING_INDEX,
        ]

    def test_image_data_text_otherwise_unchanged(self):
        expected = V1_NET.replace('"/data/train.txt"', '"training_index.txt"').replace(
            '"/data/test.txt"', '"testing_index.txt"'
        )
        assert rewrite_network_text(V1_NET) == expected

    def test_data_layers_use_directories(self):
        rewritten = rewrite_network_text(CURRENT_NET)
        assert self._sources(rewritten, "layer", "data_param") == [TRAINING_DIR, TESTING_DIR]
        assert rewritten == CURRENT_NET.replace(
            '"examples/mnist/mnist_train_lmdb"', '"training-data"'
        ).replace('"examples/mnist/mnist_test_lmdb"', '"testing-data"')

    def test_v1_data_layer(self):
        text = 'layers {\n  type: DATA\n  include { phase: TEST }\n  data_param { source: "x" }\n}\n'
        rewritten = rewrite_network_text(text)
        assert self._sources(rewritten, "layers", "data_param") == [TESTING_DIR]

    def test_layer_without_phase_untouched(self):
        text = 'layers {\n  type: IMAGE_DATA\n  image_data_param { source: "keep.txt" }\n}\n'
        assert rewrite_network_text(text) == text

    def test_other_layer_types_untouched(self):
        text = (
            'layer {\n  type: "Convolution"\n  include { phase: TRAIN }\n'
            '  image_data_param { source: "keep.txt" }\n}\n'
        )
        assert rewrite_network_text(text) == text

    def test_missing_param_block_is_created(self):
        text = 'layer {\n  type: "ImageData"\n  include {\n    phase: TRAIN\n  }\n}\n'
        assert rewrite_network_text(text) == (
            'layer {\n  type: "ImageData"\n  include {\n    phase: TRAIN\n  }\n'
            '  image_data_param {\n    source: "training_index.txt"\n  }\n}\n'
        )

    def test_dual_phase_layer_keeps_test_source(self):
        text = (
            'layer {\n  name: "both"\n  type: "ImageData"\n'
            '  include { phase: TRAIN }\n  include { phase: TEST }\n'
            '  image_data_param { source: "x" }\n}\n'
        )
        with patch("train_prep.core.rewriter.logger") as mock_logger:
            rewritten = rewrite_network_text(text)
        assert self._sources(rewritten, "layer", "image_data_param") == [TESTING_INDEX]
        assert mock_logger.warning.called

    def test_layer_order_and_count_preserved(self):
        cfg = rewrite_network_config(parse_prototxt(V1_NET))
        assert [layer.message.get_value("name") for layer in cfg.fields("layers")] == [
            "mnist",
            "mnist",
            "conv1",
        ]

    def test_idempotent(self):
        once = rewrite_network_text(V1_NET)
        assert rewrite_network_text(once) == once

    def test_parse_error_surfaces(self):
        with pytest.raises(ConfigParseError) as exc_info:
            rewrite_network_text("layers {", source="http://example.com/net.prototxt")
        assert exc_info.value.source == "http://example.com/net.prototxt"


class TestPhaseMembership:
    """Test include-block phase detection"""

    def test_is_in_phase(self):
        layer = parse_prototxt("include { phase: TRAIN }\ninclude { stage: \"x\" }")
        assert is_in_phase(layer, "TRAIN")
        assert not is_in_phase(layer, "TEST")

    def test_no_include(self):
        assert not is_in_phase(parse_prototxt('name: "x"'), "TRAIN")
