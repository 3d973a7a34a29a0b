"""
Configuration rewriting for Caffe solver and net definitions

The solver definition is pointed at the rewritten net file and a fixed
snapshot prefix; data layers of the net definition are pointed at the
manifests and directories produced by the training data assembler.
"""

import logging
from typing import Optional

from .prototxt import Message, parse_prototxt

logger = logging.getLogger(__name__)

CONFIG_EXTENSION = "prototxt"
SOLVER_FILENAME = "solver"
SOLVER_NET_FILENAME = "solver-net"
SNAPSHOT_PREFIX = "snapshot"

TRAINING_INDEX = "training_index.txt"
TESTING_INDEX = "testing_index.txt"
TRAINING_DIR = "training-data"
TESTING_DIR = "testing-data"

PHASE_TRAIN = "TRAIN"
PHASE_TEST = "TEST"

# V1 ("layers", enum type) and current ("layer", string type) grammars
LAYER_FIELDS = ("layers", "layer")
IMAGE_DATA_TYPES = {"IMAGE_DATA", "ImageData"}
DATA_TYPES = {"DATA", "Data"}


def solver_filename(extension: str = CONFIG_EXTENSION) -> str:
    return f"{SOLVER_FILENAME}.{extension}"


def solver_net_filename(extension: str = CONFIG_EXTENSION) -> str:
    return f"{SOLVER_NET_FILENAME}.{extension}"


def rewrite_solver_config(cfg: Message, extension: str = CONFIG_EXTENSION) -> Message:
    """
    Point a parsed solver definition at the rewritten net file

    Sets "net" to "solver-net.<ext>" and "snapshot_prefix" to "snapshot";
    every other field is left untouched.
    """
    cfg.set_value("net", solver_net_filename(extension))
    cfg.set_value("snapshot_prefix", SNAPSHOT_PREFIX)
    return cfg


def is_in_phase(layer: Message, phase: str) -> bool:
    """A layer is in a phase iff any of its include blocks names it"""
    for include in layer.fields("include"):
        if include.is_message and include.message.get_value("phase") == phase:
            return True
    return False


def _layer_sources(layer_type: Optional[str]):
    if layer_type in IMAGE_DATA_TYPES:
        return "image_data_param", TRAINING_INDEX, TESTING_INDEX
    if layer_type in DATA_TYPES:
        return "data_param", TRAINING_DIR, TESTING_DIR
    return None


def rewrite_network_config(cfg: Message) -> Message:
    """
    Point the data layers of a parsed net definition at the local layout

    Image data layers read the training/testing manifests, raw data layers
    read the training/testing directories. The train rule is applied before
    the test rule, so a layer included in both phases keeps the test source.
    Layers of other types, or without phase markers, are left untouched.
    """
    for layer_field in cfg:
        if layer_field.name not in LAYER_FIELDS or not layer_field.is_message:
            continue
        layer = layer_field.message

        sources = _layer_sources(layer.get_value("type"))
        if sources is None:
            continue
        param_name, train_source, test_source = sources

        in_train = is_in_phase(layer, PHASE_TRAIN)
        in_test = is_in_phase(layer, PHASE_TEST)
        if in_train and in_test:
            logger.warning(
                f"Layer '{layer.get_value('name')}' is included in both phases; "
                f"its source will be set to {test_source}"
            )

        if in_train:
            layer.get_or_create_message(param_name).set_value("source", train_source)
        if in_test:
            layer.get_or_create_message(param_name).set_value("source", test_source)

    return cfg


def rewrite_solver_text(text, extension: str = CONFIG_EXTENSION, source: Optional[str] = None) -> str:
    """Parse, rewrite and serialize a solver definition"""
    return rewrite_solver_config(parse_prototxt(text, source), extension).serialize()


def rewrite_network_text(text, source: Optional[str] = None) -> str:
    """Parse, rewrite and serialize a net definition"""
    return rewrite_network_config(parse_prototxt(text, source)).serialize()
