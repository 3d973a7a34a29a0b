"""
Configuration management for Train Prep

This module defines the configuration schema for job preparation: where the
blob and document stores live, where work directories are created, and how
dataset labels are computed. Configuration objects are built once (from YAML,
JSON or a dict) and passed explicitly into every component.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional, Any, Union
from pathlib import Path
import yaml
import json
import logging
import os

# (section, key) of settings naming local directories or files; None is the
# top level. Relative values are taken relative to the configuration file.
LOCAL_PATH_FIELDS = (
    ("store", "local_root"),
    ("work", "work_directory"),
    (None, "log_file"),
)


def _resolve_local_paths(data: Dict[str, Any], base_dir: Path) -> Dict[str, Any]:
    data = {k: dict(v) if isinstance(v, dict) else v for k, v in data.items()}
    for section, key in LOCAL_PATH_FIELDS:
        values = data if section is None else data.get(section)
        if not isinstance(values, dict) or not values.get(key):
            continue

        path = Path(os.path.expandvars(str(values[key]))).expanduser()
        if not path.is_absolute():
            path = base_dir / path
        values[key] = str(path.resolve())
    return data


@dataclass
class StoreConfig:
    """Blob store and document store configuration"""
    backend: str = "cbfs"  # "cbfs", "local"
    blob_store_url: str = "http://localhost:8484"
    db_url: str = "http://localhost:4985/elastic-thought"
    reference_prefix: str = "cbfs://"
    local_root: str = "/tmp/train-prep/store"  # Used when backend is "local"
    timeout: float = 30.0  # Seconds, per HTTP request

    def __post_init__(self):
        self.backend = str(self.backend).lower()


@dataclass
class WorkConfig:
    """Local work directory configuration"""
    work_directory: str = "/tmp/train-prep"
    keep_raw_archives: bool = True  # Keep a raw copy of each downloaded archive
    show_progress: bool = False  # tqdm progress bars while extracting


@dataclass
class LabelConfig:
    """Dataset labeling configuration"""
    policy: str = "sequential"  # "sequential", "stable"
    verify_vocabulary: bool = True  # Fail when train/test label sets differ

    def __post_init__(self):
        self.policy = str(self.policy).lower()


@dataclass
class PersistenceConfig:
    """Job record persistence"""
    max_save_attempts: int = 3  # Compare-and-set attempts on revision conflicts


@dataclass
class PrepConfig:
    """Complete job preparation configuration"""
    store: StoreConfig = field(default_factory=StoreConfig)
    work: WorkConfig = field(default_factory=WorkConfig)
    labels: LabelConfig = field(default_factory=LabelConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # Metadata
    description: str = ""
    tags: List[str] = field(default_factory=list)

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> 'PrepConfig':
        """Load configuration from YAML file"""
        with open(yaml_path, 'r') as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data, base_dir=Path(yaml_path).resolve().parent)

    @classmethod
    def from_json(cls, json_path: Union[str, Path]) -> 'PrepConfig':
        """Load configuration from JSON file"""
        with open(json_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data, base_dir=Path(json_path).resolve().parent)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> 'PrepConfig':
        """Load configuration, choosing the format from the file extension"""
        if Path(path).suffix.lower() == '.json':
            return cls.from_json(path)
        return cls.from_yaml(path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> 'PrepConfig':
        """
        Create configuration from dictionary

        Relative paths (work_directory, local_root, log_file) are resolved
        against base_dir when given; "~" and environment variables are
        expanded in them.
        """
        if base_dir is not None:
            data = _resolve_local_paths(data, base_dir)

        sections = ['store', 'work', 'labels', 'persistence']
        main_data = {k: v for k, v in data.items() if k not in sections}

        return cls(
            store=StoreConfig(**(data.get('store') or {})),
            work=WorkConfig(**(data.get('work') or {})),
            labels=LabelConfig(**(data.get('labels') or {})),
            persistence=PersistenceConfig(**(data.get('persistence') or {})),
            **main_data
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        return asdict(self)

    def save_yaml(self, yaml_path: Union[str, Path]):
        """Save configuration to YAML file"""
        with open(yaml_path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, indent=2, sort_keys=False)

    def save_json(self, json_path: Union[str, Path]):
        """Save configuration to JSON file"""
        with open(json_path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


class ConfigValidator:
    """Configuration validator"""

    BACKENDS = ("cbfs", "local")
    LABEL_POLICIES = ("sequential", "stable")

    @staticmethod
    def validate(config: PrepConfig) -> 'ValidationResult':
        """Validate configuration"""
        errors = []
        warnings = []

        # Store validation
        if config.store.backend not in ConfigValidator.BACKENDS:
            errors.append(f"Unknown store backend '{config.store.backend}', "
                          f"expected one of {list(ConfigValidator.BACKENDS)}")
        elif config.store.backend == "cbfs":
            for name in ("blob_store_url", "db_url"):
                url = getattr(config.store, name)
                if not url.startswith(("http://", "https://")):
                    errors.append(f"store.{name} must be an http(s) URL: {url!r}")
        elif not config.store.local_root:
            errors.append("store.local_root is required when backend is 'local'")

        if not config.store.reference_prefix:
            errors.append("store.reference_prefix must not be empty")
        elif not config.store.reference_prefix.endswith("://"):
            warnings.append(f"Reference prefix '{config.store.reference_prefix}' "
                            f"does not look like a URI scheme")

        if config.store.timeout <= 0:
            errors.append("store.timeout must be positive")

        # Label validation
        if config.labels.policy not in ConfigValidator.LABEL_POLICIES:
            errors.append(f"Unknown label policy '{config.labels.policy}', "
                          f"expected one of {list(ConfigValidator.LABEL_POLICIES)}")
        elif config.labels.policy == "stable":
            warnings.append("Label policy 'stable' produces manifests that differ from "
                            "'sequential' ones whenever a directory is revisited")

        # Persistence validation
        if config.persistence.max_save_attempts < 1:
            errors.append("persistence.max_save_attempts must be at least 1")

        # Work directory validation
        if not config.work.work_directory:
            errors.append("work.work_directory is required")
        else:
            try:
                Path(config.work.work_directory).mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create work directory {config.work.work_directory}: {e}")

        if getattr(logging, str(config.log_level).upper(), None) is None:
            warnings.append(f"Unknown log level '{config.log_level}', INFO will be used")

        return ValidationResult(errors=errors, warnings=warnings)


@dataclass
class ValidationResult:
    """Configuration validation result"""
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Check if configuration is valid"""
        return len(self.errors) == 0

    def log_results(self, logger: Optional[logging.Logger] = None):
        """Log validation results"""
        if logger is None:
            logger = logging.getLogger(__name__)

        if self.errors:
            for error in self.errors:
                logger.error(f"❌ {error}")

        if self.warnings:
            for warning in self.warnings:
                logger.warning(f"⚠️ {warning}")

        if self.is_valid:
            logger.info("✅ Configuration is valid")


class ConfigTemplateManager:
    """Manager for configuration templates"""

    CBFS_TEMPLATE = {
        "store": {
            "backend": "cbfs",
            "blob_store_url": "http://localhost:8484",
            "db_url": "http://localhost:4985/elastic-thought",
            "reference_prefix": "cbfs://",
            "timeout": 30.0
        },
        "work": {
            "work_directory": "/tmp/train-prep",
            "keep_raw_archives": True,
            "show_progress": False
        },
        "labels": {
            "policy": "sequential",
            "verify_vocabulary": True
        },
        "persistence": {
            "max_save_attempts": 3
        },
        "log_level": "INFO",
        "description": "Cluster setup: cbfs blob store and Sync Gateway documents"
    }

    LOCAL_TEMPLATE = {
        "store": {
            "backend": "local",
            "local_root": "store",
            "reference_prefix": "cbfs://"
        },
        "work": {
            "work_directory": "work",
            "keep_raw_archives": True,
            "show_progress": True
        },
        "labels": {
            "policy": "sequential",
            "verify_vocabulary": True
        },
        "log_level": "DEBUG",
        "description": "Single machine setup: blobs and documents under a local directory"
    }

    @classmethod
    def list_templates(cls) -> List[str]:
        return ["cbfs", "local"]

    @classmethod
    def get_template(cls, template_name: str) -> Dict[str, Any]:
        """Get configuration template by name"""
        templates = {
            "cbfs": cls.CBFS_TEMPLATE,
            "local": cls.LOCAL_TEMPLATE,
        }

        if template_name not in templates:
            raise ValueError(f"Unknown template: {template_name}. Available: {list(templates.keys())}")

        return json.loads(json.dumps(templates[template_name]))

    @classmethod
    def create_config_from_template(cls, template_name: str, **overrides) -> PrepConfig:
        """Create configuration from template with optional overrides"""
        template = cls.get_template(template_name)

        # Apply overrides
        def deep_update(d: dict, u: dict):
            for k, v in u.items():
                if isinstance(v, dict):
                    d[k] = deep_update(d.get(k, {}), v)
                else:
                    d[k] = v
            return d

        if overrides:
            template = deep_update(template, overrides)

        return PrepConfig.from_dict(template)

    @classmethod
    def save_template(cls, template_name: str, output_path: Union[str, Path], format: str = "yaml"):
        """Save template to file"""
        template = cls.get_template(template_name)
        output_path = Path(output_path)

        if format.lower() == "yaml":
            with open(output_path, 'w') as f:
                yaml.dump(template, f, default_flow_style=False, indent=2, sort_keys=False)
        elif format.lower() == "json":
            with open(output_path, 'w') as f:
                json.dump(template, f, indent=2)
        else:
            raise ValueError(f"Unsupported format: {format}. Use 'yaml' or 'json'")
