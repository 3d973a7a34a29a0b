"""
Command Line Interface for Train Prep

Provides command-line access to configuration rewriting, dataset assembly and
work directory preparation.
"""

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

import yaml

from ..config import ConfigTemplateManager, ConfigValidator, PrepConfig
from ..core.dataset import Dataset, TrainingDataAssembler
from ..core.rewriter import CONFIG_EXTENSION, rewrite_network_text, rewrite_solver_text
from ..core.solver import JobPreparer
from ..errors import PrepError
from ..utils import setup_logging


CONFIG_LOAD_ERRORS = (OSError, TypeError, ValueError, yaml.YAMLError)


def load_config(config_path: Optional[str]) -> PrepConfig:
    """Load a configuration file, or the defaults when no path is given"""
    if config_path is None:
        config = PrepConfig()
    else:
        config = PrepConfig.from_file(config_path)
    setup_logging(config.log_level, config.log_file)
    return config


def _load_config_or_report(config_path: Optional[str]) -> Optional[PrepConfig]:
    try:
        return load_config(config_path)
    except CONFIG_LOAD_ERRORS as e:
        print(f"❌ Cannot load configuration {config_path}: {e}")
        return None


def create_config_template(template_type: str, output_path: str, format: str = None) -> bool:
    """Create a configuration template file"""

    output_path = Path(output_path)

    # Determine format from file extension or parameter
    if format is None:
        if output_path.suffix.lower() in ['.yaml', '.yml']:
            format = 'yaml'
        elif output_path.suffix.lower() == '.json':
            format = 'json'
        else:
            format = 'yaml'
            output_path = output_path.with_suffix('.yaml')

    try:
        ConfigTemplateManager.save_template(template_type, output_path, format)
    except (ValueError, OSError) as e:
        print(f"❌ Failed to create template: {e}")
        print(f"Available templates: {', '.join(ConfigTemplateManager.list_templates())}")
        return False

    print(f"✅ Configuration template created: {output_path}")
    print(f"📋 Template type: {template_type}")
    return True


def validate_config(config_path: str) -> bool:
    """Validate a configuration file"""

    config_path = Path(config_path)

    if not config_path.exists():
        print(f"❌ Configuration file not found: {config_path}")
        return False

    if config_path.suffix.lower() not in ['.yaml', '.yml', '.json']:
        print(f"❌ Unsupported file format: {config_path.suffix}")
        return False

    try:
        config = PrepConfig.from_file(config_path)
    except CONFIG_LOAD_ERRORS as e:
        print(f"❌ Configuration validation failed: {e}")
        return False

    validation_result = ConfigValidator.validate(config)

    if validation_result.is_valid:
        print(f"✅ Configuration is valid: {config_path}")
        print(f"   Backend: {config.store.backend}")
        print(f"   Work directory: {config.work.work_directory}")
        print(f"   Label policy: {config.labels.policy}")

        if validation_result.warnings:
            print("⚠️ Warnings:")
            for warning in validation_result.warnings:
                print(f"   {warning}")
    else:
        print(f"❌ Configuration validation failed:")
        for error in validation_result.errors:
            print(f"   {error}")

    return validation_result.is_valid


def _rewrite_file(rewrite, input_path: str, output_path: Optional[str]) -> bool:
    try:
        text = Path(input_path).read_bytes()
    except OSError as e:
        print(f"❌ Cannot read {input_path}: {e}")
        return False

    try:
        rewritten = rewrite(text, input_path)
    except PrepError as e:
        print(f"❌ Failed to rewrite {input_path}: {e}")
        return False

    if output_path is None:
        sys.stdout.write(rewritten)
        return True

    try:
        Path(output_path).write_text(rewritten, encoding="utf-8")
    except OSError as e:
        print(f"❌ Cannot write {output_path}: {e}")
        return False
    print(f"✅ Rewritten configuration written to {output_path}")
    return True


def rewrite_solver_file(input_path: str, output_path: Optional[str] = None,
                        extension: str = CONFIG_EXTENSION) -> bool:
    """Rewrite a local solver configuration file"""
    return _rewrite_file(
        lambda text, source: rewrite_solver_text(text, extension, source=source),
        input_path,
        output_path,
    )


def rewrite_net_file(input_path: str, output_path: Optional[str] = None) -> bool:
    """Rewrite a local net configuration file"""
    return _rewrite_file(
        lambda text, source: rewrite_network_text(text, source=source),
        input_path,
        output_path,
    )


def prepare_configs(config_path: Optional[str], solver_id: str) -> bool:
    """Rewrite a stored solver's configurations into the blob store"""
    config = _load_config_or_report(config_path)
    if config is None:
        return False

    try:
        preparer = JobPreparer.from_config(config)
        solver = preparer.prepare_configs(preparer.load_solver(solver_id))
    except (PrepError, ValueError) as e:
        print(f"❌ Failed to prepare configurations for solver {solver_id}: {e}")
        return False

    print(f"✅ Solver {solver.id} updated (rev {solver.rev})")
    print(f"   Specification: {solver.specification_url}")
    print(f"   Net specification: {solver.specification_net_url}")
    return True


def assemble_dataset(config_path: Optional[str], dataset_id: str, dest_dir: str) -> bool:
    """Download and index a dataset into a directory"""
    config = _load_config_or_report(config_path)
    if config is None:
        return False

    try:
        assembler = TrainingDataAssembler.from_config(config)
        labels = assembler.assemble(Dataset(dataset_id), dest_dir)
    except (PrepError, ValueError) as e:
        print(f"❌ Failed to assemble dataset {dataset_id}: {e}")
        return False

    print(f"✅ Dataset {dataset_id} assembled in {dest_dir}")
    print(f"🏷️ Labels: {json.dumps(labels)}")
    return True


def prepare_work_directory(config_path: Optional[str], solver_id: str,
                           job_id: Optional[str] = None) -> bool:
    """Populate a work directory for a stored solver"""
    config = _load_config_or_report(config_path)
    if config is None:
        return False

    try:
        preparer = JobPreparer.from_config(config)
        workspace = preparer.prepare_work_directory(preparer.load_solver(solver_id), job_id)
    except (PrepError, ValueError) as e:
        print(f"❌ Failed to prepare work directory for solver {solver_id}: {e}")
        return False

    print(f"✅ Work directory ready: {workspace.path}")
    print(f"🏷️ Labels: {json.dumps(workspace.labels)}")
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Train Prep - Caffe training job preparation')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Template command
    template_parser = subparsers.add_parser('create-template', help='Create configuration template')
    template_parser.add_argument('type', choices=ConfigTemplateManager.list_templates(), help='Template type')
    template_parser.add_argument('output', help='Output file path')
    template_parser.add_argument('--format', choices=['yaml', 'json'], default=None,
                                 help='Output format (auto-detected from extension if not specified)')

    # Validate command
    validate_parser = subparsers.add_parser('validate', help='Validate configuration file')
    validate_parser.add_argument('config', help='Configuration file path')

    # Rewrite commands
    solver_parser = subparsers.add_parser('rewrite-solver', help='Rewrite a local solver configuration')
    solver_parser.add_argument('input', help='Solver configuration file')
    solver_parser.add_argument('--output', '-o', default=None, help='Output file (default: stdout)')
    solver_parser.add_argument('--extension', default=CONFIG_EXTENSION,
                               help='Extension of the rewritten net file name')

    net_parser = subparsers.add_parser('rewrite-net', help='Rewrite a local net configuration')
    net_parser.add_argument('input', help='Net configuration file')
    net_parser.add_argument('--output', '-o', default=None, help='Output file (default: stdout)')

    # Pipeline commands
    configs_parser = subparsers.add_parser('prepare-configs',
                                           help="Rewrite a solver's configurations into the blob store")
    configs_parser.add_argument('solver_id', help='Solver document id')
    configs_parser.add_argument('--config', '-c', default=None, help='Configuration file path')

    assemble_parser = subparsers.add_parser('assemble', help='Download and index a dataset')
    assemble_parser.add_argument('dataset_id', help='Dataset id')
    assemble_parser.add_argument('dest_dir', help='Destination directory')
    assemble_parser.add_argument('--config', '-c', default=None, help='Configuration file path')

    workdir_parser = subparsers.add_parser('prepare-workdir', help='Populate a work directory for a solver')
    workdir_parser.add_argument('solver_id', help='Solver document id')
    workdir_parser.add_argument('--job-id', default=None, help='Work directory name (default: solver id)')
    workdir_parser.add_argument('--config', '-c', default=None, help='Configuration file path')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'create-template':
        success = create_config_template(args.type, args.output, args.format)

    elif args.command == 'validate':
        success = validate_config(args.config)

    elif args.command == 'rewrite-solver':
        success = rewrite_solver_file(args.input, args.output, args.extension)

    elif args.command == 'rewrite-net':
        success = rewrite_net_file(args.input, args.output)

    elif args.command == 'prepare-configs':
        success = prepare_configs(args.config, args.solver_id)

    elif args.command == 'assemble':
        success = assemble_dataset(args.config, args.dataset_id, args.dest_dir)

    elif args.command == 'prepare-workdir':
        success = prepare_work_directory(args.config, args.solver_id, args.job_id)

    else:
        parser.print_help()
        return 1

    return 0 if success else 1


def template_command():
    """Entry point for tp-template command"""
    parser = argparse.ArgumentParser(description='Train Prep - Template Generator')
    parser.add_argument('type', choices=ConfigTemplateManager.list_templates(), help='Template type')
    parser.add_argument('output', help='Output file path')
    parser.add_argument('--format', choices=['yaml', 'json'], default=None,
                        help='Output format (auto-detected from extension if not specified)')

    args = parser.parse_args()

    return 0 if create_config_template(args.type, args.output, args.format) else 1


if __name__ == "__main__":
    sys.exit(main())
