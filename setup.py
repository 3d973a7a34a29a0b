#!/usr/bin/env python3
"""
Setup script for Train Prep

Prepares Caffe training jobs: rewrites solver and net configurations and
unpacks labeled datasets into work directories.
"""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file for long description
this_directory = Path(__file__).parent
long_description = (
    (this_directory / "README.md").read_text(encoding="utf-8")
    if (this_directory / "README.md").exists()
    else ""
)

# Core dependencies that are always required
core_requirements = [
    "PyYAML>=5.4.0",
    "requests>=2.30.0",
    "urllib3>=2.0.0",
    "tqdm>=4.60.0",
]

# Test dependencies
test_requirements = [
    "pytest>=6.0.0",
    "pytest-cov>=2.10.0",
]

# Development dependencies
dev_requirements = test_requirements + [
    "black>=21.0.0",
    "isort>=5.0.0",
    "flake8>=3.8.0",
]

setup(
    name="train-prep",
    version="1.0.0",
    author="Train Prep Team",
    description="Training job preparation for Caffe: configuration rewriting and dataset indexing",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
    keywords="caffe prototxt training dataset machine-learning",
    python_requires=">=3.8",
    install_requires=core_requirements,
    extras_require={
        "test": test_requirements,
        "dev": dev_requirements,
    },
    entry_points={
        "console_scripts": [
            "train-prep=train_prep.cli.main:main",
            "tp-template=train_prep.cli.main:template_command",
        ],
    },
    zip_safe=False,
    platforms=["any"],
)
