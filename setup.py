"""
NNViz — Setup Script
=====================
Installs NNViz as a local editable package so that all internal imports
(e.g. `from nnviz.model.builder import build_model`) work from any script
or notebook.

Usage:
    cd /path/to/nnviz
    pip install -e ".[dev]"
"""

from setuptools import setup, find_packages

setup(
    name="nnviz",
    version="0.1.0",
    author="Aditya",
    description=(
        "NNViz: build, train, inspect and evaluate small feed-forward "
        "classifiers on toy datasets"
    ),
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=["nnviz", "nnviz.*"]),
    python_requires=">=3.10",
    install_requires=[
        "torch>=2.1.0",
        "numpy>=1.24.0",
        "tqdm>=4.65.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": ["pytest>=7.0"],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Education",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
)
