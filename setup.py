#!/usr/bin/env python3
"""
Setup script for pvcluster
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text()

# Read requirements
def parse_requirements(filename):
    """Parse requirements file, excluding comments and dev dependencies."""
    requirements = []
    with open(this_directory / filename, "r") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and not line.startswith("pytest"):
                requirements.append(line)
    return requirements

# Core requirements
install_requires = parse_requirements("requirements.txt")

# Development requirements
dev_requires = [
    "pytest>=7.0.0",
    "pytest-cov>=4.0.0",
    "black>=22.0.0",
    "flake8>=5.0.0",
]

setup(
    name="pvcluster",
    version="1.0.0",
    description="K-mer presence vector clustering for partitioning sequence databases",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["pvcluster", "pvcluster.*"]),
    python_requires=">=3.8",
    install_requires=install_requires,
    extras_require={
        "dev": dev_requires,
        "test": ["pytest>=7.0.0", "pytest-cov>=4.0.0"],
    },
    entry_points={
        "console_scripts": [
            "pvcluster=pvcluster.cli:main",
        ],
    },
    include_package_data=True,
    keywords=[
        "bioinformatics",
        "proteins",
        "k-mer",
        "clustering",
        "k-means",
        "k-medoids",
        "sequence search",
    ],
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Natural Language :: English",
    ],
    zip_safe=False,
)
