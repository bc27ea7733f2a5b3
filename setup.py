# setup.py
"""
CardioSense single-lead ECG acquisition toolkit
Installation script
"""

import sys
import shutil
from pathlib import Path
from setuptools import setup, find_namespace_packages, Command

# Package metadata
PACKAGE_NAME = "cardiosense"
VERSION = "1.0.0"
DESCRIPTION = "Single-lead ECG acquisition: synthesizer, BLE stream reassembly and bounded sample windows"
AUTHOR = "CardioSense Development Team"
URL = "https://github.com/cardiosense/cardiosense"

PYTHON_REQUIRES = ">=3.9"

# Core dependencies
CORE_REQUIREMENTS = [
    "numpy>=1.21.0",
    "scipy>=1.7.0",
    "pandas>=1.5.0",
    "bleak>=0.19.0",
    "pydantic>=2.0.0",
    "jsonschema>=4.0.0",
    "PyYAML>=6.0",
    "python-dotenv>=0.19.0",
    "requests>=2.25.0",
    "reportlab>=3.6.0",
]

# Development dependencies
DEV_REQUIREMENTS = [
    "pytest>=7.0.0",
    "pytest-asyncio>=0.21.0",
    "pytest-cov>=3.0.0",
    "black>=22.0.0",
    "isort>=5.10.0",
    "flake8>=4.0.0",
]

PACKAGES = ["core", "sensors", "config", "reports", "ai"]


class CleanCommand(Command):
    """Remove build artifacts and exported sessions"""
    description = "Clean build artifacts"
    user_options = []

    def initialize_options(self):
        pass

    def finalize_options(self):
        pass

    def run(self):
        for pattern in ["build", "dist", "*.egg-info", ".pytest_cache", "sessions", "reports/*.pdf"]:
            for path in Path(".").glob(pattern):
                if path.is_dir():
                    shutil.rmtree(path, ignore_errors=True)
                else:
                    path.unlink(missing_ok=True)
                print(f"Removed {path}")
        for path in Path(".").rglob("__pycache__"):
            shutil.rmtree(path, ignore_errors=True)


def read_readme():
    """Read README file for long description"""
    readme_path = Path("README.md")
    if readme_path.exists():
        return readme_path.read_text(encoding="utf-8")
    return DESCRIPTION


if sys.version_info < (3, 9):
    raise RuntimeError("Python 3.9 or higher is required")

setup(
    name=PACKAGE_NAME,
    version=VERSION,
    description=DESCRIPTION,
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    author=AUTHOR,
    url=URL,

    # Package discovery
    packages=find_namespace_packages(include=PACKAGES),
    py_modules=["main_application"],

    # Entry points
    entry_points={
        "console_scripts": [
            "cardiosense=main_application:main",
        ],
    },

    # Dependencies
    python_requires=PYTHON_REQUIRES,
    install_requires=CORE_REQUIREMENTS,

    extras_require={
        "dev": DEV_REQUIREMENTS,
        "test": ["pytest>=7.0.0", "pytest-asyncio>=0.21.0"],
    },

    cmdclass={
        "clean": CleanCommand,
    },

    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],

    keywords="ecg biosignal acquisition ble simulator",
)
