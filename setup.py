#!/usr/bin/env python3
"""
Setup script for the kinemotion package.
Install with: pip install -e .
"""

from setuptools import setup, find_packages

setup(
    name="kinemotion",
    version="0.1.0",
    description="Kinematics and motion-control engine for articulated robot models",
    packages=find_packages(include=["kinemotion", "kinemotion.*"]),
    python_requires=">=3.8",
    install_requires=[
        "numpy",
        "scipy",
        "PyYAML",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    entry_points={
        "console_scripts": [
            "kinemotion=kinemotion.main:main_cli",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
