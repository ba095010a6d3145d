"""Setup configuration for api-conformance tool."""

from setuptools import setup, find_packages

setup(
    name="api-conformance",
    version="0.1.0",
    description="Declarative cross-engine REST API conformance runner",
    packages=find_packages(include=["api_conformance", "api_conformance.*"]),
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.31.0",
        "pyyaml>=6.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
    entry_points={
        "console_scripts": [
            "api-conformance=api_conformance.cli:main",
        ],
    },
)
