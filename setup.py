"""
Setup script for prep-autopilot.

prep-autopilot builds a short daily interview-prep session (Review, Core,
Breadth) from practice sheets the user already keeps in Notion:

1. Discovery - Propose which Notion databases belong to which prep domain
2. Confirmation - A human confirms the mapping before it is ever used
3. Sessions - Deterministic selection and time budgeting from attempt history

The 'autopilot' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="prep-autopilot",
    version="1.0.0",
    description="Deterministic daily session engine for interview preparation",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Notion
        "notion-client>=2.2.0",
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "autopilot=autopilot.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
    ],
    keywords="interview-prep notion scheduling cli",
)
