"""
Setup script for personalization-engine.

The personalization engine resolves the behavioral and pedagogical
state for a tutoring agent's next interaction. It serves three roles:

1. Target Cascade - One effective value per behavior parameter
2. Curriculum Position - Confirmed or estimated module progress
3. Session Planning - Spaced review intensity and session flow

It is a library: callers pass pre-fetched snapshots and consume the
resolved state.
"""

from setuptools import find_packages, setup

setup(
    name="personalization-engine",
    version="1.0.0",
    description="Deterministic personalization state resolution for tutoring agents",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Right Learning",
    packages=find_packages(include=["src", "src.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
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
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning personalization spaced-repetition curriculum tutoring",
)
