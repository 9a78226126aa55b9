"""
Setup script for bacdz-tutor.

bacdz-tutor is a terminal study companion for the Algerian baccalaureate.
It serves two roles:

1. Student Tutor - Lesson explanations, quizzes and exercise sheets per track
2. Teacher Assistant - Lesson plans, semester exams and a gradebook

The 'bactutor' command is the entry point.
"""

from setuptools import find_packages, setup

setup(
    name="bacdz-tutor",
    version="1.0.0",
    description="Terminal baccalaureate tutor for Algerian students and teachers, powered by Gemini",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="bacdz-tutor",
    packages=find_packages(include=["bactutor", "bactutor.*"]),
    py_modules=["config"],
    package_data={"bactutor.curriculum": ["data/*.yaml"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "pyyaml>=6.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
        # AI
        "google-genai>=1.0.0",
        # Documents
        "pymupdf>=1.23.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "bactutor=bactutor.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="baccalaureate tutoring cli education gemini",
)
