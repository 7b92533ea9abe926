"""Setup script for the audience signage package."""

from setuptools import setup, find_namespace_packages
from pathlib import Path

# Read README if it exists
readme_file = Path(__file__).parent / "README.md"
long_description = ""
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")

setup(
    name="audience-signage",
    version="0.1.0",
    description="Live face recognition and audience category detection for digital signage",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Audience Signage Team",
    packages=find_namespace_packages(include=["signage", "signage.*", "scripts"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.26.0",
        "opencv-python>=4.9.0",
        "pyyaml>=6.0.0",
        "httpx>=0.27.0",
        "fastapi>=0.110.0",
        "pydantic>=2.0",
        "uvicorn>=0.29.0",
    ],
    extras_require={
        "inference": [
            "insightface>=0.7.3",
            "onnxruntime>=1.16.3",
        ],
        "dev": [
            "pytest>=7.4.0",
            "black",
            "flake8",
            "mypy",
        ],
    },
    entry_points={
        "console_scripts": [
            "signage-kiosk=scripts.run_kiosk:main",
            "signage-serve=scripts.serve_identities:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
