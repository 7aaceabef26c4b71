from setuptools import setup, find_packages
from pathlib import Path

this_dir = Path(__file__).parent
readme = (this_dir / "README.md").read_text(encoding="utf-8") if (this_dir / "README.md").exists() else ""

setup(
    name="loro",
    version="0.1.0",
    description="HTTP function that normalizes name, email and age, with a local host and CLI",
    long_description=readme,
    long_description_content_type="text/markdown",
    author="Vedant M",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "loro=loro.cli:main",
        ]
    },
    python_requires=">=3.8",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Environment :: Console",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    ],
)
