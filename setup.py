from pathlib import Path

from setuptools import find_packages, setup

cwd = Path(__file__).parent
description_file = cwd / "doc" / "pypi-description.md"
if description_file.is_file():
    long_description = description_file.read_text()
else:
    long_description = ""

setup(
    name="ivpstep",
    version="0.1.0",
    description="Adaptive stepping, event detection and cached solutions for initial value problems",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    packages=find_packages("src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=["numpy", "scipy", "numdifftools"],
    extras_require={"dev": ["pytest", "nox", "ruff", "mypy"]},
)
