from pathlib import Path
from setuptools import find_packages, setup


def read_version(root: Path) -> str:
    """Return ``__version__`` from the package without importing it."""
    for line in (root / "coinscout" / "__init__.py").read_text().splitlines():
        if line.startswith("__version__"):
            return line.split("=", 1)[1].strip().strip("\"'")
    raise RuntimeError("__version__ not found")


ROOT = Path(__file__).parent

setup(
    name="coinscout",
    version=read_version(ROOT),
    description="Scanner that scores recently listed crypto assets",
    packages=find_packages(include=["coinscout", "coinscout.*"]),
    python_requires=">=3.11",
    install_requires=[
        "aiohttp>=3.8",
        "Flask>=2.2",
        "pydantic>=2",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["coinscout=coinscout.cli:main"]},
)
