from pathlib import Path
from setuptools import find_namespace_packages, setup


ROOT = Path(__file__).parent


def read_readme() -> str:
    readme = ROOT / "README.md"
    return readme.read_text(encoding="utf-8") if readme.exists() else ""


setup(
    name="solfinder",
    version="0.3.0",
    description="Find Solana fungible tokens by name, ticker or mint address",
    long_description=read_readme(),
    long_description_content_type="text/markdown",
    python_requires=">=3.10",
    packages=find_namespace_packages(include=["solfinder", "solfinder.*"]),
    install_requires=[
        "aiohttp>=3.9",
        "cachetools>=5.3",
        "orjson>=3.9",
        "solders>=0.20",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "solfinder=solfinder.cli:main",
        ],
    },
)
