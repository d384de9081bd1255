# setup.py
from setuptools import setup, find_packages

setup(
    name="site-fetch",
    version="0.1.0",
    description="SSRF-safe source validation, polite website crawling and TTL caching",
    packages=find_packages(exclude=("tests", "tests.*")),
    install_requires=[
        "aiohttp>=3.9",
        "beautifulsoup4>=4.12",
        "lxml>=5.0",
        "pydantic>=2.5",
        "PyYAML>=6.0",
        "click>=8.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "site-fetch=site_fetch.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
