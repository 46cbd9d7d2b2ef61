"""
lsphover 安装脚本
"""

from setuptools import setup, find_packages

setup(
    name="lsphover",
    version="0.1.0",
    description="Minimal Language Server Protocol client for hover lookups",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "click>=8.0.0",
        "rich>=13.0.0",
        "pydantic>=2.0.0",
    ],
    extras_require={
        "dev": ["pytest>=7.0.0", "pytest-asyncio>=0.21.0"],
    },
    entry_points={
        "console_scripts": [
            "lsphover=lsphover.cli:main",
        ],
    },
    python_requires=">=3.10",
)
