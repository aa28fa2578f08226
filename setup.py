from setuptools import setup, find_packages

setup(
    name="stepgraph",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src", exclude=["tests", "tests.*"]),
    install_requires=[
        "pydantic>=2",
        "mirascope>=1,<2",
        "aiosqlite",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    python_requires=">=3.10",
    # Add metadata for PyPI
    description="durable graph execution with checkpoints, interrupts and streaming",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
)
