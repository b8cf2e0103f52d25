from setuptools import setup, find_packages

setup(
    name="megatask",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "aiohttp",
        "tqdm",
        "PyYAML",
        "typer"
    ],
    extras_require={
        "test": ["pytest", "pytest-asyncio"],
    },
    entry_points={
        "console_scripts": ["megatask=megatask.cli:app"],
    },
    description="Rate-limited, retrying execution engine for converging a remote megaverse grid.",
    long_description=open('README.md').read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
