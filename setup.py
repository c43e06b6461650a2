from setuptools import setup, find_packages

setup(
    name="slicebot",
    version="0.1.0",
    description="Beat-synchronized audio slicing, layering and stutter effects",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
        "scipy>=1.10",
        "librosa>=0.10",
        "soundfile>=0.12",
        "loguru>=0.7",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
    ],
    extras_require={
        "test": ["pytest>=7.4", "pytest-asyncio>=0.23"],
    },
    entry_points={
        "console_scripts": [
            "slicebot=slicebot.cli:main",
        ],
    },
)
