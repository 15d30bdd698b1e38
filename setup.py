from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fp:
    long_description = fp.read()

setup(
    name="cubiclauncher",
    version="1.0.0",
    description="CubicLauncher is a module that provides both an API to install and launch the "
                "Forge 1.12.2 game of a server community, and a CLI built on it.",
    author="CubicLauncher contributors",
    packages=["cubiclauncher", "cubiclauncher.cli"],
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="GPL-3.0",
    python_requires=">=3.8",
    install_requires=[
        "aiohttp>=3.8",
        "aiofiles>=22.1",
        "certifi",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["cubiclauncher = cubiclauncher.cli:main"],
    },
)
