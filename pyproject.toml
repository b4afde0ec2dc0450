[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "osrkit"
version = "0.1.0"
description = "Read, write and inspect osu! replay (.osr) files, with a pure-Python LZMA decoder"
requires-python = ">=3.10"
dependencies = []
keywords = ["osu", "replay", "osr", "lzma", "parser"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Environment :: Console",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Games/Entertainment",
    "Topic :: System :: Archiving :: Compression",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
osrkit = "osrkit.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["osrkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
