[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "langos"
version = "0.1.0"
description = "A small distributed document store with a name server, storage servers and an interactive client"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "distributed",
    "file-system",
    "name-server",
    "storage-server",
    "collaborative-editing",
    "sockets",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
langos-name-server = "langos.name_server:main"
langos-storage-server = "langos.storage_server:main"
langos-client = "langos.client:main"

[tool.hatch.build.targets.wheel]
packages = ["langos"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
