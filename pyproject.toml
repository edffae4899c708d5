[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "diskmanager"
version = "0.1.0"
description = "External disk and volume management core: uevent parsing, storage daemon requests, block info cache and voldata mount path store"
requires-python = ">=3.10"
dependencies = []
keywords = ["disk", "volume", "uevent", "mount", "partition", "storage", "fuse"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["diskmanager"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
