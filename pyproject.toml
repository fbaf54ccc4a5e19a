[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "nexcore"
version = "0.1.0"
description = "In-memory block devices, a write-back buffer cache, ISO 9660 and a simple inode filesystem, framebuffer graphics and an i386 ELF loader"
requires-python = ">=3.10"
keywords = ["filesystem", "block-device", "buffer-cache", "iso9660", "elf", "framebuffer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
    "Topic :: Education",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["nexcore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
