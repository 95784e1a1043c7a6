[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "voxio"
version = "0.1.0"
description = "Gapless WAVE playback engine with seeking, resampling and a sample tap for visualisation"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["audio", "playback", "gapless", "resampling", "wave", "player"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Sound/Audio :: Players",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["voxio"]

[tool.hatch.build.targets.sdist]
include = ["voxio", "tests", "README.md", "pyproject.toml"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
