[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kernsim"
version = "0.1.0"
description = "Simulated operating-system kernel: process scheduling over HTTP with CPU, memory and IO services"
requires-python = ">=3.10"
keywords = [
    "kernel",
    "scheduler",
    "operating-system",
    "simulation",
    "fifo",
    "sjf",
    "srt",
    "process-states",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Education",
    "Topic :: System :: Operating System",
]
dependencies = [
    "requests>=2.28",
    "flask>=2.2",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
kernsim = "kernsim.server:main"

[tool.hatch.build.targets.wheel]
packages = ["kernsim"]

[tool.hatch.build.targets.sdist]
include = ["kernsim", "tests", "pyproject.toml"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
ignore_missing_imports = true
