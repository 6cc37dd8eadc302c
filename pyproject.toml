[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "spotkit"
version = "0.1.0"
description = "Leveled console and file logging with in-memory message history, plus SQLite query helpers: filter expressions, column mapping, batched delete/update and lock-aware retries."
requires-python = ">=3.10"
dependencies = []
keywords = ["logging", "orm", "sqlite", "filter", "retry", "batch", "dataclass"]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Topic :: System :: Logging",
    "Topic :: Database",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["spotkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
