[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "logshipper"
version = "0.1.0"
description = "Building blocks for a log shipping agent: log lines, a slot-based rate limiter, journald export decoding and Kubernetes pod and event metadata."
requires-python = ">=3.11"
dependencies = []
keywords = [
    "logging",
    "log-shipping",
    "journald",
    "journalctl",
    "kubernetes",
    "rate-limiting",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Logging",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["logshipper"]

[tool.hatch.build.targets.sdist]
include = ["logshipper", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
