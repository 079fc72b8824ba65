[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dslabkit"
version = "0.2.0"
description = "Small building blocks for distributed systems: a thread pool, message-passing modules, an HMAC-authenticated link, crash-safe storage, a UDP failure detector and two-phase commit."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "distributed-systems",
    "thread-pool",
    "message-passing",
    "hmac",
    "tls",
    "stable-storage",
    "failure-detector",
    "two-phase-commit",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
dslabkit-fib = "dslabkit.fibonacci:main"

[tool.hatch.build.targets.wheel]
packages = ["dslabkit"]

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
