[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "webctx"
version = "0.1.0"
description = "Per-request context for web handlers: input parsing, content negotiation, rendering and error collection"
requires-python = ">=3.10"
keywords = [
    "http",
    "web",
    "request",
    "response",
    "context",
    "middleware",
    "content-negotiation",
    "json",
]
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
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "pyyaml",
    "tomli-w",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["webctx"]

[tool.hatch.build.targets.sdist]
include = [
    "webctx",
    "tests",
]

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
