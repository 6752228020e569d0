[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "brakenotify"
version = "0.1.0"
description = "Error notices, performance metrics and web middleware for an error-tracking service"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "error-tracking",
    "exceptions",
    "notifier",
    "apm",
    "performance",
    "wsgi",
    "asgi",
    "grpc",
    "logging",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Bug Tracking",
    "Topic :: System :: Monitoring",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Middleware",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
brakenotify-demo = "brakenotify.demo:main"

[tool.hatch.build.targets.wheel]
packages = ["brakenotify"]

[tool.hatch.build.targets.sdist]
include = ["brakenotify", "tests"]

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
