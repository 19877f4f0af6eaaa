[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "aevum"
version = "0.1.0"
description = "Time-series stream models, validation, processing pipelines and framework-neutral service handlers"
requires-python = ">=3.11"
dependencies = []
keywords = ["time-series", "streams", "pipelines", "aggregation", "ingestion", "json-schema"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Framework :: AsyncIO",
    "Topic :: Database",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["aevum"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
