[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ccql"
version = "0.1.2"
description = "Query Claude Code data (history, transcripts, todos, stats) with SQL"
requires-python = ">=3.10"
keywords = ["claude", "sql", "sqlite", "cli", "query", "jsonl"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Front-Ends",
    "Topic :: Utilities",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ccql = "ccql.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["ccql"]

[tool.pytest.ini_options]
addopts = "-ra"
