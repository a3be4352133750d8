[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pgproto"
version = "0.6.0"
description = "Low level building blocks of the Postgres wire protocol: frontend messages, binary value encodings, escaping and authentication"
requires-python = ">=3.10"
dependencies = []
keywords = ["postgres", "postgresql", "protocol", "wire", "scram", "sasl", "binary"]
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
    "Topic :: Database",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pgproto"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
