[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tokenvm"
version = "0.0.1"
description = "State storage layout and JSON-RPC query service for a token ledger: balances, assets, orders, loans and transaction records."
requires-python = ">=3.10"
dependencies = []
keywords = ["ledger", "token", "json-rpc", "key-value", "state", "bech32", "wsgi"]
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
    "Topic :: Database",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["tokenvm"]

[tool.hatch.build.targets.sdist]
include = ["tokenvm", "tests", "README.md"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
