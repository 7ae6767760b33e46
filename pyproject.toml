[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ripswarm"
version = "0.1.0"
description = "Piece selection, block scheduling and download bookkeeping for a BitTorrent client"
requires-python = ">=3.10"
dependencies = []
keywords = ["bittorrent", "torrent", "peer-to-peer", "rarest-first", "piece-selection"]
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
    "Topic :: Communications :: File Sharing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ripswarm"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
