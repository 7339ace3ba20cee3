[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "torrentkit"
version = "0.1.0"
description = "BitTorrent building blocks: peer wire protocol, metainfo and magnet links, message stream encryption, IP blocklists"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "bittorrent",
    "torrent",
    "peer-wire",
    "metainfo",
    "magnet",
    "bencode",
    "mse",
    "blocklist",
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
    "Topic :: Communications :: File Sharing",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
torrentkit-mse = "torrentkit.mse.mse_cli:main"
torrentkit-iplist = "torrentkit.iplist.iplist_cli:main"
torrentkit-pack-blocklist = "torrentkit.iplist.pack_blocklist:main"

[tool.hatch.build.targets.wheel]
packages = ["torrentkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
