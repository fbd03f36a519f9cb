[build-system]
requires = ["setuptools>=61"]
build-backend = "setuptools.build_meta"

[project]
name = "cachesim"
version = "0.1.0"
description = "Cache replacement simulation: a linear-regression eviction cache and feature building for learned relaxed-Belady policies"
requires-python = ">=3.10"
dependencies = []
keywords = ["cache", "simulation", "eviction", "belady", "lrb", "caching"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.setuptools.packages.find]
include = ["cachesim*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
