[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "actlocal"
version = "0.1.0"
description = "Building blocks for running workflow jobs locally: artifact and cache servers, configuration readers and plan listings"
requires-python = ">=3.10"
keywords = ["workflows", "ci", "artifacts", "cache", "local-runner"]
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
    "Topic :: Software Development :: Build Tools",
]
dependencies = [
    "psutil",
    "pyyaml",
    "python-dotenv",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["actlocal"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
