[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "scorecard"
version = "0.1.0"
description = "Security health checks for source repositories: GitHub repository access and pinned-dependency analysis."
requires-python = ">=3.10"
keywords = ["security", "supply-chain", "github", "dependencies", "dockerfile", "workflows"]
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
    "Topic :: Security",
]
dependencies = [
    "pyyaml",
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[tool.hatch.build.targets.wheel]
packages = ["scorecard"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
