[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tempoagent"
version = "0.1.0"
description = "Trace pipeline configuration and service-discovery attribute enrichment for a tracing agent"
requires-python = ">=3.10"
keywords = ["tracing", "opentelemetry", "service-discovery", "relabeling", "monitoring"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["tempoagent"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
