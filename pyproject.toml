[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "svcregistry"
version = "0.1.0"
description = "Service registry for microservices with a Consul backend, a no-op default and compact tag encodings"
requires-python = ">=3.10"
dependencies = []
keywords = ["service-discovery", "registry", "microservices", "consul"]
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
    "Topic :: System :: Distributed Computing",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["svcregistry"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
