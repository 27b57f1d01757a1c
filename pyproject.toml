[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "esprouter"
version = "0.1.0"
description = "Building blocks for a small network router: byte-stuffed frame queue, MQTT 3.1/3.1.1 packets and client state machine, packet ACLs and simulated flash storage"
requires-python = ">=3.10"
keywords = ["mqtt", "acl", "firewall", "ring-buffer", "framing", "flash", "ota"]
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
    "Topic :: System :: Networking",
]
dependencies = []

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["esprouter"]

[tool.pytest.ini_options]
addopts = "-ra"
