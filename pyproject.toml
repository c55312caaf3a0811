[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "idshabby"
version = "0.1.0"
description = "Network monitoring groundwork for an intrusion detection system: interface discovery, raw packet capture, traffic statistics and structured JSON logging"
requires-python = ">=3.10"
dependencies = [
    "psutil",
]
keywords = ["ids", "intrusion-detection", "packet-capture", "network", "monitoring", "security"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
idshabby = "idshabby.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["idshabby"]

[tool.pytest.ini_options]
addopts = "-ra"
