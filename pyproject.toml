[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dirsyncd"
version = "0.1.0"
description = "Directory mirroring manager with a worker pool, change monitoring and an interactive console"
requires-python = ">=3.10"
dependencies = [
    "watchdog",
]
keywords = ["sync", "mirror", "backup", "directory", "monitoring", "fifo"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Mirroring",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
dirsyncd-manager = "dirsyncd.manager:main"
dirsyncd-console = "dirsyncd.console:main"
dirsyncd-worker = "dirsyncd.worker:main"

[tool.hatch.build.targets.wheel]
packages = ["dirsyncd"]

[tool.pytest.ini_options]
addopts = "-ra"
