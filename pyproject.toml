[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "intspeed"
version = "2.0.0"
description = "International network performance testing against speedtest servers in cities worldwide"
requires-python = ">=3.10"
keywords = ["speedtest", "network", "latency", "bandwidth", "monitoring"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Environment :: Web Environment",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
]
dependencies = [
    "requests",
    "aiohttp",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "responses",
]

[project.scripts]
intspeed = "intspeed.cli:main"
intspeed-server = "intspeed.server:main"

[tool.hatch.build.targets.wheel]
packages = ["intspeed"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
