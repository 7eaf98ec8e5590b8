[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rproxy"
version = "0.1.0"
description = "A small blocking reverse proxy for WebSocket upgrades, with a WebSocket echo server and an interactive client"
requires-python = ">=3.10"
dependencies = []
keywords = ["reverse-proxy", "websocket", "http", "proxy", "echo"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
rproxy = "rproxy.server:main"
rproxy-client = "rproxy.client:main"
rproxy-echo = "rproxy.echo_server:main"

[tool.hatch.build.targets.wheel]
packages = ["rproxy"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
