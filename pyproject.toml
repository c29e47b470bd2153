[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sxscan"
version = "0.1.0"
description = "Network scan building blocks: target ranges, request generators, packet crafting and ICMP, TCP, UDP and SOCKS5 scan methods"
requires-python = ">=3.10"
dependencies = []
keywords = ["network", "scanner", "port-scan", "icmp", "tcp", "udp", "socks5", "packets", "bpf"]
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
    "Topic :: System :: Networking :: Monitoring",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sxscan"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
