[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "dpiproxy"
version = "0.1.0"
description = "A local HTTP/HTTPS proxy that splits TLS ClientHello records for blacklisted sites"
requires-python = ">=3.10"
dependencies = []
keywords = ["proxy", "dpi", "tls", "fragmentation", "asyncio", "http-connect"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[project.scripts]
dpiproxy = "dpiproxy.proxy:main"

[tool.hatch.build.targets.wheel]
packages = ["dpiproxy"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
