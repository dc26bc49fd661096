[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sipbridge"
version = "0.0.1"
description = "Building blocks for a SIP-to-room media bridge: SIP URIs and messages, REFER/NOTIFY helpers, call status mapping and call metrics."
requires-python = ">=3.10"
keywords = ["sip", "voip", "telephony", "refer", "notify", "metrics"]
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
    "Topic :: Communications :: Internet Phone",
    "Topic :: Communications :: Telephony",
]
dependencies = [
    "psutil",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["sipbridge"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
