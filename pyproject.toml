[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "oseidsim"
version = "0.1.0"
description = "Simulated smart card environment: card console I/O, card memory, CCID reader logic and a serial reader driver"
requires-python = ">=3.10"
dependencies = [
    "pyserial",
]
keywords = [
    "smart card",
    "ccid",
    "apdu",
    "pcsc",
    "ifd handler",
    "emulator",
    "iso7816",
]
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
    "Topic :: System :: Emulators",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["oseidsim"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
