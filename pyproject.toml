[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gbmedia"
version = "0.1.0"
description = "Building blocks for GB/T 28181 video platforms: stream models, H.264 helpers, storage records, snapshot settings and HTTP callbacks"
requires-python = ">=3.10"
keywords = ["gb28181", "video", "rtp", "h264", "streaming", "surveillance"]
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
    "Topic :: Multimedia :: Video",
    "Typing :: Typed",
]
dependencies = [
    "httpx",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
    "respx",
]

[tool.hatch.build.targets.wheel]
packages = ["gbmedia"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
