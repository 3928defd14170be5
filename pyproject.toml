[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "modvis"
version = "0.1.0"
description = "Protracker MOD replay with a waveform and channel-activity visualizer"
requires-python = ">=3.10"
dependencies = []
keywords = ["mod", "protracker", "tracker", "music", "audio", "visualizer", "wav"]
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
    "Topic :: Multimedia :: Sound/Audio :: Players",
    "Topic :: Multimedia :: Sound/Audio",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
modvis = "modvis.cart:main"

[tool.hatch.build.targets.wheel]
packages = ["modvis"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
