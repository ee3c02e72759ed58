[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "faceauth"
version = "0.1.0"
description = "Face authentication building blocks: IPC protocol, configuration, face geometry, image quality, liveness and model pre/post-processing"
requires-python = ">=3.11"
dependencies = [
    "numpy",
]
keywords = ["face", "authentication", "pam", "infrared", "liveness", "biometrics"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration :: Authentication/Directory",
    "Topic :: Scientific/Engineering :: Image Recognition",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["faceauth"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"
