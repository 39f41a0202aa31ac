[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ddnnfkit"
version = "0.1.0"
description = "A CDCL SAT solver with assumptions and certificates, plus the shared base of decision-DNNF circuits for model counting"
requires-python = ">=3.10"
dependencies = []
keywords = ["sat", "cdcl", "d-dnnf", "model counting", "knowledge compilation", "dimacs"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ddnnfkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
