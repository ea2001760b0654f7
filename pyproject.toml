[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mashinko"
version = "0.0.1"
description = "A small reverse-mode autodiff engine with neural network layers, losses and an SGD optimizer on NumPy"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["autograd", "autodiff", "neural-network", "deep-learning", "cnn", "mnist", "numpy"]
classifiers = [
    "Development Status :: 2 - Pre-Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
mashinko = "mashinko.examples:main"

[tool.hatch.build.targets.wheel]
packages = ["mashinko"]

[tool.pytest.ini_options]
addopts = "-ra"
