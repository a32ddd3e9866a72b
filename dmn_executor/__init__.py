"""dmn-executor: load DMN decision models, evaluate them against JSON input, emit JSON results."""

__version__ = "1.0.0"
