"""promptbench - run prompt templates against multiple LLM providers and compare results."""

__version__ = "0.1.0"
