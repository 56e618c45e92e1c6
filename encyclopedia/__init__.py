"""
Agentic Encyclopedia - structured answers from interchangeable LLM backends.
"""

__version__ = "0.1.0"
