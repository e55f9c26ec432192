"""
Finance Advisor AI Service.

Incremental AI response delivery: token-streamed chat reassembly and an
adaptive-TTL cache for one-shot insight generation.
"""

__version__ = "0.1.0"
