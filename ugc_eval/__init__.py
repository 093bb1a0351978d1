"""
AI evaluation and settlement of creator video submissions.
"""

__version__ = "1.0.0"
