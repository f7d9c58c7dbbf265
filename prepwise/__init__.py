"""
PrepWise - simulated spoken interviews with scored feedback reports.
"""

__version__ = "1.0.0"
