"""
Community Safety Alerts - backend for the safety-alert dashboard.
"""

__version__ = "0.1.0"
