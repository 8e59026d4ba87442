"""
Services package for Community Safety Alerts.
Contains business logic and data access layers.
"""
