"""
HTTP routes. Each module exposes an APIRouter included by safety_alerts.main.
"""
