from safety_alerts.core.settings import settings

__all__ = ["settings"]
