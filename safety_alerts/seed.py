"""
Seed demo alerts into the mock DB or Firestore.

Usage:
  - Dry run (default): python -m safety_alerts.seed
  - Apply to configured DB: python -m safety_alerts.seed --apply
  - Force mock DB even if FIREBASE configured: python -m safety_alerts.seed --apply --force-mock

Alerts are created through AlertService, so they get the same defaults,
TTL and validation as alerts created from the dashboard. No SMS is sent.
"""

import argparse
import logging
import os
from typing import Any, Dict, List

DEMO_CREATOR_UID = "seed-script"

DEMO_ALERTS: List[Dict[str, Any]] = [
    {
        "type": "type1",
        "title": "Robbery reported",
        "description": "Armed robbery near market",
        "latitude": 6.52,
        "longitude": 3.37,
        "location_name": "Ikeja",
        "location_state": "Lagos State",
        "location_country": "Nigeria",
        "ttl_minutes": 30,
    },
    {
        "type": "type2",
        "title": "Road flooded",
        "description": "Heavy flooding on the main road, avoid the area",
        "latitude": 9.06,
        "longitude": 7.49,
        "location_name": "Garki",
        "location_state": "Abuja",
        "location_country": "Nigeria",
        "ttl_minutes": 120,
    },
    {
        "type": "test",
        "title": "Test alert",
        "description": "Drill message for the notification pipeline",
        "latitude": 6.45,
        "longitude": 3.39,
        "location_name": "Lagos Island",
        "location_state": "Lagos State",
        "location_country": "Nigeria",
    },
]


def seed_alerts(db: Any, apply: bool = False) -> List[str]:
    """
    Create the demo alerts. Returns the new ids (empty on a dry run).
    """
    from safety_alerts.models.user import AuthFlags, Principal, Role, Session
    from safety_alerts.services.alert_service import AlertService

    session = Session(
        principal=Principal(uid=DEMO_CREATOR_UID, display_name="Seed script"),
        role=Role.ADMIN,
        flags=AuthFlags.for_role(Role.ADMIN),
    )
    service = AlertService(db=db, geocoder=None)

    created = []
    for data in DEMO_ALERTS:
        print(f"Preparing: alerts/{data['title']}")
        if not apply:
            continue
        alert_id = service.create_alert(data, session, notify=False)
        created.append(alert_id)
        print(f"Wrote: alerts/{alert_id}")
    return created


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--apply", action="store_true", help="Write demo alerts to the DB instead of dry-run")
    parser.add_argument("--force-mock", action="store_true", help="Force use of mock DB even if FIREBASE configured")
    args = parser.parse_args()

    if args.force_mock:
        os.environ["USE_MOCK_DB"] = "true"

    logging.basicConfig(level=logging.INFO)

    # settings are read at import time, after --force-mock has set the env
    from safety_alerts.config.firebase import get_db

    db = get_db()
    created = seed_alerts(db, apply=args.apply)
    if args.apply:
        print(f"Seed applied: {len(created)} alert(s)")
    else:
        print("Dry run complete. Use --apply to write to the DB.")


if __name__ == "__main__":
    main()
