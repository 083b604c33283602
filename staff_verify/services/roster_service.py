"""
Roster Service - imports store locations and staff rosters from CSV
"""
import csv
import io
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from staff_verify.db.models import RosterEntry, Store
from staff_verify.exceptions import InvalidSubmissionError
from staff_verify.services.score_engine import normalize_name

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["storeId", "storeName", "lat", "lng", "rosterEmail", "rosterName"]


def _to_float(value: Optional[str]) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class RosterService:
    """Service for store roster maintenance"""

    def import_csv(self, db: Session, text: str) -> Dict[str, int]:
        """
        Upsert stores and roster entries from a CSV export.

        Required columns: storeId, storeName, lat, lng, rosterEmail,
        rosterName. Optional: address. The first row of each store supplies
        its name, coordinates and address. Rows without an email are skipped.

        Returns:
            {"stores": n, "staff": n}
        """
        reader = csv.DictReader(io.StringIO(text.replace("\r\n", "\n").replace("\r", "\n")))
        headers = [h.strip() for h in (reader.fieldnames or [])]
        missing = [c for c in REQUIRED_COLUMNS if c not in headers]
        if missing:
            raise InvalidSubmissionError(f"Missing required columns: {', '.join(missing)}")

        by_store: Dict[str, List[Dict[str, str]]] = {}
        for raw in reader:
            row = {k.strip(): (v or "").strip() for k, v in raw.items() if k is not None}
            store_id = row.get("storeId", "")
            if not store_id:
                continue
            by_store.setdefault(store_id, []).append(row)

        store_count = 0
        staff_count = 0
        try:
            for store_id, rows in by_store.items():
                first = rows[0]
                store = db.get(Store, store_id) or Store(id=store_id)
                store.name = first.get("storeName", "")
                store.latitude = _to_float(first.get("lat"))
                store.longitude = _to_float(first.get("lng"))
                store.address = first.get("address") or None
                db.add(store)
                store_count += 1

                entries: Dict[str, RosterEntry] = {}
                for row in rows:
                    email = row.get("rosterEmail", "").lower()
                    if not email:
                        continue
                    name = row.get("rosterName", "")
                    entry = (
                        entries.get(email)
                        or db.get(RosterEntry, (store_id, email))
                        or RosterEntry(store_id=store_id, email=email)
                    )
                    entries[email] = entry
                    entry.email_lower = email
                    entry.name = name
                    entry.normalized_name = normalize_name(name)
                    entry.store_name = store.name
                    db.add(entry)
                staff_count += len(entries)

            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Roster import complete: {store_count} stores, {staff_count} staff")
        return {"stores": store_count, "staff": staff_count}


# Singleton instance
roster_service = RosterService()
