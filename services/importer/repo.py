"""Clinic repository - record store access for the import pipeline.

Clinics are documents keyed by slug. Writes are last-write-wins per slug.
"""

import copy
import json
from typing import Dict, List, Optional, Protocol, Tuple, runtime_checkable

from db.client import queries, get_conn, get_transaction
from db.queries.batch import BATCH_UPDATE_CLINIC_DOCS


WRITE_BATCH_SIZE = 500
CASE_FOLDED_FIELDS = ("name", "address", "city")


@runtime_checkable
class IClinicRepo(Protocol):
    """Protocol for clinic store operations."""

    async def get_clinic(self, slug: str) -> Optional[dict]:
        """Get a clinic document by slug, None if absent."""
        ...

    async def slug_exists(self, slug: str) -> bool:
        """Check whether a slug is taken."""
        ...

    async def put_clinic(self, slug: str, doc: dict) -> None:
        """Write a full clinic document."""
        ...

    async def update_clinic(self, slug: str, fields: dict) -> bool:
        """Merge fields into a clinic document. Returns False if the slug is absent."""
        ...

    async def batch_update_clinics(
        self,
        updates: List[Tuple[str, dict]],
        batch_size: int = WRITE_BATCH_SIZE,
    ) -> int:
        """Merge many (slug, fields) pairs, committing batch_size at a time."""
        ...

    async def find_by_address(self, address: str, city: str, state: str) -> List[dict]:
        ...

    async def find_by_name_city(self, name: str, city: str) -> List[dict]:
        ...

    async def find_by_name(self, name: str) -> List[dict]:
        ...

    async def find_by_phone(self, phone: str) -> List[dict]:
        ...

    async def find_by_name_prefix(self, prefix: str, limit: int = 50) -> List[dict]:
        """Case-insensitive name prefix scan."""
        ...

    async def insert_import_log(self, log: dict) -> str:
        """Append an import run log. Returns its id."""
        ...


def _row_doc(row) -> dict:
    doc = row["doc"]
    if isinstance(doc, str):
        doc = json.loads(doc)
    doc.setdefault("slug", row["slug"])
    return doc


class ClinicRepo(IClinicRepo):
    """Postgres implementation (clinics table, JSONB documents)."""

    async def get_clinic(self, slug: str) -> Optional[dict]:
        async with get_conn() as conn:
            row = await queries.get_clinic_by_slug(conn, slug=slug)
            return _row_doc(row) if row else None

    async def slug_exists(self, slug: str) -> bool:
        async with get_conn() as conn:
            return bool(await queries.clinic_exists(conn, slug=slug))

    async def put_clinic(self, slug: str, doc: dict) -> None:
        async with get_conn() as conn:
            await queries.upsert_clinic(
                conn,
                slug=slug,
                name=doc.get("name") or "",
                address=doc.get("address") or "",
                city=doc.get("city") or "",
                state=doc.get("state") or "",
                phone=doc.get("phone") or "",
                doc=json.dumps(doc, default=str),
            )

    async def update_clinic(self, slug: str, fields: dict) -> bool:
        if not await self.slug_exists(slug):
            return False
        async with get_conn() as conn:
            await queries.update_clinic_doc(conn, slug=slug, fields=json.dumps(fields, default=str))
        return True

    async def batch_update_clinics(
        self,
        updates: List[Tuple[str, dict]],
        batch_size: int = WRITE_BATCH_SIZE,
    ) -> int:
        if not updates:
            return 0

        written = 0
        for i in range(0, len(updates), batch_size):
            chunk = updates[i:i + batch_size]
            async with get_transaction() as conn:
                await conn.executemany(
                    BATCH_UPDATE_CLINIC_DOCS,
                    [(slug, json.dumps(fields, default=str)) for slug, fields in chunk],
                )
            written += len(chunk)
        return written

    async def find_by_address(self, address: str, city: str, state: str) -> List[dict]:
        async with get_conn() as conn:
            rows = await queries.find_clinics_by_address(conn, address=address, city=city, state=state)
            return [_row_doc(r) for r in rows]

    async def find_by_name_city(self, name: str, city: str) -> List[dict]:
        async with get_conn() as conn:
            rows = await queries.find_clinics_by_name_city(conn, name=name, city=city)
            return [_row_doc(r) for r in rows]

    async def find_by_name(self, name: str) -> List[dict]:
        async with get_conn() as conn:
            rows = await queries.find_clinics_by_name(conn, name=name)
            return [_row_doc(r) for r in rows]

    async def find_by_phone(self, phone: str) -> List[dict]:
        async with get_conn() as conn:
            rows = await queries.find_clinics_by_phone(conn, phone=phone)
            return [_row_doc(r) for r in rows]

    async def find_by_name_prefix(self, prefix: str, limit: int = 50) -> List[dict]:
        async with get_conn() as conn:
            rows = await queries.find_clinics_by_name_prefix(conn, prefix=prefix, limit=limit)
            return [_row_doc(r) for r in rows]

    async def insert_import_log(self, log: dict) -> str:
        async with get_conn() as conn:
            log_id = await queries.insert_import_log(conn, log=json.dumps(log, default=str))
            return str(log_id)


class InMemoryClinicRepo(IClinicRepo):
    """Dict-backed repository for tests and dry runs."""

    def __init__(self, clinics: Optional[Dict[str, dict]] = None):
        self.clinics: Dict[str, dict] = {}
        self.import_logs: List[dict] = []
        for slug, doc in (clinics or {}).items():
            self.clinics[slug] = {**copy.deepcopy(doc), "slug": slug}

    def _match(self, **fields) -> List[dict]:
        # Text fields compare case-insensitively, like the LOWER(...) queries
        def same(key, stored, wanted):
            if key in CASE_FOLDED_FIELDS:
                return (stored or "").casefold() == (wanted or "").casefold()
            return stored == wanted

        return [
            copy.deepcopy(doc)
            for doc in self.clinics.values()
            if all(same(key, doc.get(key), value) for key, value in fields.items())
        ]

    async def get_clinic(self, slug: str) -> Optional[dict]:
        doc = self.clinics.get(slug)
        return copy.deepcopy(doc) if doc is not None else None

    async def slug_exists(self, slug: str) -> bool:
        return slug in self.clinics

    async def put_clinic(self, slug: str, doc: dict) -> None:
        self.clinics[slug] = {**copy.deepcopy(doc), "slug": slug}

    async def update_clinic(self, slug: str, fields: dict) -> bool:
        if slug not in self.clinics:
            return False
        self.clinics[slug].update(copy.deepcopy(fields))
        return True

    async def batch_update_clinics(
        self,
        updates: List[Tuple[str, dict]],
        batch_size: int = WRITE_BATCH_SIZE,
    ) -> int:
        written = 0
        for slug, fields in updates:
            if await self.update_clinic(slug, fields):
                written += 1
        return written

    async def find_by_address(self, address: str, city: str, state: str) -> List[dict]:
        return self._match(address=address, city=city, state=state)

    async def find_by_name_city(self, name: str, city: str) -> List[dict]:
        return self._match(name=name, city=city)

    async def find_by_name(self, name: str) -> List[dict]:
        return self._match(name=name)

    async def find_by_phone(self, phone: str) -> List[dict]:
        return self._match(phone=phone)

    async def find_by_name_prefix(self, prefix: str, limit: int = 50) -> List[dict]:
        lower = prefix.lower()
        matches = [
            copy.deepcopy(doc)
            for doc in sorted(self.clinics.values(), key=lambda d: d.get("name") or "")
            if (doc.get("name") or "").lower().startswith(lower)
        ]
        return matches[:limit]

    async def insert_import_log(self, log: dict) -> str:
        self.import_logs.append(copy.deepcopy(log))
        return str(len(self.import_logs))
