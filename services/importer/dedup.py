"""
Duplicate/branch resolver.

Decision order, first match wins:
1. same address + city + state       -> duplicate
2. same name + city                   -> duplicate
3. same name, different city          -> duplicate AND branch (another location)
4. same phone, different address      -> warning only, verdict unchanged
5. nothing                            -> new

Name, address and city compare case-insensitively.
"""

from loguru import logger

from services.importer.models import DuplicateVerdict, NormalizedClinic
from services.importer.repo import IClinicRepo


NEW = DuplicateVerdict(is_duplicate=False, is_branch=False)


def _folded(value) -> str:
    return (value or "").casefold()


class DuplicateResolver:
    """Classifies an incoming clinic against what the store already holds."""

    def __init__(self, repo: IClinicRepo):
        self._repo = repo

    async def resolve(self, clinic: NormalizedClinic) -> DuplicateVerdict:
        if clinic.address and clinic.city and clinic.state:
            matches = await self._repo.find_by_address(clinic.address, clinic.city, clinic.state)
            if matches:
                return DuplicateVerdict(
                    is_duplicate=True,
                    is_branch=False,
                    matched_slug=matches[0].get("slug"),
                    reason="address match",
                )

        if clinic.name and clinic.city:
            matches = await self._repo.find_by_name_city(clinic.name, clinic.city)
            if matches:
                return DuplicateVerdict(
                    is_duplicate=True,
                    is_branch=False,
                    matched_slug=matches[0].get("slug"),
                    reason="name and city match",
                )

        if clinic.name:
            matches = await self._repo.find_by_name(clinic.name)
            other_city = [m for m in matches if _folded(m.get("city")) != _folded(clinic.city)]
            if other_city:
                return DuplicateVerdict(
                    is_duplicate=True,
                    is_branch=True,
                    matched_slug=other_city[0].get("slug"),
                    reason="name match in another city",
                )

        if clinic.has_valid_phone:
            for match in await self._repo.find_by_phone(clinic.phone):
                if _folded(match.get("address")) != _folded(clinic.address):
                    logger.warning(
                        f"Phone {clinic.phone} for '{clinic.name}' also used by "
                        f"{match.get('slug')} at a different address"
                    )
                    break

        return NEW
