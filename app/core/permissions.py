from enum import Enum
from typing import Iterable, List


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    AGENT = "agent"
    CLIENT = "client"

    @classmethod
    def list_all(cls) -> List[str]:
        return [role.value for role in cls]

    @classmethod
    def normalize(cls, values: Iterable[str]) -> List[str]:
        """Return unique role names that are valid members."""
        seen = set()
        normalized: list[str] = []
        for value in values:
            try:
                role = cls(value)
            except ValueError:
                continue
            if role.value not in seen:
                seen.add(role.value)
                normalized.append(role.value)
        return normalized


# Roles allowed to push an application to a carrier and read its submission history.
ENROLLMENT_SUBMITTER_ROLES = (Role.SUPER_ADMIN, Role.ADMIN, Role.AGENT)
