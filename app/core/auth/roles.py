import re
from enum import Enum
from typing import Union


class Role(str, Enum):
    AGENT = "Agent"
    TREASURY_OPS = "TreasuryOPS"
    TREASURY_OFFICER = "TreasuryOfficer"
    TRADE_DESK = "TradeDesk"
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"

    @classmethod
    def parse(cls, value: Union[str, "Role"]) -> "Role":
        """Map any spelling of a role ("Treasury OPS", "treasury_ops", ...) to its canonical member"""
        if isinstance(value, cls):
            return value
        key = _normalize(value)
        if key not in _ROLE_LOOKUP:
            raise ValueError(f"Unknown role: {value!r}")
        return _ROLE_LOOKUP[key]

    @property
    def is_admin(self) -> bool:
        return self in ADMIN_ROLES


ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})


def _normalize(value) -> str:
    return re.sub(r"[\s_\-]+", "", str(value)).lower()


_ROLE_LOOKUP = {_normalize(role.value): role for role in Role}
_ROLE_LOOKUP.update({
    "agentops": Role.AGENT,
    "administrator": Role.ADMIN,
})
