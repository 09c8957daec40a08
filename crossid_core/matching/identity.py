"""
Identity Data Structures
=========================

Per-source identity attributes and the three-slot source set handed to
the engine by its collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Tuple

from crossid_core.errors import ValidationError

SLOTS: Tuple[str, str, str] = ("primary", "secondary", "tertiary")

# Accepted aliases when building an Identity from a loosely-shaped mapping.
_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "user_id": ("user_id", "userId"),
    "email": ("email",),
    "phone": ("phone",),
    "name": ("name",),
    "account_ref": ("account_ref", "accountRef", "accountNumber", "account_number"),
    "success": ("success",),
}


def _lookup(data: Dict[str, Any], field_name: str) -> Any:
    for alias in _FIELD_ALIASES[field_name]:
        if alias in data:
            return data[alias]
    return None


_TRUE_STRINGS = frozenset({"true", "1", "yes"})
_FALSE_STRINGS = frozenset({"false", "0", "no", ""})


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _parse_success(value: Any) -> bool:
    """A source that omits the flag is treated as verified."""
    if value is None:
        return True
    if isinstance(value, (bool, int)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValidationError("Unrecognized success flag", details={"value": value})
    raise ValidationError(
        "Unrecognized success flag",
        details={"type": type(value).__name__},
    )


@dataclass(frozen=True)
class Identity:
    """
    Identity attributes reported by one verification source.

    Attributes:
        user_id: Identifier assigned by the source
        email: Email address
        phone: Phone number in any format
        name: Display or legal name
        account_ref: Account or bank reference
        success: Whether the source verified the identity
    """
    user_id: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None
    account_ref: Optional[str] = None
    success: bool = True

    @property
    def available(self) -> bool:
        return bool(self.success)

    def matching_fields(self) -> Dict[str, Optional[str]]:
        """Fields used for cache canonicalization."""
        return {
            "user_id": self.user_id or None,
            "email": self.email,
            "phone": self.phone,
            "name": self.name,
            "account_ref": self.account_ref,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "phone": self.phone,
            "name": self.name,
            "account_ref": self.account_ref,
            "success": self.success,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        """
        Create from a mapping.

        Accepts snake_case or camelCase keys and ignores anything else.
        ``success`` may be a bool, an int, or a string such as "false".

        Raises:
            ValidationError: If ``success`` cannot be read as a boolean
        """
        return cls(
            user_id=_optional_str(_lookup(data, "user_id")) or "",
            email=_optional_str(_lookup(data, "email")),
            phone=_optional_str(_lookup(data, "phone")),
            name=_optional_str(_lookup(data, "name")),
            account_ref=_optional_str(_lookup(data, "account_ref")),
            success=_parse_success(_lookup(data, "success")),
        )


@dataclass(frozen=True)
class SourceSet:
    """
    The sources being reconciled.

    ``primary`` comes from the identity/document verifier and is mandatory.
    ``secondary`` comes from account linking, ``tertiary`` from the
    financial-account aggregator.
    """
    primary: Identity
    secondary: Optional[Identity] = None
    tertiary: Optional[Identity] = None

    def get(self, slot: str) -> Optional[Identity]:
        if slot not in SLOTS:
            raise KeyError(slot)
        return getattr(self, slot)

    def is_available(self, slot: str) -> bool:
        identity = self.get(slot)
        return identity is not None and identity.available

    def availability(self) -> Dict[str, bool]:
        """Availability of every slot, always all three."""
        return {slot: self.is_available(slot) for slot in SLOTS}

    def available(self) -> List[str]:
        """Names of available slots in fixed order."""
        return [slot for slot in SLOTS if self.is_available(slot)]

    def pairs(self) -> List[Tuple[str, str]]:
        """Unordered pairs of available slots."""
        names = self.available()
        return [
            (names[i], names[j])
            for i in range(len(names))
            for j in range(i + 1, len(names))
        ]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourceSet":
        """Create from ``{"primary": {...}, "secondary": {...}, ...}``."""
        if data.get("primary") is None:
            raise ValueError("primary source is required")
        slots = {}
        for slot in SLOTS:
            value = data.get(slot)
            if value is None or isinstance(value, Identity):
                slots[slot] = value
            else:
                slots[slot] = Identity.from_dict(value)
        return cls(**slots)
