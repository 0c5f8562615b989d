"""
Clientele configuration.

Usage in settings.py:
    CLIENTELE = {
        "AUTO_CREATE_GUEST_IDENTITIES": True,
        "AUTO_REGISTER_GUEST_ACCOUNTS": False,
        "GROUP_LABELS": {"registered": "Registered", "vip": "VIP"},
        "GROUP_ALIASES": {"company": ["b2b", "wholesale"]},
        "FORBIDDEN_TAG_SIGNATURES": ["idiots"],
    }
"""

from dataclasses import dataclass, field
from typing import Any, Callable

from django.conf import settings

REGISTERED = "registered"
GUEST = "guest"
COMPANY = "company"
VIP = "vip"

DEFAULT_LABELS: dict[str, str] = {
    REGISTERED: "Registered",
    GUEST: "Guest",
    COMPANY: "Company",
    VIP: "VIP",
}

DEFAULT_ALIASES: dict[str, list[str]] = {
    REGISTERED: [
        "registered",
        "registrovaný",
        "registrovana",
        "registrována",
        "customer",
        "customer-final",
        "final customer",
        "zákazník",
    ],
    GUEST: [
        "guest",
        "neregistrovaný",
        "bez registrace",
        "návštěvník",
    ],
    COMPANY: [
        "company",
        "business",
        "b2b",
        "firma",
    ],
}


@dataclass
class ClienteleSettings:
    """Clientele configuration settings."""

    # Identity creation policy
    AUTO_CREATE_GUEST_IDENTITIES: bool = True
    AUTO_REGISTER_GUEST_ACCOUNTS: bool = False

    # Classification
    GROUP_LABELS: dict[str, str] = field(default_factory=dict)
    GROUP_ALIASES: dict[str, list[str]] = field(default_factory=dict)
    FORBIDDEN_TAG_SIGNATURES: list[str] = field(default_factory=list)

    # Where resolved identities are written back to the order source
    ORDER_LINK_BACKEND: str = ""

    # Locking
    LOCK_RETRY_ATTEMPTS: int = 3
    REBUILD_LOCK_TIMEOUT: int = 3600
    REBUILD_CHUNK_SIZE: int = 200


def get_clientele_settings() -> ClienteleSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "CLIENTELE", {})
    return ClienteleSettings(**user_settings)


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_clientele_settings(), name)


clientele_settings = _LazySettings()


# =============================================================================
# Classification config (explicitly owned, refreshable)
# =============================================================================


def sanitize_labels(labels: dict | None) -> dict[str, str]:
    """Fill missing or blank labels with defaults."""
    labels = labels if isinstance(labels, dict) else {}
    sanitized = {}
    for key, default in DEFAULT_LABELS.items():
        value = labels.get(key)
        value = "" if value is None else str(value).strip()
        sanitized[key] = value or default
    return sanitized


def sanitize_aliases(aliases: dict | None) -> dict[str, list[str]]:
    """Lower-case, trim and de-duplicate aliases per canonical group."""
    aliases = aliases if isinstance(aliases, dict) else {}
    result = {}
    for group in (REGISTERED, GUEST, COMPANY):
        entries = aliases.get(group, DEFAULT_ALIASES[group])
        if isinstance(entries, str) or not isinstance(entries, (list, tuple, set)):
            entries = [entries]

        normalized: list[str] = []
        for entry in entries:
            if entry is None:
                continue
            entry = str(entry).strip().lower()
            if entry and entry not in normalized:
                normalized.append(entry)

        result[group] = normalized or list(DEFAULT_ALIASES[group])
    return result


@dataclass(frozen=True)
class ClassificationValues:
    """Sanitized snapshot of the classification configuration."""

    auto_create_guests: bool
    auto_register_guests: bool
    labels: dict[str, str]
    aliases: dict[str, list[str]]
    forbidden_signatures: frozenset[str]


def load_from_settings() -> dict[str, Any]:
    """Default loader: read the CLIENTELE Django settings."""
    conf = get_clientele_settings()
    return {
        "auto_create_guests": conf.AUTO_CREATE_GUEST_IDENTITIES,
        "auto_register_guests": conf.AUTO_REGISTER_GUEST_ACCOUNTS,
        "labels": conf.GROUP_LABELS,
        "aliases": conf.GROUP_ALIASES,
        "forbidden_signatures": conf.FORBIDDEN_TAG_SIGNATURES,
    }


class ClassificationConfig:
    """
    Owned classification configuration.

    Values are loaded lazily from ``loader`` and cached until ``refresh()``
    is called, either directly or through the ``classification_changed``
    signal.

    Usage:
        config = ClassificationConfig()
        config.labels["company"]
        config.refresh()
    """

    def __init__(self, loader: Callable[[], dict[str, Any]] | None = None):
        self._loader = loader or load_from_settings
        self._values: ClassificationValues | None = None

        from clientele.signals import classification_changed

        classification_changed.connect(self._on_changed)

    def _on_changed(self, sender=None, **kwargs):
        self.refresh()

    def refresh(self) -> None:
        self._values = None

    @property
    def values(self) -> ClassificationValues:
        if self._values is None:
            raw = self._loader() or {}
            forbidden = raw.get("forbidden_signatures") or []
            self._values = ClassificationValues(
                auto_create_guests=bool(raw.get("auto_create_guests", True)),
                auto_register_guests=bool(raw.get("auto_register_guests", False)),
                labels=sanitize_labels(raw.get("labels")),
                aliases=sanitize_aliases(raw.get("aliases")),
                forbidden_signatures=frozenset(
                    str(s).strip().lower() for s in forbidden if s and str(s).strip()
                ),
            )
        return self._values

    @property
    def auto_create_guests(self) -> bool:
        return self.values.auto_create_guests

    @property
    def auto_register_guests(self) -> bool:
        return self.values.auto_register_guests

    @property
    def labels(self) -> dict[str, str]:
        return self.values.labels

    @property
    def aliases(self) -> dict[str, list[str]]:
        return self.values.aliases

    @property
    def forbidden_signatures(self) -> frozenset[str]:
        return self.values.forbidden_signatures
