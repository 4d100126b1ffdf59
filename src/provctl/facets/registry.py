"""Facet registry: every :class:`FacetId` mapped to its checker and applier."""

from __future__ import annotations

from collections.abc import Mapping

from . import actions, checks
from .models import FacetDefinition, FacetId

_DEFINITIONS: tuple[FacetDefinition, ...] = (
    FacetDefinition(FacetId.SSH, "SSH configuration", checks.check_ssh, actions.apply_ssh),
    FacetDefinition(FacetId.FIREWALL, "Firewall", checks.check_firewall, actions.apply_firewall),
    FacetDefinition(FacetId.FAIL2BAN, "Fail2ban", checks.check_fail2ban, actions.apply_fail2ban),
    FacetDefinition(
        FacetId.SYSTEM, "System optimization", checks.check_system, actions.apply_system
    ),
    FacetDefinition(
        FacetId.MONITORING, "Monitoring", checks.check_monitoring, actions.apply_monitoring
    ),
    FacetDefinition(
        FacetId.APPLICATIONS,
        "Applications",
        checks.check_applications,
        actions.apply_applications,
    ),
    FacetDefinition(FacetId.DNS, "DNS configuration", checks.check_dns, actions.apply_dns),
    FacetDefinition(FacetId.POSTGRES, "PostgreSQL", checks.check_postgres, actions.apply_postgres),
    FacetDefinition(FacetId.REDIS, "Redis", checks.check_redis, actions.apply_redis),
    FacetDefinition(FacetId.NODEJS, "Node.js (nvm)", checks.check_nodejs, actions.apply_nodejs),
    FacetDefinition(
        FacetId.PM2,
        "PM2",
        checks.check_pm2,
        actions.apply_pm2,
        requires=(FacetId.NODEJS,),
    ),
    FacetDefinition(FacetId.TLS, "Domain & TLS", checks.check_tls, actions.apply_tls),
)

FACETS: Mapping[FacetId, FacetDefinition] = {definition.id: definition for definition in _DEFINITIONS}

# Menu item 12 ("configure all"); TLS is not part of it.
CONFIGURE_ALL_ORDER: tuple[FacetId, ...] = (
    FacetId.SSH,
    FacetId.FIREWALL,
    FacetId.FAIL2BAN,
    FacetId.SYSTEM,
    FacetId.MONITORING,
    FacetId.APPLICATIONS,
    FacetId.DNS,
    FacetId.POSTGRES,
    FacetId.REDIS,
    FacetId.NODEJS,
    FacetId.PM2,
)


def facet_labels(registry: Mapping[FacetId, FacetDefinition] = FACETS) -> dict[FacetId, str]:
    """Return display labels keyed by facet."""
    return {facet: definition.label for facet, definition in registry.items()}


def parse_facets(values: list[str]) -> list[FacetId]:
    """Translate facet names (comma or space separated) into :class:`FacetId` members."""
    facets: list[FacetId] = []
    for value in values:
        for token in value.replace(",", " ").split():
            try:
                facet = FacetId(token.strip().lower())
            except ValueError as exc:
                valid = ", ".join(member.value for member in FacetId)
                raise ValueError(f"Unknown facet '{token}'. Choose from: {valid}.") from exc
            if facet not in facets:
                facets.append(facet)
    return facets


__all__ = ["CONFIGURE_ALL_ORDER", "FACETS", "facet_labels", "parse_facets"]
