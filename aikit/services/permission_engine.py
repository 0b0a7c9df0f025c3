"""Permission engine: persisted per-tool decisions with optional domain scope.

Lookup order for a tool invocation:
1. Domain decision (domain-aware tools with a URL in context only)
2. Global decision
3. Ask the user

A stored ``always_deny`` is a hard denial; the caller must not prompt.
"""

import logging
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from aikit.infra.config import config
from aikit.infra.storage import KeyValueStore
from aikit.models.permission import (
    PermissionCheck,
    PermissionDecision,
    StoredPermission,
    ToolContext,
)
from aikit.models.tool import ToolDescriptor

logger = logging.getLogger(__name__)

PERMISSION_KEY_PREFIX = "permission:"
GLOBAL_SCOPE_KEY = "global"
AUTO_APPROVE_KEY = "autoApprove"


def extract_domain(url: Optional[str]) -> Optional[str]:
    """Hostname of a URL, lower-cased; None when there is none."""
    if not url:
        return None
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    return hostname.lower() if hostname else None


def permission_key(tool_name: str, domain: Optional[str] = None) -> str:
    # Tool names may contain ':' so the scope is split off from the right
    return f"{PERMISSION_KEY_PREFIX}{tool_name}:{domain or GLOBAL_SCOPE_KEY}"


def parse_permission_key(key: str) -> Optional[StoredPermission]:
    """Inverse of permission_key; the decision is filled in by the caller."""
    if not key.startswith(PERMISSION_KEY_PREFIX):
        return None
    tool_name, sep, scope = key[len(PERMISSION_KEY_PREFIX):].rpartition(":")
    if not sep or not tool_name:
        return None
    return StoredPermission(
        tool_name=tool_name,
        domain=None if scope == GLOBAL_SCOPE_KEY else scope,
        decision=PermissionDecision.ALWAYS_ALLOW,
    )


class PermissionEngine:
    """Checks and stores tool permission decisions."""

    def __init__(
        self,
        store: KeyValueStore,
        domain_aware_prefixes: Optional[Iterable[str]] = None,
    ) -> None:
        self._store = store
        prefixes = domain_aware_prefixes if domain_aware_prefixes is not None else config.DOMAIN_AWARE_TOOL_PREFIXES
        self._domain_aware_prefixes = tuple(prefixes)

    def is_domain_aware_tool(self, tool_name: str, descriptor: Optional[ToolDescriptor] = None) -> bool:
        """Whether decisions for this tool are scoped per site.

        An explicit ``domain_aware`` flag on the descriptor wins; otherwise
        the tool name prefix decides.
        """
        if descriptor is not None and descriptor.domain_aware is not None:
            return descriptor.domain_aware
        return tool_name.startswith(self._domain_aware_prefixes)

    async def get_decision(self, tool_name: str, domain: Optional[str] = None) -> Optional[PermissionDecision]:
        value = await self._store.get(permission_key(tool_name, domain))
        if value is None:
            return None
        try:
            return PermissionDecision(value)
        except ValueError:
            logger.warning(f"Ignoring unknown stored decision {value!r} for {tool_name}")
            return None

    async def check_permission(
        self,
        tool_name: str,
        context: Optional[ToolContext] = None,
        descriptor: Optional[ToolDescriptor] = None,
    ) -> PermissionCheck:
        """
        Decide whether a tool invocation may run.

        Args:
            tool_name: Tool being invoked
            context: Page context (only meaningful for domain-aware tools)
            descriptor: Tool descriptor, consulted for the domain-aware flag

        Returns:
            PermissionCheck(allowed, requires_prompt)
        """
        decision = None
        if context is not None and self.is_domain_aware_tool(tool_name, descriptor):
            domain = extract_domain(context.url)
            if domain:
                decision = await self.get_decision(tool_name, domain)
        if decision is None:
            decision = await self.get_decision(tool_name)

        if decision == PermissionDecision.ALWAYS_DENY:
            return PermissionCheck(allowed=False, requires_prompt=False)
        if decision == PermissionDecision.ALWAYS_ALLOW:
            return PermissionCheck(allowed=True, requires_prompt=False)
        if await self.get_auto_approve():
            return PermissionCheck(allowed=True, requires_prompt=False)
        return PermissionCheck(allowed=False, requires_prompt=True)

    async def store_permission(
        self,
        tool_name: str,
        decision: PermissionDecision,
        domain: Optional[str] = None,
    ) -> None:
        await self._store.set(permission_key(tool_name, domain), decision.value)
        logger.info(
            f"Stored {decision.value} for {tool_name}",
            extra={"tool_name": tool_name, "domain": domain or GLOBAL_SCOPE_KEY},
        )

    async def revoke_permission(self, tool_name: str, domain: Optional[str] = None) -> bool:
        removed = await self._store.delete(permission_key(tool_name, domain))
        if removed:
            logger.info(f"Revoked permission for {tool_name}", extra={"domain": domain or GLOBAL_SCOPE_KEY})
        return removed

    async def get_granted_permissions(self) -> List[StoredPermission]:
        """Every stored decision (allow and deny), sorted by tool then scope."""
        keys = await self._store.keys(PERMISSION_KEY_PREFIX)
        values = await self._store.get_many(keys)
        permissions = []
        for key, value in values.items():
            parsed = parse_permission_key(key)
            if parsed is None:
                continue
            try:
                parsed.decision = PermissionDecision(value)
            except ValueError:
                continue
            permissions.append(parsed)
        permissions.sort(key=lambda p: (p.tool_name, p.domain or ""))
        return permissions

    async def set_auto_approve(self, enabled: bool) -> None:
        await self._store.set(AUTO_APPROVE_KEY, bool(enabled))
        logger.info(f"Auto-approve {'enabled' if enabled else 'disabled'}")

    async def get_auto_approve(self) -> bool:
        return bool(await self._store.get(AUTO_APPROVE_KEY, False))
