from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config.loader import load_core_config
from .config.models import CoreConfig
from .events.store import EventStore
from .tools.builtin import register_builtin_tools
from .tools.dispatcher import ToolDispatcher
from .tools.permissions import (
    ApprovalCallout,
    AutoApproval,
    ConsoleApproval,
    GrantScope,
    GrantStore,
    PermissionEngine,
    SessionGrants,
)
from .tools.registry import ToolRegistry


@dataclass
class AppContext:
    cwd: Path
    config: CoreConfig
    tools: ToolRegistry
    session_grants: SessionGrants
    grant_store: GrantStore
    permissions: PermissionEngine
    dispatcher: ToolDispatcher
    events: EventStore
    session_id: str
    auto_approve: bool = False

    @staticmethod
    def from_env(
        cwd: Path,
        session_id: str | None = None,
        auto_approve: bool = False,
        config_path: Optional[Path] = None,
        callout: ApprovalCallout | None = None,
        events_dir: Path | None = None,
    ) -> "AppContext":
        cwd = cwd.expanduser().resolve()
        config = load_core_config(cwd=cwd, explicit_path=config_path)

        tools = ToolRegistry()
        register_builtin_tools(tools)

        sid = session_id or uuid.uuid4().hex[:12]
        events = EventStore.open(sid, directory=events_dir)

        if callout is None:
            callout = AutoApproval(GrantScope.SESSION) if auto_approve else ConsoleApproval()

        session_grants = SessionGrants()
        grant_store = GrantStore(config.grants_path)
        permissions = PermissionEngine(
            repo_root=cwd,
            session=session_grants,
            store=grant_store,
            callout=callout,
            read_only_tools=tools.read_only_names(),
            read_only_patterns=config.read_only_tools,
            deny_patterns=config.deny_tools,
            deny_policy=config.deny_policy,
            events=events,
        )
        dispatcher = ToolDispatcher(
            tools,
            permissions,
            cwd=str(cwd),
            session_id=sid,
            default_timeout_s=config.default_timeout_s,
            progress_interval_s=config.progress_interval_s,
            events=events,
        )

        return AppContext(
            cwd=cwd,
            config=config,
            tools=tools,
            session_grants=session_grants,
            grant_store=grant_store,
            permissions=permissions,
            dispatcher=dispatcher,
            events=events,
            session_id=sid,
            auto_approve=auto_approve,
        )
