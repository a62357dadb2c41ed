"""Installation and authentication checks for the engine CLI."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from research_relay.config import EngineConfig
from research_relay.engine.orchestrator import is_auth_failure
from research_relay.engine.runner import CommandError, CommandRunner, command_exists, command_version
from research_relay.errors import HINTS, ErrorKind

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuthStatus:
    configured: bool
    method: str | None = None


@dataclass(slots=True)
class SetupReport:
    installed: bool
    version: str | None
    authenticated: bool
    auth_method: str | None = None
    errors: list[str] = field(default_factory=list)


class EngineDiagnostics:
    def __init__(self, runner: CommandRunner, config: EngineConfig | None = None) -> None:
        self.runner = runner
        self.config = config or EngineConfig()

    def is_installed(self) -> bool:
        return command_exists(self.config.binary)

    async def version(self) -> str | None:
        return await command_version(self.runner, self.config.binary)

    async def check_auth(self, probe_timeout: float = 60.0) -> AuthStatus:
        """Detect how the engine is authenticated.

        Environment credentials are trusted as-is. Otherwise a minimal probe
        invocation is made; only a failure that looks like an auth problem is
        reported as unconfigured.
        """

        if os.environ.get("GEMINI_API_KEY"):
            return AuthStatus(configured=True, method="api_key")
        if os.environ.get("GOOGLE_APPLICATION_CREDENTIALS") or os.environ.get("VERTEX_AI_PROJECT"):
            return AuthStatus(configured=True, method="vertex_ai")

        probe = [
            *self.config.non_interactive_flags,
            self.config.prompt_flag,
            "test",
            self.config.output_format_flag,
            self.config.output_format,
        ]
        try:
            await self.runner.run(self.config.binary, probe, timeout=probe_timeout)
        except CommandError as exc:
            if is_auth_failure(exc):
                return AuthStatus(configured=False)
            logger.debug("Auth probe failed for a non-auth reason: %s", exc)
        return AuthStatus(configured=True, method="google_login")

    async def validate_setup(self) -> SetupReport:
        installed = self.is_installed()
        if not installed:
            return SetupReport(
                installed=False,
                version=None,
                authenticated=False,
                errors=[HINTS[ErrorKind.ENGINE_NOT_FOUND]],
            )
        version = await self.version()
        auth = await self.check_auth()
        errors = [] if auth.configured else [HINTS[ErrorKind.AUTH_MISSING]]
        return SetupReport(
            installed=True,
            version=version,
            authenticated=auth.configured,
            auth_method=auth.method,
            errors=errors,
        )
