"""Check/apply harness for facets."""

from __future__ import annotations

import time
import traceback
from collections.abc import Callable, Iterable, Mapping, Sequence

from rich.console import Console

from ..backups import BackupError, BackupManager
from ..config import AppConfig
from ..credentials import CredentialStore
from ..errors import ApplyFailure, PreconditionError, ProvisioningError, UserAbort, ValidationError
from ..logging import StructuredLogger
from ..network import lookup_public_ip
from ..node_runtime import NodeRuntimeError, NodeRuntimeManager
from ..prompts import Prompter
from ..providers import (
    AptProvider,
    CertbotError,
    CertbotProvider,
    CommandError,
    CommandRunner,
    Fail2banProvider,
    FirewallError,
    GitError,
    GitProvider,
    NginxError,
    NginxProvider,
    NpmError,
    NpmProvider,
    PackageError,
    PM2Provider,
    PostgresError,
    PostgresProvider,
    ProcessManagerError,
    RedisProvider,
    SystemdError,
    SystemdProvider,
    UfwProvider,
)
from ..templates import TemplateEngine, TemplateError
from ..tls import TLSConfigurationError, TLSInspector, TLSValidator
from .models import (
    ApplyOutcome,
    ApplyResult,
    CheckResult,
    FacetContext,
    FacetDefinition,
    FacetId,
    FacetStatus,
)
from .registry import FACETS

# Collaborator failures reported as ``failed`` rather than crashing the run.
COLLABORATOR_ERRORS: tuple[type[BaseException], ...] = (
    CommandError,
    SystemdError,
    PackageError,
    FirewallError,
    NginxError,
    CertbotError,
    PostgresError,
    ProcessManagerError,
    NpmError,
    GitError,
    NodeRuntimeError,
    TemplateError,
    BackupError,
    TLSConfigurationError,
    OSError,
)

_OUTCOME_BY_ERROR: tuple[tuple[type[ProvisioningError], ApplyOutcome], ...] = (
    (ValidationError, ApplyOutcome.INVALID),
    (PreconditionError, ApplyOutcome.PRECONDITION_FAILED),
    (UserAbort, ApplyOutcome.ABORTED),
    (ApplyFailure, ApplyOutcome.FAILED),
)


def create_facet_context(
    config: AppConfig,
    *,
    logger: StructuredLogger,
    prompter: Prompter,
    console: Console,
    runner: CommandRunner | None = None,
    backups: BackupManager | None = None,
    is_root: bool = True,
    sleep: Callable[[float], None] = time.sleep,
    public_ip: Callable[[], str | None] = lookup_public_ip,
) -> FacetContext:
    """Build a :class:`FacetContext` wiring every provider to one runner."""
    runner = runner or CommandRunner()
    templates = TemplateEngine.with_overrides(config.templates_dir)
    return FacetContext(
        config=config,
        runner=runner,
        logger=logger,
        templates=templates,
        backups=backups or BackupManager(),
        credentials=CredentialStore(config.credentials_dir),
        prompter=prompter,
        console=console,
        systemd=SystemdProvider(runner),
        apt=AptProvider(runner),
        ufw=UfwProvider(runner),
        fail2ban=Fail2banProvider(runner),
        nginx=NginxProvider(
            templates,
            runner,
            sites_available=config.nginx.sites_available,
            sites_enabled=config.nginx.sites_enabled,
        ),
        certbot=CertbotProvider(runner),
        postgres=PostgresProvider(runner, lib_root=config.postgres.lib_root),
        redis=RedisProvider(runner),
        pm2=PM2Provider(runner),
        git=GitProvider(runner),
        npm=NpmProvider(runner),
        node=NodeRuntimeManager(
            runner=runner,
            nvm_dir=config.node.nvm_dir,
            bin_dir=config.node.bin_dir,
            bashrc=config.node.bashrc,
            install_url=config.node.install_url,
        ),
        tls_inspector=TLSInspector(config.tls),
        tls_validator=TLSValidator(config.tls),
        is_root=is_root,
        sleep=sleep,
        public_ip=public_ip,
    )


class Orchestrator:
    """Run facet checks and applies against one :class:`FacetContext`."""

    def __init__(
        self,
        context: FacetContext,
        registry: Mapping[FacetId, FacetDefinition] = FACETS,
    ) -> None:
        """Store the context and facet registry."""
        self._context = context
        self._registry = registry

    @property
    def context(self) -> FacetContext:
        """Return the facet context."""
        return self._context

    @property
    def registry(self) -> Mapping[FacetId, FacetDefinition]:
        """Return the facet registry."""
        return self._registry

    def check(self, facet: FacetId) -> CheckResult:
        """Check *facet*; unexpected exceptions become an ``error`` result."""
        definition = self._registry[facet]
        try:
            return definition.check(self._context)
        except Exception as exc:  # noqa: BLE001
            return CheckResult(
                facet=facet,
                status=FacetStatus.ERROR,
                detail=f"Check failed: {exc}",
                diagnostics=tuple(traceback.format_exception_only(type(exc), exc)),
            )

    def check_all(self, facets: Iterable[FacetId] | None = None) -> list[CheckResult]:
        """Check *facets* (all registered facets by default) in order."""
        selected = list(facets) if facets is not None else list(self._registry)
        return [self.check(facet) for facet in selected]

    def apply(self, facet: FacetId, *, blocked: Iterable[FacetId] = ()) -> ApplyResult:
        """Apply *facet* and confirm its postcondition.

        Dependencies listed on the facet definition must check ``configured``
        and must not appear in *blocked*; otherwise the facet is skipped and no
        collaborator is invoked.
        """
        definition = self._registry[facet]
        blocked_set = set(blocked)
        logger = self._context.logger

        with logger.operation(f"apply {facet.value}", target={"facet": facet.value}) as op:
            for dependency in definition.requires:
                reason = None
                if dependency in blocked_set:
                    reason = f"Requires {dependency.value}, which did not complete in this run."
                else:
                    dependency_check = self.check(dependency)
                    if dependency_check.status is not FacetStatus.CONFIGURED:
                        reason = (
                            f"Requires {dependency.value} "
                            f"(currently {dependency_check.status.value})."
                        )
                if reason is not None:
                    op.warning(reason, warnings=[reason])
                    return ApplyResult(facet=facet, outcome=ApplyOutcome.SKIPPED, message=reason)

            backups_before = len(self._context.backups.created)
            try:
                report = definition.apply(self._context)
            except ProvisioningError as exc:
                outcome = next(
                    (mapped for error_type, mapped in _OUTCOME_BY_ERROR if isinstance(exc, error_type)),
                    ApplyOutcome.FAILED,
                )
                op.error(exc.message, errors=[exc.message, *exc.diagnostics], rc=1)
                return ApplyResult(
                    facet=facet,
                    outcome=outcome,
                    message=exc.message,
                    diagnostics=exc.diagnostics,
                    error=exc.category,
                )
            except COLLABORATOR_ERRORS as exc:
                diagnostics = _command_diagnostics(exc)
                op.error(str(exc), errors=[str(exc), *diagnostics], rc=1)
                return ApplyResult(
                    facet=facet,
                    outcome=ApplyOutcome.FAILED,
                    message=str(exc),
                    diagnostics=diagnostics,
                    error=type(exc).__name__,
                )

            op.add_step("apply", detail={"changed": report.changed, "summary": report.summary})
            check = self.check(facet)
            op.add_step("postcondition", status=check.status.value, detail=check.detail)
            if check.status not in report.satisfied_by:
                message = f"Postcondition not met: {facet.value} is {check.status.value} ({check.detail})."
                op.error(message, rc=1)
                return ApplyResult(
                    facet=facet,
                    outcome=ApplyOutcome.FAILED,
                    message=message,
                    check=check,
                    diagnostics=tuple(check.diagnostics),
                    notes=tuple(report.notes),
                    error="postcondition",
                )

            new_backups = self._context.backups.created[backups_before:]
            op.success(
                report.summary,
                changed=int(report.changed),
                backups=new_backups,
                context={"status": check.status.value},
            )
            return ApplyResult(
                facet=facet,
                outcome=ApplyOutcome.APPLIED if report.changed else ApplyOutcome.UNCHANGED,
                message=report.summary,
                check=check,
                notes=tuple(report.notes),
            )

    def apply_many(
        self,
        facets: Sequence[FacetId],
        *,
        on_result: Callable[[ApplyResult], None] | None = None,
    ) -> list[ApplyResult]:
        """Apply *facets* in order; failures block facets that depend on them."""
        blocked: set[FacetId] = set()
        results: list[ApplyResult] = []
        for facet in facets:
            result = self.apply(facet, blocked=blocked)
            if not result.succeeded:
                blocked.add(facet)
            results.append(result)
            if on_result is not None:
                on_result(result)
        return results


def _command_diagnostics(exc: BaseException) -> tuple[str, ...]:
    if isinstance(exc, CommandError):
        output = exc.stderr or exc.stdout
        return tuple(output.strip().splitlines()[-20:]) if output else ()
    cause = exc.__cause__
    if isinstance(cause, CommandError):
        return _command_diagnostics(cause)
    return ()


__all__ = ["COLLABORATOR_ERRORS", "Orchestrator", "create_facet_context"]
