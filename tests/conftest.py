"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from rich.console import Console

from provctl.config import AppConfig, load_config
from provctl.errors import UserAbort
from provctl.facets.engine import Orchestrator, create_facet_context
from provctl.facets.models import FacetContext
from provctl.logging import StructuredLogger
from provctl.providers.command import CommandError

Handler = Callable[[list[str]], "subprocess.CompletedProcess[str] | tuple[int, str]"]


class FakeRunner:
    """Record commands and answer them from registered responses.

    Responses are matched by the longest registered argument prefix. Commands
    without a registered response succeed with empty output. ``which`` only
    finds binaries listed in :attr:`binaries`.
    """

    def __init__(self, binaries: Sequence[str] = ()) -> None:
        """Start with no responses and the given binaries on PATH."""
        self.binaries = set(binaries)
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []
        self._responses: dict[tuple[str, ...], list[Handler | tuple[int, str]]] = {}

    def on(self, prefix: Sequence[str], *responses: Handler | tuple[int, str] | str) -> None:
        """Register responses for commands starting with *prefix*.

        Each response is ``(returncode, stdout)``, plain stdout, or a callable
        receiving the command. Successive calls consume responses in order and
        the last one repeats.
        """
        normalised: list[Handler | tuple[int, str]] = []
        for response in responses or ((0, ""),):
            normalised.append((0, response) if isinstance(response, str) else response)
        self._responses[tuple(prefix)] = normalised

    def ran(self, *prefix: str) -> bool:
        """Return ``True`` when a recorded command starts with *prefix*."""
        return any(call[: len(prefix)] == list(prefix) for call in self.calls)

    def calls_for(self, *prefix: str) -> list[list[str]]:
        """Return recorded commands starting with *prefix*."""
        return [call for call in self.calls if call[: len(prefix)] == list(prefix)]

    def run(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        input: str | None = None,
        cwd: Path | None = None,
        env: object = None,
    ) -> subprocess.CompletedProcess[str]:
        """Record *args* and return the registered response."""
        command = [str(part) for part in args]
        self.calls.append(command)
        self.inputs.append(input)
        result = self._respond(command)
        if check and result.returncode != 0:
            message = (result.stderr or result.stdout or "no output").strip()
            raise CommandError(
                f"{' '.join(command)} failed (exit {result.returncode}): {message}",
                args=command,
                returncode=result.returncode,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        return result

    def succeeds(self, args: Sequence[str], *, cwd: Path | None = None) -> bool:
        """Return ``True`` when *args* exits zero."""
        return self.run(args, check=False, cwd=cwd).returncode == 0

    def output(self, args: Sequence[str], *, cwd: Path | None = None) -> str | None:
        """Return stripped stdout, or ``None`` on failure."""
        result = self.run(args, check=False, cwd=cwd)
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip()

    def shell(self, script: str, *, check: bool = True) -> subprocess.CompletedProcess[str]:
        """Record a ``bash -c`` invocation."""
        return self.run(["bash", "-c", script], check=check)

    def which(self, binary: str) -> str | None:
        """Return a fake path for known binaries."""
        return f"/usr/bin/{binary}" if binary in self.binaries else None

    # ------------------------------------------------------------------
    def _respond(self, command: list[str]) -> subprocess.CompletedProcess[str]:
        best: tuple[str, ...] | None = None
        for prefix in self._responses:
            if tuple(command[: len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return subprocess.CompletedProcess(command, 0, "", "")
        queue = self._responses[best]
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(response):
            response = response(command)
        if isinstance(response, subprocess.CompletedProcess):
            return response
        returncode, stdout = response
        stderr = stdout if returncode != 0 else ""
        return subprocess.CompletedProcess(command, returncode, stdout, stderr)


class ScriptedPrompter:
    """Answer prompts from queued responses; running out raises :class:`UserAbort`."""

    def __init__(self, answers: Sequence[str] = (), confirms: Sequence[bool] = ()) -> None:
        """Queue text *answers* and yes/no *confirms*."""
        self.answers = list(answers)
        self.confirms = list(confirms)
        self.asked: list[str] = []

    def ask(self, message: str, *, default: str | None = None) -> str:
        """Return the next queued answer."""
        self.asked.append(message)
        if not self.answers:
            raise UserAbort("Input closed.")
        return self.answers.pop(0)

    def confirm(self, message: str, *, default: bool | None = None) -> bool:
        """Return the next queued confirmation."""
        self.asked.append(message)
        if not self.confirms:
            raise UserAbort("Input closed.")
        return self.confirms.pop(0)


def private_key() -> rsa.RSAPrivateKey:
    """Return a fresh 2048-bit RSA key."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def issue_certificate(
    live_dir: Path,
    domain: str,
    *,
    valid_to: datetime | None = None,
    key: rsa.RSAPrivateKey | None = None,
    signing_key: rsa.RSAPrivateKey | None = None,
) -> Path:
    """Write a self-signed Let's Encrypt style fullchain/privkey pair for *domain*."""
    now = datetime.now(UTC)
    valid_to = valid_to or (now + timedelta(days=90))
    valid_from = valid_to - timedelta(days=90)
    key = key or private_key()
    signing_key = signing_key or key
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domain)])
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(signing_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(valid_from)
        .not_valid_after(valid_to)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .sign(signing_key, hashes.SHA256())
    )
    base = live_dir / domain
    base.mkdir(parents=True, exist_ok=True)
    (base / "fullchain.pem").write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    (base / "privkey.pem").write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return base


@pytest.fixture
def runner() -> FakeRunner:
    """Return a fake command runner with no binaries installed."""
    return FakeRunner()


@pytest.fixture
def prompter() -> ScriptedPrompter:
    """Return a prompter with no queued answers."""
    return ScriptedPrompter()


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    """Return a configuration re-rooted under ``tmp_path``."""
    return load_config(
        overrides={"root_dir": str(tmp_path), "require_root": False},
        env={},
    )


@pytest.fixture
def console() -> Console:
    """Return a console that records output instead of printing it."""
    return Console(record=True, width=120, force_terminal=False)


@pytest.fixture
def context(
    config: AppConfig,
    runner: FakeRunner,
    prompter: ScriptedPrompter,
    console: Console,
) -> FacetContext:
    """Return a facet context wired to the fake runner."""
    return create_facet_context(
        config,
        logger=StructuredLogger(config.log_file),
        prompter=prompter,
        console=console,
        runner=runner,  # type: ignore[arg-type]
        sleep=lambda seconds: None,
        public_ip=lambda: "203.0.113.10",
    )


@pytest.fixture
def orchestrator(context: FacetContext) -> Orchestrator:
    """Return an orchestrator over the fake context."""
    return Orchestrator(context)
