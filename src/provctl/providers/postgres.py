"""PostgreSQL cluster lifecycle via the Debian ``pg_*cluster`` tools."""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from packaging.version import InvalidVersion, Version

from .command import CommandError, CommandRunner

_PSQL_VERSION_RE = re.compile(r"(\d+(?:\.\d+)?)")


class PostgresError(RuntimeError):
    """Raised when cluster management commands fail."""


@dataclass(slots=True, frozen=True)
class PgCluster:
    """One row of ``pg_lsclusters`` output."""

    version: str
    name: str
    port: int
    status: str
    owner: str
    data_dir: Path
    log_file: Path | None

    @property
    def online(self) -> bool:
        """Return ``True`` when the cluster reports ``online``."""
        return self.status.startswith("online")


@dataclass(slots=True)
class PostgresProvider:
    """Inspect and (re)create PostgreSQL clusters."""

    runner: CommandRunner
    lib_root: Path = Path("/usr/lib/postgresql")
    psql_bin: str = "psql"

    def installed(self) -> bool:
        """Return ``True`` when the psql client is available."""
        return self.runner.which(self.psql_bin) is not None

    def client_version(self) -> str | None:
        """Return the version reported by ``psql --version``."""
        output = self.runner.output([self.psql_bin, "--version"])
        if not output:
            return None
        match = _PSQL_VERSION_RE.search(output)
        return match.group(1) if match else None

    def server_major_version(self) -> str | None:
        """Return the newest installed server major version."""
        if not self.lib_root.is_dir():
            return None
        candidates: list[tuple[Version, str]] = []
        for entry in self.lib_root.iterdir():
            if not entry.is_dir():
                continue
            try:
                candidates.append((Version(entry.name), entry.name))
            except InvalidVersion:
                continue
        if not candidates:
            return None
        return max(candidates)[1]

    def clusters(self) -> list[PgCluster]:
        """Return the clusters reported by ``pg_lsclusters``."""
        output = self.runner.output(["pg_lsclusters", "--no-header"])
        if not output:
            return []
        return parse_lsclusters(output)

    def cluster(self, version: str, name: str) -> PgCluster | None:
        """Return the cluster *version*/*name*, if present."""
        for cluster in self.clusters():
            if cluster.version == version and cluster.name == name:
                return cluster
        return None

    def is_online(self, version: str, name: str) -> bool:
        """Return ``True`` when the cluster is online."""
        cluster = self.cluster(version, name)
        return cluster is not None and cluster.online

    def drop_cluster(self, version: str, name: str) -> None:
        """Stop and drop the cluster."""
        self._run(["pg_dropcluster", "--stop", version, name])

    def create_cluster(self, version: str, name: str, port: int) -> None:
        """Create a cluster that starts with the postgresql service."""
        self._run(
            ["pg_createcluster", version, name, "--port", str(port), "--start-conf=auto"]
        )

    # ------------------------------------------------------------------
    def _run(self, args: list[str]) -> None:
        try:
            self.runner.run(args)
        except CommandError as exc:
            raise PostgresError(str(exc)) from exc


def parse_lsclusters(output: str) -> list[PgCluster]:
    """Parse ``pg_lsclusters --no-header`` output."""
    clusters: list[PgCluster] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 6 or not parts[2].isdigit():
            continue
        log_file = Path(parts[6]) if len(parts) > 6 else None
        clusters.append(
            PgCluster(
                version=parts[0],
                name=parts[1],
                port=int(parts[2]),
                status=parts[3],
                owner=parts[4],
                data_dir=Path(parts[5]),
                log_file=log_file,
            )
        )
    return clusters


__all__ = ["PgCluster", "PostgresError", "PostgresProvider", "parse_lsclusters"]
