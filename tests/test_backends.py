"""Tests for tunnel backends and backend selection."""

import socket
import stat
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tunnelkeeper.backends import (
    AsyncSSHBackend,
    OpenSSHBackend,
    TunnelBackend,
    backends_from_config,
    select_backends,
)
from tunnelkeeper.backends import openssh as openssh_module
from tunnelkeeper.backends.asyncssh_backend import PROXY_MODULE
from tunnelkeeper.backends.asyncssh_proxy import (
    EXIT_FAILURE,
    ProxyOptions,
    app as proxy_app,
    run_proxy,
)
from tunnelkeeper.core.config import ImplementationPreference, TunnelConfig
from tunnelkeeper.core.exceptions import BinaryExtractionError
from tunnelkeeper.tunnel.profile import ServerProfile

runner = CliRunner()


def _executable(path: Path) -> Path:
    path.write_text("#!/bin/sh\nexit 0\n")
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


# ─── OpenSSH ───────────────────────────────────────────────────────────


class TestOpenSSHBackend:
    def test_configured_binary(self, tmp_path: Path):
        ssh = _executable(tmp_path / "ssh")
        assert OpenSSHBackend(ssh).resolve_binary() == ssh

    def test_missing_configured_binary(self, tmp_path: Path):
        with pytest.raises(BinaryExtractionError, match="missing"):
            OpenSSHBackend(tmp_path / "nope").resolve_binary()

    def test_not_executable(self, tmp_path: Path):
        ssh = tmp_path / "ssh"
        ssh.write_text("")
        ssh.chmod(0o600)
        with pytest.raises(BinaryExtractionError, match="not executable"):
            OpenSSHBackend(ssh).resolve_binary()

    def test_not_on_path(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(openssh_module.shutil, "which", lambda name: None)
        backend = OpenSSHBackend()
        with pytest.raises(BinaryExtractionError, match="PATH"):
            backend.resolve_binary()
        assert not backend.is_available()

    def test_build_command(self, profile: ServerProfile):
        argv = OpenSSHBackend().build_command(
            Path("/x/ssh"), profile, Path("/k/key1"), 9999
        )
        assert argv[:3] == ["/x/ssh", "-D", "9999"]
        assert argv[-1] == "alice@example.com"


# ─── asyncssh ──────────────────────────────────────────────────────────


class TestAsyncSSHBackend:
    def test_resolves_current_interpreter(self):
        assert AsyncSSHBackend().resolve_binary() == Path(sys.executable)

    def test_missing_interpreter(self, tmp_path: Path):
        with pytest.raises(BinaryExtractionError):
            AsyncSSHBackend(tmp_path / "python").resolve_binary()

    def test_build_command_runs_proxy_module(self, profile: ServerProfile):
        argv = AsyncSSHBackend().build_command(
            Path("/usr/bin/python3"),
            profile,
            Path("/k/key1"),
            9999,
            strict_host_key_checking=False,
        )
        assert argv[:5] == ["/usr/bin/python3", "-m", PROXY_MODULE, "-D", "9999"]
        assert "StrictHostKeyChecking=no" in argv
        assert argv[-1] == "alice@example.com"


class TestProxyOptions:
    def test_from_args(self):
        opts = ProxyOptions.from_args(
            1080,
            "alice@example.com",
            2222,
            Path("/k/key1"),
            ["ServerAliveInterval=15", "ConnectTimeout=5", "StrictHostKeyChecking=no", "Foo=bar"],
        )
        assert opts.username == "alice"
        assert opts.hostname == "example.com"
        assert opts.keepalive_interval == 15.0
        assert opts.connect_timeout == 5.0
        assert opts.strict_host_key_checking is False

    @pytest.mark.parametrize("destination", ["example.com", "@example.com", "alice@"])
    def test_bad_destination(self, destination: str):
        with pytest.raises(ValueError):
            ProxyOptions.from_args(1080, destination, 22, Path("/k"), [])

    def test_cli_bad_destination_exits_like_ssh(self):
        result = runner.invoke(proxy_app, ["-D", "1080", "-i", "/k/key1", "-N", "-T", "nohost"])
        assert result.exit_code == EXIT_FAILURE

    @pytest.mark.asyncio
    async def test_connect_failure_returns_failure_status(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ):
        with socket.socket() as s:
            s.bind(("127.0.0.1", 0))
            closed_port = s.getsockname()[1]
        key = tmp_path / "key"
        key.write_text("not a key\n")

        status = await run_proxy(
            ProxyOptions(
                local_port=1080,
                hostname="127.0.0.1",
                username="alice",
                port=closed_port,
                key_path=key,
                connect_timeout=2.0,
            )
        )

        assert status == EXIT_FAILURE
        assert "Connecting to 127.0.0.1" in capsys.readouterr().err


# ─── Selection ─────────────────────────────────────────────────────────


class _Stub(TunnelBackend):
    def __init__(self, name: str, available: bool = True) -> None:
        self._name = name
        self._available = available

    @property
    def name(self) -> str:
        return self._name

    def resolve_binary(self) -> Path:
        if not self._available:
            raise BinaryExtractionError("missing")
        return Path("/bin/true")

    def build_command(self, binary, profile, key_path, local_port, *, strict_host_key_checking=True):
        return [str(binary)]


class TestSelectBackends:
    def test_native(self):
        native, alternate = _Stub("native"), _Stub("alternate")
        assert select_backends(ImplementationPreference.NATIVE, native, alternate) == (
            native,
            alternate,
        )

    def test_alternate(self):
        native, alternate = _Stub("native"), _Stub("alternate")
        assert select_backends(ImplementationPreference.ALTERNATE, native, alternate) == (
            alternate,
            native,
        )

    def test_auto_prefers_native(self):
        native, alternate = _Stub("native"), _Stub("alternate")
        assert select_backends(ImplementationPreference.AUTO, native, alternate) == (
            native,
            alternate,
        )

    def test_auto_without_native_has_no_fallback(self):
        native, alternate = _Stub("native", available=False), _Stub("alternate")
        assert select_backends(ImplementationPreference.AUTO, native, alternate) == (
            alternate,
            None,
        )

    def test_from_config(self, tmp_path: Path):
        ssh = _executable(tmp_path / "ssh")
        config = TunnelConfig(implementation=ImplementationPreference.NATIVE, ssh_binary=ssh)
        primary, fallback = backends_from_config(config)
        assert isinstance(primary, OpenSSHBackend)
        assert isinstance(fallback, AsyncSSHBackend)
        assert primary.resolve_binary() == ssh
