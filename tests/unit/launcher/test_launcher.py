from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

from conftest import make_runtime, posix_only
from suwayomi_launcher import launcher as launcher_module
from suwayomi_launcher.errors import InvalidBaseUrl, MissingExecutable, MissingFile, SpawnFailure, StartupTimeout
from suwayomi_launcher.launcher import BootstrapState, Launcher, discover_launcher_config
from suwayomi_launcher.platform_utils import get_platform_capabilities
from suwayomi_launcher.supervisor import ProcessSupervisor

LINUX = get_platform_capabilities("linux")

SLEEPING_JAVA = "#!/bin/sh\nexec sleep 30\n"


class RecordingSupervisor(ProcessSupervisor):
    def __init__(self, **kwargs):
        super().__init__(LINUX, poll_interval=0.05, **kwargs)
        self.spawned: list[subprocess.Popen] = []
        self.discarded: list[subprocess.Popen] = []

    def spawn(self, config):
        child = super().spawn(config)
        self.spawned.append(child)
        return child

    def discard(self, child):
        self.discarded.append(child)
        super().discard(child)


def _env(tmp_path: Path, **extra: str) -> dict[str, str]:
    env = {"SUWAYOMI_CONFIG_PATH": str(tmp_path / "absent.conf")}
    env.update(extra)
    return env


def test_bootstrap_reuses_running_server(tmp_path: Path, health_server) -> None:
    server = health_server()
    supervisor = RecordingSupervisor()
    launcher = Launcher(
        supervisor,
        environ=_env(tmp_path, SUWAYOMI_BASE_URL=server.base_url + "/"),
        executable="",
    )

    result = launcher.bootstrap()

    assert result.base_url == server.base_url
    assert not result.spawned
    assert launcher.state == BootstrapState.READY
    assert supervisor.spawned == []
    assert not supervisor.is_tracking


def test_bootstrap_rejects_invalid_base_url(tmp_path: Path) -> None:
    conf = tmp_path / "server.conf"
    conf.write_text('server.ip = "["\n', encoding="utf-8")
    launcher = Launcher(RecordingSupervisor(), environ={"SUWAYOMI_CONFIG_PATH": str(conf)})

    with pytest.raises(InvalidBaseUrl) as exc_info:
        launcher.bootstrap()

    assert exc_info.value.value == "http://[:4567"
    assert launcher.state == BootstrapState.FAILED


def test_bootstrap_reports_missing_interpreter(tmp_path: Path, dead_base_url: str) -> None:
    app_dir = tmp_path / "app"
    app_dir.mkdir()
    launcher = Launcher(
        RecordingSupervisor(),
        environ=_env(tmp_path, SUWAYOMI_BASE_URL=dead_base_url),
        executable=str(app_dir / "launcher"),
    )

    with pytest.raises(MissingFile) as exc_info:
        launcher.bootstrap()

    assert exc_info.value.path == str(app_dir / "jre" / "bin" / "java")
    assert launcher.state == BootstrapState.FAILED


def test_bootstrap_unknown_executable(tmp_path: Path, dead_base_url: str) -> None:
    launcher = Launcher(
        RecordingSupervisor(),
        environ=_env(tmp_path, SUWAYOMI_BASE_URL=dead_base_url),
        executable="",
    )

    with pytest.raises(MissingExecutable):
        launcher.bootstrap()
    assert launcher.state == BootstrapState.FAILED


def test_discover_launcher_config_prefers_resource_dir(tmp_path: Path) -> None:
    app_dir = make_runtime(tmp_path / "app")
    resource_dir = make_runtime(tmp_path / "res" / "resources").parent

    config = discover_launcher_config(
        "http://127.0.0.1:4567",
        resource_dir=resource_dir,
        environ={"SUWAYOMI_ROOT_DIR": "/srv/suwayomi"},
        platform=LINUX,
        executable=str(app_dir / "launcher"),
    )

    assert config.runtime_root == resource_dir / "resources"
    assert config.payload_path == resource_dir / "resources" / "bin" / "Suwayomi-Server.jar"
    assert config.root_dir_override == "/srv/suwayomi"
    assert config.base_url == "http://127.0.0.1:4567"


def test_discover_launcher_config_without_root_dir(tmp_path: Path) -> None:
    app_dir = make_runtime(tmp_path / "app")

    config = discover_launcher_config(
        "http://127.0.0.1:4567", environ={}, platform=LINUX, executable=str(app_dir / "launcher")
    )

    assert config.runtime_root == app_dir
    assert config.root_dir_override is None


@posix_only
def test_bootstrap_kills_child_on_startup_timeout(tmp_path: Path, dead_base_url: str) -> None:
    app_dir = make_runtime(tmp_path / "app", script=SLEEPING_JAVA)
    supervisor = RecordingSupervisor()
    launcher = Launcher(
        supervisor,
        environ=_env(tmp_path, SUWAYOMI_BASE_URL=dead_base_url),
        executable=str(app_dir / "launcher"),
        startup_timeout=0.6,
        poll_interval=0.1,
    )

    with pytest.raises(StartupTimeout) as exc_info:
        launcher.bootstrap()

    assert exc_info.value.base_url == dead_base_url
    assert exc_info.value.timeout == 0.6
    assert launcher.state == BootstrapState.FAILED
    assert len(supervisor.spawned) == 1
    assert supervisor.discarded == supervisor.spawned
    assert supervisor.spawned[0].returncode is not None
    assert not supervisor.is_tracking


@posix_only
def test_bootstrap_spawns_tracks_and_shuts_down(tmp_path: Path, health_server) -> None:
    # Unhealthy for the pre-spawn checks, healthy once the child is running.
    server = health_server(lambda n: 200 if n >= 3 else 503)
    app_dir = make_runtime(tmp_path / "app", script=SLEEPING_JAVA)
    supervisor = RecordingSupervisor()
    launcher = Launcher(
        supervisor,
        environ=_env(tmp_path, SUWAYOMI_BASE_URL=server.base_url),
        executable=str(app_dir / "launcher"),
        startup_timeout=10,
        poll_interval=0.2,
    )

    result = launcher.bootstrap()

    assert result.base_url == server.base_url
    assert result.spawned
    assert launcher.state == BootstrapState.READY
    child = supervisor.spawned[0]
    assert supervisor.tracked_pid == child.pid

    launcher.shutdown()

    assert child.returncode is not None
    assert not supervisor.is_tracking
    launcher.shutdown()


def test_fallback_base_url_prefers_command_line(tmp_path: Path) -> None:
    conf = tmp_path / "server.conf"
    conf.write_text("server.port = 9000\n", encoding="utf-8")
    launcher = Launcher(
        RecordingSupervisor(),
        cli_url="http://0.0.0.0:5000",
        environ={"SUWAYOMI_CONFIG_PATH": str(conf), "SUWAYOMI_BASE_URL": "http://10.0.0.2:7000"},
    )

    assert launcher.fallback_base_url() == "http://127.0.0.1:5000"


@posix_only
def test_bootstrap_reports_spawn_failure(tmp_path: Path, dead_base_url: str) -> None:
    app_dir = make_runtime(tmp_path / "app")
    (app_dir / "jre" / "bin" / "java").chmod(0o644)
    supervisor = RecordingSupervisor()
    launcher = Launcher(
        supervisor,
        environ=_env(tmp_path, SUWAYOMI_BASE_URL=dead_base_url),
        executable=str(app_dir / "launcher"),
    )

    with pytest.raises(SpawnFailure) as exc_info:
        launcher.bootstrap()

    assert exc_info.value.reason
    assert launcher.state == BootstrapState.FAILED
    assert supervisor.spawned == []
    assert not supervisor.is_tracking


@posix_only
def test_bootstrap_reaps_child_when_interrupted_while_waiting(
    tmp_path: Path, dead_base_url: str, monkeypatch
) -> None:
    def _interrupt(*args, **kwargs):
        raise KeyboardInterrupt

    monkeypatch.setattr(launcher_module.health, "wait_for_server", _interrupt)
    app_dir = make_runtime(tmp_path / "app", script=SLEEPING_JAVA)
    supervisor = RecordingSupervisor()
    launcher = Launcher(
        supervisor,
        environ=_env(tmp_path, SUWAYOMI_BASE_URL=dead_base_url),
        executable=str(app_dir / "launcher"),
        poll_interval=0.1,
    )

    with pytest.raises(KeyboardInterrupt):
        launcher.bootstrap()

    assert launcher.state == BootstrapState.FAILED
    assert len(supervisor.spawned) == 1
    assert supervisor.discarded == supervisor.spawned
    assert supervisor.spawned[0].returncode is not None
    assert not supervisor.is_tracking


@posix_only
def test_bootstrap_discards_child_when_slot_is_taken(tmp_path: Path, health_server) -> None:
    server = health_server(lambda n: 200 if n >= 3 else 503)
    app_dir = make_runtime(tmp_path / "app", script=SLEEPING_JAVA)
    supervisor = RecordingSupervisor()
    occupant = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    supervisor.track(occupant)
    launcher = Launcher(
        supervisor,
        environ=_env(tmp_path, SUWAYOMI_BASE_URL=server.base_url),
        executable=str(app_dir / "launcher"),
        startup_timeout=10,
        poll_interval=0.2,
    )

    try:
        with pytest.raises(RuntimeError):
            launcher.bootstrap()

        assert launcher.state == BootstrapState.FAILED
        assert len(supervisor.spawned) == 1
        assert supervisor.discarded == supervisor.spawned
        assert supervisor.spawned[0].returncode is not None
        assert supervisor.tracked_pid == occupant.pid
    finally:
        launcher.shutdown()

    assert occupant.returncode is not None
