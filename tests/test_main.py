import logging
from pathlib import Path

import pytest

from mysqlrelay.checkpoints import mark_checkpoint
from mysqlrelay.logging_utils import configure_logging
from mysqlrelay.errors import ConfigError
from mysqlrelay.main import FLOW_CHECKPOINTS, build_parser, main, run_proxy, run_tunnel
from mysqlrelay.prompts import Prompter

CONFIG = 'MYSQL_SERVER="10.0.1.55"\nMYSQL_PORT=3306\nTUNNEL_NAME=db-tunnel\nTUNNEL_HOSTNAME=db.example.com\n'


@pytest.fixture(autouse=True)
def reset_root_logger():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    root.setLevel(level)
    for h in root.handlers[:]:
        if h not in before:
            root.removeHandler(h)
            h.close()
    if hasattr(root, "_mysqlrelay_log_path"):
        delattr(root, "_mysqlrelay_log_path")


@pytest.fixture
def log_args(tmp_path):
    return ["--log", str(tmp_path / "relay.log")]


def test_parser_defaults():
    args = build_parser().parse_args(["proxy"])
    assert args.config == "config_setup_nginx_proxy_server.conf"
    assert args.checkpoints == "./nginx_proxy_setup_checkpoints.log"
    assert not args.dry_run and not args.force

    args = build_parser().parse_args(["tunnel", "--start-at", "TUNNEL_CONFIG"])
    assert args.checkpoints == "./cloudflared_setup_checkpoints.log"
    assert args.start_at == "TUNNEL_CONFIG"


def test_status_and_reset(tmp_path, log_args):
    checkpoints = tmp_path / "cp.log"
    assert main(["status", "--checkpoints", str(checkpoints), *log_args]) == 0

    mark_checkpoint(str(checkpoints), "OS_CHECK")
    assert main(["status", "--checkpoints", str(checkpoints), *log_args]) == 0
    assert main(["reset", "--checkpoints", str(checkpoints), *log_args]) == 0
    assert not checkpoints.exists()


@pytest.fixture
def flow_logs(tmp_path, monkeypatch):
    proxy, tunnel = tmp_path / "proxy_cp.log", tmp_path / "tunnel_cp.log"
    monkeypatch.setitem(FLOW_CHECKPOINTS, "proxy", str(proxy))
    monkeypatch.setitem(FLOW_CHECKPOINTS, "tunnel", str(tunnel))
    return proxy, tunnel


def test_status_without_flow_shows_both_logs(flow_logs, log_args, caplog):
    proxy, tunnel = flow_logs
    mark_checkpoint(str(tunnel), "CLOUDFLARED_INSTALL")

    assert main(["status", *log_args]) == 0
    assert f"No checkpoints found in {proxy}" in caplog.text
    assert "CLOUDFLARED_INSTALL" in caplog.text


def test_reset_by_flow_leaves_other_log(flow_logs, log_args):
    proxy, tunnel = flow_logs
    mark_checkpoint(str(proxy), "SWAP_SETUP")
    mark_checkpoint(str(tunnel), "CLOUDFLARED_INSTALL")

    assert main(["reset", "--flow", "tunnel", *log_args]) == 0
    assert proxy.exists()
    assert not tunnel.exists()


def test_reset_needs_a_target(flow_logs, log_args):
    proxy, _ = flow_logs
    mark_checkpoint(str(proxy), "SWAP_SETUP")

    with pytest.raises(SystemExit) as exc:
        main(["reset", *log_args])
    assert exc.value.code == 2
    assert proxy.exists()


def test_verbose_sets_debug_level(log_args):
    main(["status", "--checkpoints", "unused.log", "--verbose", *log_args])
    assert logging.getLogger().level == logging.DEBUG


def test_unwritable_log_paths_fall_back_to_console(tmp_path, monkeypatch, caplog):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    monkeypatch.setattr(Path, "cwd", staticmethod(lambda: blocker))

    assert configure_logging(str(blocker / "logs" / "relay.log")) is None
    assert not any(isinstance(h, logging.FileHandler) for h in logging.getLogger().handlers)
    assert "Logging to console only" in caplog.text


def test_missing_config_exits_nonzero(tmp_path, log_args):
    rc = main(["proxy", "--dry-run", "--yes", "--config", str(tmp_path / "missing.conf"), *log_args])
    assert rc == 1


def test_mutating_command_requires_root(tmp_path, log_args, monkeypatch):
    monkeypatch.setattr("mysqlrelay.main.os.geteuid", lambda: 1000)
    config = tmp_path / "relay.conf"
    config.write_text(CONFIG)
    assert main(["proxy", "--yes", "--config", str(config), *log_args]) == 1


def test_teardown_needs_typed_yes(tmp_path, log_args):
    rc = main(
        ["teardown-tunnel", "--dry-run", "--checkpoints", str(tmp_path / "cp.log"), *log_args],
        input_fn=lambda _msg: "y",
    )
    assert rc == 1


def test_interrupt_at_prompt_propagates(tmp_path, log_args, monkeypatch):
    def interrupt(_msg):
        raise KeyboardInterrupt

    config = tmp_path / "relay.conf"
    config.write_text(CONFIG)
    with pytest.raises(KeyboardInterrupt):
        main(["proxy", "--dry-run", "--config", str(config), *log_args], input_fn=interrupt)


class TestFlows:
    def test_proxy_config_validated_before_any_step(self, fake_shell, host_paths, tmp_path):
        config = tmp_path / "relay.conf"
        config.write_text("MYSQL_SERVER=10.0.1.55\nMYSQL_PORT=99999\n")

        with pytest.raises(ConfigError, match="MYSQL_PORT"):
            run_proxy(
                config_path=str(config),
                checkpoint_path=str(tmp_path / "cp.log"),
                paths=host_paths,
                prompter=Prompter(assume_yes=True),
            )
        assert fake_shell.calls == []

    def test_proxy_stop_after(self, fake_shell, host_paths, tmp_path):
        config = tmp_path / "relay.conf"
        config.write_text(CONFIG)
        result = run_proxy(
            config_path=str(config),
            checkpoint_path=str(tmp_path / "cp.log"),
            paths=host_paths,
            prompter=Prompter(assume_yes=True),
            stop_after="OS_CHECK",
        )
        assert result.ran_steps == ["OS_CHECK"]

    def test_tunnel_requires_tunnel_settings(self, host_paths, tmp_path):
        config = tmp_path / "relay.conf"
        config.write_text("MYSQL_SERVER=10.0.1.55\nMYSQL_PORT=3306\n")

        with pytest.raises(ConfigError, match="TUNNEL_NAME"):
            run_tunnel(
                config_path=str(config),
                checkpoint_path=str(tmp_path / "cp.log"),
                paths=host_paths,
                prompter=Prompter(assume_yes=True),
            )

    def test_tunnel_stop_after_skips_service_prompt(self, fake_shell, binaries, host_paths, tmp_path):
        binaries.add("cloudflared")
        config = tmp_path / "relay.conf"
        config.write_text(CONFIG)
        answers = [""]
        result = run_tunnel(
            config_path=str(config),
            checkpoint_path=str(tmp_path / "cp.log"),
            paths=host_paths,
            prompter=Prompter(input_fn=lambda _msg: answers.pop(0)),
            stop_after="CLOUDFLARED_INSTALL",
        )
        assert result.ran_steps == ["OS_CHECK"]
        assert result.satisfied_steps == ["CLOUDFLARED_INSTALL"]
        assert answers == []
