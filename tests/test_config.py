import pytest

from mysqlrelay.config import PROXY_FLOW, TUNNEL_FLOW, RelayConfig, load_config, parse_shell_config
from mysqlrelay.errors import ConfigError

SAMPLE = """\
# MySQL backend
MYSQL_SERVER="10.0.1.55"
MYSQL_PORT=3306
export LISTEN_PORT='3307'   # public port
UPSTREAM_NAME=mysql_backend

TUNNEL_NAME=db-tunnel
"""


class TestShellConfig:
    def test_parses_quotes_comments_and_export(self):
        raw = parse_shell_config(SAMPLE)
        assert raw == {
            "MYSQL_SERVER": "10.0.1.55",
            "MYSQL_PORT": "3306",
            "LISTEN_PORT": "3307",
            "UPSTREAM_NAME": "mysql_backend",
            "TUNNEL_NAME": "db-tunnel",
        }

    def test_empty_value(self):
        assert parse_shell_config('TUNNEL_HOSTNAME=""\n') == {"TUNNEL_HOSTNAME": ""}

    def test_hash_inside_value_is_kept(self):
        assert parse_shell_config("TUNNEL_NAME=db#1\n") == {"TUNNEL_NAME": "db#1"}

    def test_bare_key_reads_empty(self):
        assert parse_shell_config("LISTEN_PORT\nMYSQL_PORT=3306\n") == {"LISTEN_PORT": "", "MYSQL_PORT": "3306"}


class TestLoadConfig:
    def test_missing_file_is_fatal(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(str(tmp_path / "nope.conf"))

    def test_shell_file(self, tmp_path):
        p = tmp_path / "relay.conf"
        p.write_text(SAMPLE)
        cfg = load_config(str(p))
        assert cfg.mysql_server == "10.0.1.55"
        assert cfg.listen_port == 3307
        assert cfg.source == str(p)

    def test_yaml_file(self, tmp_path):
        p = tmp_path / "relay.yaml"
        p.write_text("mysql_server: db.internal\nmysql_port: 3306\ntunnel_name: db-tunnel\n")
        cfg = load_config(str(p))
        assert cfg.mysql_server == "db.internal"
        assert cfg.mysql_port == 3306
        assert cfg.tunnel_name == "db-tunnel"


class TestRelayConfig:
    def test_defaults(self):
        cfg = RelayConfig(raw={"MYSQL_SERVER": "h", "MYSQL_PORT": "3306"})
        assert cfg.listen_port == 3306
        assert cfg.upstream_name == "mysql_backend"
        assert cfg.proxy_connect_timeout == "10s"
        assert cfg.proxy_timeout == "1h"
        assert cfg.upstream_max_fails == "3"
        assert cfg.upstream_fail_timeout == "30s"
        assert cfg.tunnel_config_dir == "/etc/cloudflared"

    def test_proxy_requires_backend(self):
        with pytest.raises(ConfigError, match="MYSQL_SERVER"):
            RelayConfig(raw={"MYSQL_PORT": "3306"}).require(PROXY_FLOW)

    def test_tunnel_requires_tunnel_keys(self):
        cfg = RelayConfig(raw={"MYSQL_SERVER": "h", "MYSQL_PORT": "3306", "TUNNEL_NAME": "t"})
        with pytest.raises(ConfigError, match="TUNNEL_HOSTNAME"):
            cfg.require(TUNNEL_FLOW)
        cfg.require(PROXY_FLOW)

    @pytest.mark.parametrize("port", ["0", "65536", "mysql", "-1"])
    def test_invalid_ports(self, port):
        with pytest.raises(ConfigError, match="between 1 and 65535"):
            RelayConfig(raw={"MYSQL_SERVER": "h", "MYSQL_PORT": "3306", "LISTEN_PORT": port}).require(PROXY_FLOW)

    def test_config_is_immutable(self):
        cfg = RelayConfig(raw={"MYSQL_SERVER": "h"})
        with pytest.raises(AttributeError):
            cfg.source = "x"
