from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Paths:
    os_release: str = "/etc/os-release"
    meminfo: str = "/proc/meminfo"
    fstab: str = "/etc/fstab"
    default_swapfile: str = "/swapfile"
    swappiness_conf: str = "/etc/sysctl.d/99-swappiness.conf"

    nginx_conf: str = "/etc/nginx/nginx.conf"
    nginx_stream_dir: str = "/etc/nginx/stream.d"

    iptables_rules_v4: str = "/etc/iptables/rules.v4"
    iptables_rules_v6: str = "/etc/iptables/rules.v6"

    # Resolved with expanduser() at use.
    cloudflared_home: str = "~/.cloudflared"
    cloudflared_keyring: str = "/usr/share/keyrings/cloudflare-main.gpg"
    cloudflared_apt_list: str = "/etc/apt/sources.list.d/cloudflared.list"
    cloudflared_unit: str = "/etc/systemd/system/cloudflared.service"

    log_default: str = "/var/log/mysqlrelay.log"
    config_default: str = "config_setup_nginx_proxy_server.conf"
    proxy_checkpoints_default: str = "./nginx_proxy_setup_checkpoints.log"
    tunnel_checkpoints_default: str = "./cloudflared_setup_checkpoints.log"


PATHS = Paths()
