"""Nginx stream (layer-4) proxy configuration.

Pure text transformations over ``nginx.conf`` plus the rendered
``stream.d`` file. Everything here is deterministic: the same input text and
config always produce the same output bytes.
"""

from __future__ import annotations

import logging
import re
from typing import List, Optional, Tuple

from ..config import RelayConfig

logger = logging.getLogger(__name__)

STREAM_INCLUDE = "/etc/nginx/stream.d/*.conf"

HTTP_INCLUDES = (
    "/etc/nginx/sites-enabled/*",
    "/etc/nginx/conf.d/*.conf",
)

DISABLED_PREFIX = "# DISABLED: "

_STREAM_BLOCK_TEMPLATE = """
# ============================================================
# STREAM CONFIGURATION - TCP PROXY
# Managed by: mysqlrelay
# Purpose: Include all TCP stream proxy configs (e.g., MySQL)
# ============================================================
stream {{
    include {include};
}}
# ============================================================
"""


def _strip_comment(line: str) -> str:
    """Drop a trailing ``#`` comment, honouring quoted strings."""

    quote: Optional[str] = None
    for i, ch in enumerate(line):
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch == "#":
            return line[:i]
    return line


def find_block(text: str, name: str) -> Optional[Tuple[int, int]]:
    """Return (first_line, last_line) of the top-level ``name { ... }`` block.

    Braces are counted outside comments so that a directive is attributed to
    the block that actually encloses it, not to any block with that name
    appearing somewhere in the file. The opening brace may sit on a later
    line than the block name.
    """

    opener = re.compile(rf"^\s*{re.escape(name)}(?![\w-])")
    depth = 0
    candidate: Optional[int] = None
    start: Optional[int] = None
    for i, line in enumerate(text.splitlines()):
        code = _strip_comment(line)
        if start is None and candidate is None and depth == 0 and opener.match(code):
            candidate = i
        for ch in code:
            if ch == "{":
                if candidate is not None and depth == 0:
                    start, candidate = candidate, None
                depth += 1
            elif ch == "}":
                depth -= 1
            elif ch == ";" and depth == 0:
                candidate = None
        if start is not None and depth == 0:
            return start, i
    if start is not None:
        raise ValueError(f"Unbalanced braces in '{name}' block")
    return None


def _include_re(include: str) -> re.Pattern[str]:
    return re.compile(rf"^\s*include\s+{re.escape(include)}\s*;")


def _has_directive(lines: List[str], include: str) -> bool:
    pattern = _include_re(include)
    for line in lines:
        # Several directives may share a line (``stream { include x; }``).
        for part in _strip_comment(line).replace("{", ";").split(";"):
            if pattern.match(part.strip() + ";"):
                return True
    return False


def has_stream_include(text: str, include: str = STREAM_INCLUDE) -> bool:
    block = find_block(text, "stream")
    if block is None:
        return False
    lines = text.splitlines()[block[0] : block[1] + 1]
    return _has_directive(lines, include)


def ensure_stream_include(text: str, include: str = STREAM_INCLUDE) -> str:
    """Make the top-level stream block include the stream.d directory.

    - no stream block: append one
    - stream block without the include inside it: insert it after ``{``
    - otherwise: unchanged
    """

    block = find_block(text, "stream")
    if block is None:
        logger.info("Adding stream block to nginx.conf")
        base = text if text.endswith("\n") or not text else text + "\n"
        return base + _STREAM_BLOCK_TEMPLATE.format(include=include)

    if has_stream_include(text, include):
        return text

    logger.info("Adding include directive to existing stream block")
    lines = text.splitlines()
    # first line of the block holding its opening brace
    opening = next(i for i in range(block[0], block[1] + 1) if "{" in _strip_comment(lines[i]))
    line = lines[opening]
    brace = _strip_comment(line).index("{")
    head, tail = line[: brace + 1], line[brace + 1 :]
    new_lines = [head, f"    include {include};"]
    if tail.strip():
        new_lines.append(tail)
    lines[opening : opening + 1] = new_lines
    return "\n".join(lines) + ("\n" if text.endswith("\n") else "")


def disable_http_includes(text: str) -> str:
    """Comment out HTTP virtual-host includes so nginx only forwards TCP."""

    patterns = [_include_re(inc) for inc in HTTP_INCLUDES]
    out: List[str] = []
    for line in text.splitlines():
        if any(p.match(line) for p in patterns):
            indent = line[: len(line) - len(line.lstrip())]
            out.append(f"{indent}{DISABLED_PREFIX}{line.strip()}")
        else:
            out.append(line)
    return "\n".join(out) + ("\n" if text.endswith("\n") else "")


def http_includes_disabled(text: str) -> bool:
    patterns = [_include_re(inc) for inc in HTTP_INCLUDES]
    return not any(p.match(line) for line in text.splitlines() for p in patterns)


def render_stream_conf(cfg: RelayConfig) -> str:
    """Render the upstream + server pair forwarding LISTEN_PORT to MySQL."""

    backend = f"{cfg.mysql_server}:{cfg.mysql_port}"
    return f"""# ============================================================
# Stream Proxy Configuration
# Managed by: mysqlrelay
# Backend: {backend}
# Local Listen Port: {cfg.listen_port}
# ============================================================

upstream {cfg.upstream_name} {{
    server {backend} max_fails={cfg.upstream_max_fails} fail_timeout={cfg.upstream_fail_timeout};
}}

server {{
    listen {cfg.listen_port};
    proxy_pass {cfg.upstream_name};
    proxy_connect_timeout {cfg.proxy_connect_timeout};
    proxy_timeout {cfg.proxy_timeout};
}}
# ============================================================
"""
