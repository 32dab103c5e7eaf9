"""
Base address resolution

Precedence (highest first):
1. First command-line argument (URL)
2. Environment variable SUWAYOMI_BASE_URL
3. server.conf in the server's data directory (or SUWAYOMI_CONFIG_PATH)
4. Hard-coded defaults (127.0.0.1:4567, no subpath)

A source that is present but not a usable URL is skipped, never fatal.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import SplitResult, urlsplit

from .platform_utils import PlatformCapabilities, get_platform_capabilities

logger = logging.getLogger(__name__)

DEFAULT_IP = "127.0.0.1"
DEFAULT_PORT = 4567
BIND_ALL_IP = "0.0.0.0"

BASE_URL_ENV = "SUWAYOMI_BASE_URL"
CONFIG_PATH_ENV = "SUWAYOMI_CONFIG_PATH"

SERVER_DATA_DIR_NAME = "Tachidesk"
SERVER_CONFIG_NAME = "server.conf"

_IP_PATTERN = re.compile(r'^\s*server\.ip\s*=\s*"([^"]+)"', re.MULTILINE)
_PORT_PATTERN = re.compile(r"^\s*server\.port\s*=\s*([0-9]+)", re.MULTILINE)
_SUBPATH_PATTERN = re.compile(r'^\s*server\.webUISubpath\s*=\s*"([^"]*)"', re.MULTILINE)


@dataclass(frozen=True)
class ParsedConfig:
    ip: str = DEFAULT_IP
    port: int = DEFAULT_PORT
    subpath: str = ""


def normalize_ip(ip: str) -> str:
    # A bind-all address is not something a client can connect to.
    if ip == BIND_ALL_IP:
        return DEFAULT_IP
    return ip


def normalize_subpath(subpath: str) -> str:
    """Return "" or a single-leading-slash path without a trailing slash."""
    if not subpath or subpath == "/":
        return ""
    path = subpath.strip().rstrip("/").lstrip("/")
    if not path:
        return ""
    return f"/{path}"


def build_base_url(ip: str, port: int, subpath: str) -> str:
    return f"http://{normalize_ip(ip)}:{port}{normalize_subpath(subpath)}"


def _split_url(raw: str) -> Optional[SplitResult]:
    try:
        parsed = urlsplit(raw.strip())
        # Accessing .port validates it (non-numeric or out of range raises).
        parsed.port
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc or not parsed.hostname:
        return None
    return parsed


def is_valid_base_url(value: str) -> bool:
    return _split_url(value) is not None


def normalize_base_url(raw: str) -> Optional[str]:
    """
    Normalize a user-supplied URL.

    Returns:
        The normalized URL, or None if it cannot be parsed (the caller moves
        on to the next source).
    """
    parsed = _split_url(raw)
    if parsed is None:
        return None

    if parsed.hostname == BIND_ALL_IP:
        netloc = DEFAULT_IP
        if parsed.port is not None:
            netloc = f"{netloc}:{parsed.port}"
        userinfo, sep, _ = parsed.netloc.rpartition("@")
        if sep:
            netloc = f"{userinfo}@{netloc}"
        parsed = parsed._replace(netloc=netloc)

    url = parsed.geturl()
    if url.endswith("/"):
        url = url[:-1]
    return url


def parse_server_conf(content: str) -> ParsedConfig:
    """
    Pull server.ip / server.port / server.webUISubpath out of server.conf.

    Each key independently overrides its default. A port that does not fit
    in 0-65535 is ignored.
    """
    ip = DEFAULT_IP
    port = DEFAULT_PORT
    subpath = ""

    match = _IP_PATTERN.search(content)
    if match:
        ip = normalize_ip(match.group(1).strip())

    match = _PORT_PATTERN.search(content)
    if match:
        value = int(match.group(1))
        if 0 <= value <= 65535:
            port = value
        else:
            logger.debug(f"Ignoring out-of-range server.port {value}")

    match = _SUBPATH_PATTERN.search(content)
    if match:
        subpath = normalize_subpath(match.group(1).strip())

    return ParsedConfig(ip=ip, port=port, subpath=subpath)


def default_server_config_path(
    environ: Optional[Mapping[str, str]] = None,
    platform: Optional[PlatformCapabilities] = None,
) -> Path:
    platform = platform or get_platform_capabilities()
    return platform.data_local_dir(environ) / SERVER_DATA_DIR_NAME / SERVER_CONFIG_NAME


def server_config_path(
    environ: Optional[Mapping[str, str]] = None,
    platform: Optional[PlatformCapabilities] = None,
) -> Path:
    """SUWAYOMI_CONFIG_PATH if set, otherwise the platform default."""
    env = os.environ if environ is None else environ
    override = (env.get(CONFIG_PATH_ENV) or "").strip()
    if override:
        return Path(override).expanduser()
    return default_server_config_path(env, platform)


def load_server_conf(
    environ: Optional[Mapping[str, str]] = None,
    platform: Optional[PlatformCapabilities] = None,
) -> Optional[ParsedConfig]:
    config_path = server_config_path(environ, platform)
    try:
        content = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"server config not readable at {config_path}: {e}")
        return None
    logger.debug(f"Loaded server config from {config_path}")
    return parse_server_conf(content)


def resolve_base_url(
    cli_url: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    platform: Optional[PlatformCapabilities] = None,
) -> str:
    """
    Resolve the server base address.

    Args:
        cli_url: First positional command-line argument, if any
        environ: Environment mapping (default: os.environ)
        platform: Platform capabilities used to locate server.conf

    Returns:
        Base URL without a trailing slash
    """
    env = os.environ if environ is None else environ

    if cli_url:
        base_url = normalize_base_url(cli_url)
        if base_url:
            logger.debug(f"Base URL from command line: {base_url}")
            return base_url
        logger.warning(f"Ignoring unparseable command-line URL: {cli_url!r}")

    raw_url = env.get(BASE_URL_ENV)
    if raw_url:
        base_url = normalize_base_url(raw_url)
        if base_url:
            logger.debug(f"Base URL from {BASE_URL_ENV}: {base_url}")
            return base_url
        logger.warning(f"Ignoring unparseable {BASE_URL_ENV}: {raw_url!r}")

    parsed = load_server_conf(env, platform) or ParsedConfig()
    return build_base_url(parsed.ip, parsed.port, parsed.subpath)
