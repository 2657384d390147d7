"""
Configuration for the provisioning authority.

Settings come from WGN_* environment variables:

    WGN_INTERFACE       WireGuard interface to manage (default: wg0)
    WGN_CONFIG          Configuration file (default: /etc/wireguard/<interface>.conf)
    WGN_ENDPOINT        Endpoint advertised to peers, host:port (required)
    WGN_ADDRESS         Interface address in CIDR notation, e.g. 10.0.0.1/24 (required)
    WGN_LISTEN          HTTP listen address (default: 0.0.0.0:8080)
    WGN_INTERACTIVE     Prompt an operator before accepting peers (default: false)
    WGN_SERVE_BINARY    Serve the running program on GET / (default: false)
    WGN_BINARY_PATH     File served on GET / (default: the launching script, sys.argv[0])
    WGN_QUEUE_SIZE      Pending requests per pipeline stage (default: 64)
    WGN_DRAIN_TIMEOUT   Seconds to drain queued requests on shutdown (default: 10)
    WGN_WG_COMMAND      setconf or syncconf (default: setconf)
    WGN_APPLY           Apply peers to the live interface (default: true)
    WGN_LOG_LEVEL       Logging level (default: INFO)

The configuration file is rewritten by appending; comments in it are
ignored and never reproduced.
"""

import ipaddress
import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator


ENV_PREFIX = "WGN_"
DEFAULT_INTERFACE = "wg0"
DEFAULT_LISTEN = "0.0.0.0:8080"
PERSISTENT_KEEPALIVE = 25


class SettingsError(Exception):
    """Raised when the environment does not describe a valid configuration."""
    pass


class Settings(BaseModel):
    """Validated application settings"""
    model_config = ConfigDict(frozen=True)

    interface: str = Field(DEFAULT_INTERFACE, min_length=1)
    config_path: str = ""
    endpoint: str = Field(..., description="Endpoint advertised to peers (host:port)")
    address: str = Field(..., description="Interface address in CIDR notation")
    listen_host: str = "0.0.0.0"
    listen_port: int = Field(8080, ge=0, le=65535)
    interactive: bool = False
    serve_binary: bool = False
    binary_path: Optional[str] = None
    queue_size: int = Field(64, ge=1)
    drain_timeout: float = Field(10.0, ge=0)
    wg_command: Literal["setconf", "syncconf"] = "setconf"
    apply_enabled: bool = True
    log_level: str = "INFO"
    persistent_keepalive: int = Field(PERSISTENT_KEEPALIVE, ge=0, le=65535)

    @field_validator("endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        """Validate endpoint format (hostname:port)"""
        host, sep, port = v.rpartition(":")
        if not sep or not host:
            raise ValueError("endpoint must be in format 'hostname:port'")
        try:
            port_num = int(port)
        except ValueError:
            raise ValueError("Invalid port number in endpoint")
        if not 1 <= port_num <= 65535:
            raise ValueError("endpoint port must be between 1 and 65535")
        return v

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate the interface address carries a prefix length"""
        if "/" not in v:
            raise ValueError("address must include CIDR notation (e.g., 10.0.0.1/24)")
        ipaddress.ip_interface(v)
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"):
            raise ValueError(f"unknown log level '{v}'")
        return level

    @model_validator(mode="before")
    @classmethod
    def default_config_path(cls, data):
        if isinstance(data, dict) and not data.get("config_path"):
            interface = data.get("interface") or DEFAULT_INTERFACE
            data = {**data, "config_path": f"/etc/wireguard/{interface}.conf"}
        return data

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from WGN_* environment variables

        Args:
            environ: Mapping to read instead of os.environ

        Raises:
            SettingsError: If a variable is missing or invalid
        """
        env = os.environ if environ is None else environ

        def get(name: str, default: Optional[str] = None) -> Optional[str]:
            value = env.get(ENV_PREFIX + name, default)
            return value if value != "" else default

        listen = get("LISTEN", DEFAULT_LISTEN)
        listen_host, sep, listen_port = listen.rpartition(":")
        if not sep:
            raise SettingsError(f"{ENV_PREFIX}LISTEN must be host:port, got '{listen}'")

        values = {
            "interface": get("INTERFACE", DEFAULT_INTERFACE),
            "config_path": get("CONFIG", ""),
            "endpoint": get("ENDPOINT"),
            "address": get("ADDRESS"),
            "listen_host": listen_host or "0.0.0.0",
            "listen_port": listen_port,
            "interactive": get("INTERACTIVE", "false"),
            "serve_binary": get("SERVE_BINARY", "false"),
            "binary_path": get("BINARY_PATH"),
            "queue_size": get("QUEUE_SIZE", "64"),
            "drain_timeout": get("DRAIN_TIMEOUT", "10"),
            "wg_command": get("WG_COMMAND", "setconf"),
            "apply_enabled": get("APPLY", "true"),
            "log_level": get("LOG_LEVEL", "INFO"),
        }

        try:
            return cls(**values)
        except ValidationError as e:
            raise SettingsError(f"Invalid {ENV_PREFIX}* settings: {e}")
