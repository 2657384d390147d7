"""
Live interface synchronisation.

The Committer hands every updated configuration file to an InterfaceApplier,
which makes the running WireGuard interface match that file. The default
implementation shells out to wg(8); tests and development setups inject
their own.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Tuple

logger = logging.getLogger(__name__)


class WireGuardError(Exception):
    """Base exception for WireGuard operations."""
    pass


class ConfigReloadError(WireGuardError):
    """Raised when WireGuard configuration reload fails."""
    pass


class InterfaceApplier(ABC):
    """Capability that synchronises a live interface with a config file."""

    @abstractmethod
    async def apply(self, interface_name: str, config_path: str) -> None:
        """
        Make the interface's peer set match the configuration file.

        Args:
            interface_name: WireGuard interface name (e.g., "wg0")
            config_path: Path to the configuration file

        Raises:
            ConfigReloadError: If the interface could not be updated
        """
        pass


class WgCommandApplier(InterfaceApplier):
    """
    Applies configuration with `wg setconf` (or `wg syncconf`).

    setconf replaces the interface's peer set with exactly what the file
    lists; syncconf does the same while keeping existing sessions alive.
    """

    SUPPORTED_COMMANDS = ("setconf", "syncconf")

    def __init__(self, command: str = "setconf", wg_binary: str = "wg"):
        if command not in self.SUPPORTED_COMMANDS:
            raise ValueError(
                f"Unsupported wg command '{command}', "
                f"expected one of {', '.join(self.SUPPORTED_COMMANDS)}"
            )
        self.command = command
        self.wg_binary = wg_binary

    async def apply(self, interface_name: str, config_path: str) -> None:
        logger.debug(f"Applying {config_path} to interface {interface_name}")

        try:
            returncode, stdout, stderr = await self._execute_wg_command(
                self.command, interface_name, config_path
            )
        except FileNotFoundError as e:
            raise ConfigReloadError(f"{self.wg_binary} command not found: {e}")

        if returncode != 0:
            error_msg = (
                f"wg {self.command} failed for {interface_name}: {stderr}\n"
                f"Return code: {returncode}"
            )
            logger.error(error_msg)
            raise ConfigReloadError(error_msg)

        logger.info(f"Applied configuration to interface {interface_name}")

    async def _execute_wg_command(self, *args: str) -> Tuple[int, str, str]:
        """
        Execute WireGuard command.

        Args:
            *args: Command arguments

        Returns:
            Tuple of (returncode, stdout, stderr)
        """
        cmd = [self.wg_binary, *args]

        logger.debug(f"Executing command: {' '.join(cmd)}")

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        stdout, stderr = await process.communicate()

        return (
            process.returncode,
            stdout.decode().strip(),
            stderr.decode().strip(),
        )


class NoopApplier(InterfaceApplier):
    """Leaves the interface untouched; for development without root."""

    async def apply(self, interface_name: str, config_path: str) -> None:
        logger.warning(
            f"Interface apply disabled - {interface_name} not updated "
            f"from {config_path} (development mode?)"
        )
