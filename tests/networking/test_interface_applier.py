"""
Interface applier tests

The wg binary is never executed; _execute_wg_command is patched.
"""

from unittest.mock import AsyncMock, patch

import pytest

from wg_negotiator.networking.interface_applier import (
    ConfigReloadError,
    NoopApplier,
    WgCommandApplier,
)


class TestWgCommandApplier:
    """Test wg setconf/syncconf invocation"""

    @pytest.mark.asyncio
    async def test_apply_runs_setconf(self):
        """
        GIVEN a setconf applier
        WHEN applying a configuration file
        THEN wg setconf should be called with the interface and path
        """
        applier = WgCommandApplier()

        with patch.object(
            applier, "_execute_wg_command", new=AsyncMock(return_value=(0, "", ""))
        ) as mock_exec:
            await applier.apply("wg0", "/etc/wireguard/wg0.conf")

        mock_exec.assert_awaited_once_with("setconf", "wg0", "/etc/wireguard/wg0.conf")

    @pytest.mark.asyncio
    async def test_apply_runs_syncconf(self):
        applier = WgCommandApplier(command="syncconf")

        with patch.object(
            applier, "_execute_wg_command", new=AsyncMock(return_value=(0, "", ""))
        ) as mock_exec:
            await applier.apply("wg0", "/tmp/wg0.conf")

        mock_exec.assert_awaited_once_with("syncconf", "wg0", "/tmp/wg0.conf")

    @pytest.mark.asyncio
    async def test_apply_nonzero_exit(self):
        """
        GIVEN wg exits with an error
        WHEN applying
        THEN ConfigReloadError should carry stderr
        """
        applier = WgCommandApplier()

        with patch.object(
            applier,
            "_execute_wg_command",
            new=AsyncMock(return_value=(1, "", "Unable to modify interface: Operation not permitted"))
        ):
            with pytest.raises(ConfigReloadError) as exc_info:
                await applier.apply("wg0", "/tmp/wg0.conf")

        assert "Operation not permitted" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_apply_missing_binary(self):
        applier = WgCommandApplier(wg_binary="/nonexistent/wg")

        with pytest.raises(ConfigReloadError):
            await applier.apply("wg0", "/tmp/wg0.conf")

    def test_unsupported_command(self):
        with pytest.raises(ValueError):
            WgCommandApplier(command="addconf")


class TestNoopApplier:

    @pytest.mark.asyncio
    async def test_apply_does_nothing(self, caplog):
        await NoopApplier().apply("wg0", "/tmp/wg0.conf")

        assert "Interface apply disabled" in caplog.text
