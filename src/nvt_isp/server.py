"""MCP server entry point for the N76E003 ISP programmer.

Exposes the programming session as tools and resources via the Model
Context Protocol using the official Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import DEFAULT_SERIAL_DEVICE, SerialSettings
from .errors import IspError
from .models.config import CONFIG_FIELDS, ConfigChange
from .programmer.retry import connect_policy
from .programmer.session import DeviceSession
from .programmer.transfer import load_image
from .transport.serial_connection import SerialConnection

logger = logging.getLogger(__name__)

# About ten seconds of probing; a tool call must not hang forever
MCP_CONNECT_ATTEMPTS = 250

mcp = FastMCP(
    "nvt-isp",
    instructions="ISP programmer for Nuvoton N76E003 microcontrollers",
)

# Global session state
_connection: SerialConnection | None = None
_session: DeviceSession | None = None


def _get_session() -> DeviceSession:
    """Get the active session, raising if not connected."""
    if _session is None or _connection is None or not _connection.connected:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _session


def _close() -> None:
    global _connection, _session
    if _connection is not None:
        _connection.close()
    _connection = None
    _session = None


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(
    serial_device: str = DEFAULT_SERIAL_DEVICE,
    reset: bool = True,
    max_attempts: int = MCP_CONNECT_ATTEMPTS,
) -> dict[str, Any]:
    """Open the serial port and bring the device into ISP mode.

    Probes with CONNECT, synchronizes packet numbers and reads the
    firmware version, device id and config bytes.

    Args:
        serial_device: Serial port the target is attached to.
        reset: Pulse DTR first to reset the target.
        max_attempts: CONNECT probes to send before giving up (40 ms each).
    """
    global _connection, _session
    if _session is not None and _session.state.connected:
        return {"connected": True, "message": "Already connected"}

    _close()
    try:
        policy = connect_policy(max_attempts)
    except ValueError as e:
        return {"error": str(e)}

    conn = SerialConnection(SerialSettings(port=serial_device))
    try:
        conn.open()
        if reset:
            conn.pulse_reset()
        session = DeviceSession(conn, connect_policy=policy)
        session.connect()
        session.sync_packet_numbers()
        session.get_firmware_version()
        session.get_device_id()
        session.read_config()
    except IspError as e:
        conn.close()
        return {"error": str(e)}

    _connection = conn
    _session = session
    return session.state.to_dict()


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the serial port, leaving the device as it is."""
    _close()
    return {"disconnected": True}


@mcp.tool()
def get_device_info() -> dict[str, Any]:
    """Re-read firmware version and device id from the bootloader."""
    session = _get_session()
    try:
        session.get_firmware_version()
        session.get_device_id()
    except IspError as e:
        return {"error": str(e)}
    return session.state.to_dict()


# ─── CONFIG TOOLS ─────────────────────────────────────────────────────

@mcp.tool()
def read_config() -> dict[str, Any]:
    """Read and decode the five config bytes."""
    session = _get_session()
    try:
        config = session.read_config()
    except IspError as e:
        return {"error": str(e)}
    return config.to_dict()


@mcp.tool()
def set_config(changes: dict[str, int]) -> dict[str, Any]:
    """Change config bits, leaving all others untouched.

    Args:
        changes: Field values, e.g. {"rpd": 1, "cbov": 2}. See the
                 nvtisp://catalog/config-fields resource for names.
    """
    change = ConfigChange()
    try:
        for name, value in changes.items():
            change.set(name, value)
    except ValueError as e:
        return {"error": str(e)}
    if change.empty:
        return {"error": "No config changes given"}

    session = _get_session()
    try:
        written = session.write_config(change.desired, change.mask)
    except IspError as e:
        return {"error": str(e)}
    return {"written": written, "config": session.state.config_current.to_dict()}


# ─── FLASH TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def flash_aprom(file_path: str, run: bool = True) -> dict[str, Any]:
    """Program a raw binary image into APROM.

    Args:
        file_path: Path to the .bin file.
        run: Reboot into the new application when done.
    """
    session = _get_session()
    try:
        image = load_image(file_path)
        blocks = session.flash_aprom(image)
        if run:
            session.run_aprom()
    except IspError as e:
        return {"error": str(e)}

    if run:
        _close()
    return {"flashed": True, "bytes": len(image), "blocks": blocks, "running": run}


@mcp.tool()
def run_aprom() -> dict[str, Any]:
    """Leave ISP mode and boot the application in APROM."""
    session = _get_session()
    try:
        session.run_aprom()
    except IspError as e:
        return {"error": str(e)}
    _close()
    return {"running": "aprom"}


@mcp.tool()
def run_ldrom() -> dict[str, Any]:
    """Reboot into the LDROM bootloader."""
    session = _get_session()
    try:
        session.run_ldrom()
    except IspError as e:
        return {"error": str(e)}
    _close()
    return {"running": "ldrom"}


@mcp.tool()
def reset_device() -> dict[str, Any]:
    """Reset the device."""
    session = _get_session()
    try:
        session.reset()
    except IspError as e:
        return {"error": str(e)}
    _close()
    return {"reset": True}


# ─── RESOURCES ────────────────────────────────────────────────────────

@mcp.resource("nvtisp://device/info")
def resource_device_info() -> str:
    """Current device information as JSON."""
    if _session is None:
        return json.dumps({"connected": False})
    return json.dumps(_session.state.to_dict(), indent=2)


@mcp.resource("nvtisp://device/config")
def resource_device_config() -> str:
    """Last config bytes read from the device."""
    if _session is None or _session.state.config_current is None:
        return json.dumps({"error": "Config not read yet"})
    return json.dumps(_session.state.config_current.to_dict(), indent=2)


@mcp.resource("nvtisp://catalog/config-fields")
def resource_config_fields() -> str:
    """Names, positions and ranges of the config fields."""
    return json.dumps(
        {
            f.name: {
                "byte": f.byte,
                "bits": f"{f.shift + f.width - 1}:{f.shift}",
                "max": f.max_value,
                "description": f.description,
            }
            for f in CONFIG_FIELDS.values()
        },
        indent=2,
    )


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
