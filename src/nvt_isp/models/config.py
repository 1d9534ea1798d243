"""Configuration bytes of the N76E003 and the merge logic for updating them.

The device keeps five bytes of fuse-like settings (CONFIG0..CONFIG4).
They are handled as an opaque 5-byte value with explicit shift/mask
accessors, never as a host bit-field layout.

Layout (bit 0 is the least significant bit of each byte)::

    CONFIG0  | cbs | - | ocdpwm | ocden | - | rpd | lock | - |
    CONFIG1  |        reserved        |      ldsize      |
    CONFIG2  | cboden | - | cbov(2) | boiap | cborst | - - |
    CONFIG3  |               reserved                    |
    CONFIG4  |     wdten(4)      |       reserved        |
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

CONFIG_SIZE = 5

# (LDROM KB, APROM KB) indexed by the 3-bit LDSIZE field
LDSIZE_TABLE: tuple[tuple[int, int], ...] = (
    (4, 14), (4, 14), (4, 14), (4, 14),
    (3, 15), (2, 16), (1, 17), (0, 18),
)


@dataclass(frozen=True)
class ConfigField:
    """A named bit range inside the configuration bytes."""

    name: str
    byte: int
    shift: int
    width: int
    description: str

    @property
    def max_value(self) -> int:
        return (1 << self.width) - 1

    @property
    def mask(self) -> int:
        return self.max_value << self.shift


CONFIG_FIELDS: dict[str, ConfigField] = {
    f.name: f
    for f in (
        ConfigField("lock", 0, 1, 1, "Flash lock (0 = locked)"),
        ConfigField("rpd", 0, 2, 1, "P2.0 acts as external reset pin"),
        ConfigField("ocden", 0, 4, 1, "On-chip debugger (0 = enabled)"),
        ConfigField("ocdpwm", 0, 5, 1, "PWM outputs tri-stated on OCD halt"),
        ConfigField("cbs", 0, 7, 1, "Boot from APROM (1) or LDROM (0)"),
        ConfigField("ldsize", 1, 0, 3, "LDROM size select"),
        ConfigField("cborst", 2, 2, 1, "Brown-out reset enable"),
        ConfigField("boiap", 2, 3, 1, "Brown-out inhibits IAP"),
        ConfigField("cbov", 2, 4, 2, "Brown-out voltage select"),
        ConfigField("cboden", 2, 7, 1, "Brown-out detection enable"),
        ConfigField("wdten", 4, 4, 4, "Watchdog timer enable"),
    )
}


def _lookup(name: str) -> ConfigField:
    try:
        return CONFIG_FIELDS[name]
    except KeyError:
        raise ValueError(
            f"Unknown config field '{name}'. Valid: {list(CONFIG_FIELDS)}"
        ) from None


def _field_property(name: str) -> property:
    return property(
        lambda self: self.get(name),
        doc=CONFIG_FIELDS[name].description,
    )


@dataclass(frozen=True)
class ConfigBytes:
    """Immutable 5-byte device configuration."""

    raw: bytes = bytes(CONFIG_SIZE)

    def __post_init__(self) -> None:
        raw = bytes(self.raw)
        if len(raw) != CONFIG_SIZE:
            raise ValueError(
                f"Config must be {CONFIG_SIZE} bytes, got {len(raw)}"
            )
        object.__setattr__(self, "raw", raw)

    def __repr__(self) -> str:
        return f"ConfigBytes({self.raw.hex(' ')})"

    @classmethod
    def from_bytes(cls, data: bytes) -> ConfigBytes:
        """Take the configuration from the first five bytes of ``data``."""
        if len(data) < CONFIG_SIZE:
            raise ValueError(
                f"Need at least {CONFIG_SIZE} config bytes, got {len(data)}"
            )
        return cls(raw=bytes(data[:CONFIG_SIZE]))

    def to_bytes(self) -> bytes:
        return self.raw

    def get(self, name: str) -> int:
        f = _lookup(name)
        return (self.raw[f.byte] & f.mask) >> f.shift

    def with_field(self, name: str, value: int) -> ConfigBytes:
        """Return a copy with one field replaced."""
        f = _lookup(name)
        if not 0 <= value <= f.max_value:
            raise ValueError(
                f"Value for '{name}' must be 0-{f.max_value}, got {value}"
            )
        buf = bytearray(self.raw)
        buf[f.byte] = (buf[f.byte] & ~f.mask & 0xFF) | (value << f.shift)
        return ConfigBytes(raw=bytes(buf))

    lock = _field_property("lock")
    rpd = _field_property("rpd")
    ocden = _field_property("ocden")
    ocdpwm = _field_property("ocdpwm")
    cbs = _field_property("cbs")
    ldsize = _field_property("ldsize")
    cborst = _field_property("cborst")
    boiap = _field_property("boiap")
    cbov = _field_property("cbov")
    cboden = _field_property("cboden")
    wdten = _field_property("wdten")

    @property
    def ldrom_kb(self) -> int:
        return LDSIZE_TABLE[self.ldsize][0]

    @property
    def aprom_kb(self) -> int:
        return LDSIZE_TABLE[self.ldsize][1]

    @property
    def aprom_size(self) -> int:
        """APROM capacity in bytes."""
        return self.aprom_kb * 1024

    def to_dict(self) -> dict:
        d = {name: self.get(name) for name in CONFIG_FIELDS}
        d["ldrom_kb"] = self.ldrom_kb
        d["aprom_kb"] = self.aprom_kb
        d["raw_hex"] = self.raw.hex(" ")
        return d


def merge(current: ConfigBytes, desired: ConfigBytes, mask: ConfigBytes) -> ConfigBytes:
    """Combine configurations: bits inside ``mask`` come from ``desired``,
    all other bits keep their ``current`` value."""
    return ConfigBytes(raw=bytes(
        (c & ~m & 0xFF) | (d & m)
        for c, d, m in zip(current.raw, desired.raw, mask.raw)
    ))


def needs_write(current: ConfigBytes, updated: ConfigBytes) -> bool:
    """True if programming ``updated`` would change the device."""
    return current.raw != updated.raw


@dataclass
class ConfigChange:
    """A set of requested field changes, as desired bits plus a write mask."""

    desired: ConfigBytes = field(default_factory=ConfigBytes)
    mask: ConfigBytes = field(default_factory=ConfigBytes)

    @property
    def empty(self) -> bool:
        return not any(self.mask.raw)

    def set(self, name: str, value: int) -> None:
        f = _lookup(name)
        self.desired = self.desired.with_field(name, value)
        self.mask = self.mask.with_field(name, f.max_value)

    def apply(self, current: ConfigBytes) -> ConfigBytes:
        return merge(current, self.desired, self.mask)

    @classmethod
    def parse(cls, options: str | Iterable[str]) -> ConfigChange:
        """Parse ``name=value`` sub-options such as ``"rpd=1,cbs=0"``.

        Args:
            options: One comma separated string, or several of them.

        Raises:
            ValueError: On unknown names, missing or out-of-range values.
        """
        if isinstance(options, str):
            options = [options]
        change = cls()
        for group in options:
            for item in group.split(","):
                item = item.strip()
                if not item:
                    continue
                name, sep, value = item.partition("=")
                name = name.strip()
                if not sep or not value.strip():
                    raise ValueError(f"Missing config value for '{name}'")
                try:
                    number = int(value.strip(), 0)
                except ValueError:
                    raise ValueError(
                        f"Invalid config value '{value.strip()}' for '{name}'"
                    ) from None
                change.set(name, number)
        return change
