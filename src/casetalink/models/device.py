"""Device models."""

from __future__ import annotations

from pydantic import BaseModel


class DeviceRecord(BaseModel):
    """A device reported by the bridge during enumeration."""

    href: str
    name: str
    serial_number: str | None = None
    device_type: str
    model_number: str = ""
    associated_area: str | None = None

    @property
    def is_controllable(self) -> bool:
        return self.associated_area is not None
