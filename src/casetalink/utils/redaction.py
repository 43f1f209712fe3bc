from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Redactor:
    enabled: bool = True
    _serial_map: dict[str, int] = field(default_factory=dict)
    _serial_counter: int = 0

    def redact_ip(self, ip: str) -> str:
        if not self.enabled:
            return ip
        parts = ip.split(".")
        if len(parts) == 4 and all(part.isdigit() for part in parts):
            return f"x.x.x.{parts[3]}"
        return ip

    def redact_serial(self, serial: str | None) -> str:
        """Keep the first two characters and number the rest consistently."""
        if serial is None:
            return ""
        if not self.enabled or len(serial) <= 2:
            return serial
        counter = self._serial_map.get(serial)
        if counter is None:
            self._serial_counter += 1
            counter = self._serial_counter
            self._serial_map[serial] = counter
        return f"{serial[:2]}xxxx{counter:02d}"
