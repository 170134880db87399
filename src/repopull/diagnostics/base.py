"""Diagnostics interfaces."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DiagnosticSection:
    name: str
    ok: bool
    summary: str
    details: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DiagnosticReport:
    ok: bool
    sections: tuple[DiagnosticSection, ...] = ()

    @property
    def checks(self) -> tuple[str, ...]:
        return tuple(section.name for section in self.sections)
