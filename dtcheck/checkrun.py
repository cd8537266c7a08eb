"""Check objects: status tracking, prerequisites and diagnostics."""

from __future__ import annotations

import enum
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from dtcheck.tree import DtInfo, Node, Property

CheckFn = Callable[["Check", DtInfo, Node], None]


class CheckStatus(enum.Enum):
    """Outcome of running a check."""

    UNCHECKED = 0
    PREREQ = 1
    PASSED = 2
    FAILED = 3


def is_multiple_of(multiple: int, divisor: int) -> bool:
    """True if ``multiple`` is a multiple of ``divisor``; zero divides only zero."""
    if divisor == 0:
        return multiple == 0
    return multiple % divisor == 0


@dataclass(eq=False)
class Check:
    """A named test run over every node of a tree.

    ``warn`` and ``error`` set the level at which failures are reported;
    a check with neither is still run when another check needs it.
    """

    name: str
    fn: Optional[CheckFn] = None
    data: Any = None
    warn: bool = False
    error: bool = False
    prereqs: list[Check] = field(default_factory=list)
    status: CheckStatus = CheckStatus.UNCHECKED
    inprogress: bool = False
    messages: list[str] = field(default_factory=list, repr=False)

    def message(
        self,
        dti: DtInfo,
        node: Node | None,
        prop: Property | None,
        text: str,
    ) -> None:
        """Report ``text`` on standard error if the check's level is enabled."""
        if not (self.warn and dti.quiet < 1) and not (self.error and dti.quiet < 2):
            return

        pos = None
        if prop is not None and prop.srcpos:
            pos = prop.srcpos
        elif node is not None and node.srcpos:
            pos = node.srcpos[0]

        if pos:
            head = pos
        elif dti.outname == "-":
            head = "<stdout>"
        else:
            head = dti.outname

        level = "ERROR" if self.error else "Warning"
        parts = [f"{head}: {level} ({self.name}): "]
        if node is not None:
            if prop is not None:
                parts.append(f"{node.fullpath}:{prop.name}: ")
            else:
                parts.append(f"{node.fullpath}: ")
        parts.append(text)
        parts.append("\n")

        if prop is None and pos and node is not None:
            parts.extend(f"  also defined at {p}\n" for p in node.srcpos[1:])

        msg = "".join(parts)
        self.messages.append(msg)
        sys.stderr.write(msg)

    def fail(
        self,
        dti: DtInfo,
        node: Node | None,
        message: str,
        prop: Property | None = None,
    ) -> None:
        """Mark the check failed and report ``message``."""
        self.status = CheckStatus.FAILED
        self.message(dti, node, prop, message)

    def _visit(self, dti: DtInfo, node: Node) -> None:
        if self.fn is not None:
            self.fn(self, dti, node)
        for child in list(node.childlist):
            if not child.deleted:
                self._visit(dti, child)

    def run(self, dti: DtInfo) -> bool:
        """Run prerequisites then this check; return True if an error was found."""
        if self.inprogress:
            raise RuntimeError(
                f"circular prerequisite involving check '{self.name}'"
            )

        error = False
        if self.status is CheckStatus.UNCHECKED:
            self.inprogress = True
            try:
                for prq in self.prereqs:
                    error = error or prq.run(dti)
                    if prq.status is not CheckStatus.PASSED:
                        self.status = CheckStatus.PREREQ
                        self.message(
                            dti, None, None, f"Failed prerequisite '{prq.name}'"
                        )
                if self.status is CheckStatus.UNCHECKED:
                    self._visit(dti, dti.dt)
                    if self.status is CheckStatus.UNCHECKED:
                        self.status = CheckStatus.PASSED
            finally:
                self.inprogress = False

        if self.status is not CheckStatus.PASSED and self.error:
            error = True
        return error