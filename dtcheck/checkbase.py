"""The check framework: check objects, prerequisites, messages and helpers."""

from __future__ import annotations

import dataclasses
import enum
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, TextIO

from dtcheck.tree import DtInfo, Node, PhandleFormat, Property

_CELL_SIZE = 4


class CheckStatus(enum.Enum):
    """Progress of a single check."""

    UNCHECKED = 0
    PREREQ = 1
    PASSED = 2
    FAILED = 3


@dataclass
class CheckConfig:
    """Settings shared by all checks during one run."""

    quiet: int = 0
    generate_symbols: bool = False
    phandle_format: PhandleFormat = PhandleFormat.EPAPR
    stream: TextIO | None = None


CheckFn = Callable[["Check", DtInfo, Node], None]


@dataclass(eq=False)
class Check:
    """A named check run over every live node of a tree.

    ``prereqs`` holds the names of the checks that must pass first;
    :func:`resolve` links them to the check objects themselves.
    """

    name: str
    fn: CheckFn | None = None
    data: Any = None
    warn: bool = False
    error: bool = False
    prereqs: tuple[str, ...] = ()
    status: CheckStatus = field(default=CheckStatus.UNCHECKED, init=False)
    inprogress: bool = field(default=False, init=False)
    prerequisites: list["Check"] = field(default_factory=list, init=False, repr=False)
    config: CheckConfig = field(default_factory=CheckConfig, init=False, repr=False)

    def message(
        self, dti: DtInfo, node: Node | None, prop: Property | None, text: str
    ) -> str:
        """Format a diagnostic for this check, ending with a newline."""
        if prop is not None and prop.srcpos:
            pos = prop.srcpos
        elif node is not None and node.srcpos:
            pos = node.srcpos
        else:
            pos = None

        if pos is not None:
            where = str(pos)
        elif dti.outname == "-":
            where = "<stdout>"
        else:
            where = dti.outname

        kind = "ERROR" if self.error else "Warning"
        parts = [f"{where}: {kind} ({self.name}): "]
        if node is not None:
            if prop is not None:
                parts.append(f"{node.fullpath}:{prop.name}: ")
            else:
                parts.append(f"{node.fullpath}: ")
        parts.append(text)
        parts.append("\n")

        if prop is None and pos is not None and node is not None:
            extra = getattr(node.srcpos, "next", None)
            while extra is not None:
                parts.append(f"  also defined at {extra}\n")
                extra = getattr(extra, "next", None)
        return "".join(parts)

    def _report(
        self, dti: DtInfo, node: Node | None, prop: Property | None, text: str
    ) -> None:
        quiet = self.config.quiet
        if not (self.warn and quiet < 1) and not (self.error and quiet < 2):
            return
        stream = self.config.stream or sys.stderr
        stream.write(self.message(dti, node, prop, text))

    def fail(
        self,
        dti: DtInfo,
        node: Node | None,
        message: str,
        prop: Property | None = None,
    ) -> None:
        """Mark the check as failed and report the problem."""
        self.status = CheckStatus.FAILED
        self._report(dti, node, prop, message)

    def _walk(self, dti: DtInfo, node: Node) -> None:
        if self.fn is not None:
            self.fn(self, dti, node)
        for child in node.active_children():
            self._walk(dti, child)

    def run(self, dti: DtInfo, config: CheckConfig | None = None) -> bool:
        """Run the check and its prerequisites; True if an error was found."""
        if self.inprogress:
            raise RuntimeError(f"check {self.name!r} has a circular prerequisite")
        self.config = config or CheckConfig()
        error = False

        if self.status is CheckStatus.UNCHECKED:
            self.inprogress = True
            try:
                for prq in self.prerequisites:
                    error = error or prq.run(dti, self.config)
                    if prq.status is not CheckStatus.PASSED:
                        self.status = CheckStatus.PREREQ
                        self._report(
                            dti, None, None, f"Failed prerequisite '{prq.name}'"
                        )
                if self.status is CheckStatus.UNCHECKED:
                    self._walk(dti, dti.dt)
                    if self.status is CheckStatus.UNCHECKED:
                        self.status = CheckStatus.PASSED
            finally:
                self.inprogress = False

        if self.status is not CheckStatus.PASSED and self.error:
            error = True
        return error


def resolve(specs: Iterable[Check]) -> dict[str, Check]:
    """Copy check templates into fresh checks with prerequisites linked by name."""
    checks: dict[str, Check] = {}
    templates = list(specs)
    for spec in templates:
        if spec.name in checks:
            raise ValueError(f"duplicate check name {spec.name!r}")
        checks[spec.name] = dataclasses.replace(spec)
    for check in checks.values():
        try:
            check.prerequisites = [checks[name] for name in check.prereqs]
        except KeyError as exc:
            raise KeyError(
                f"check {check.name!r} has unknown prerequisite {exc.args[0]!r}"
            ) from None
    return checks


def check_is_string(check: Check, dti: DtInfo, node: Node) -> None:
    """Fail if the property named by ``check.data`` is not one string."""
    prop = node.get_property(check.data)
    if prop is None:
        return
    if not prop.val.is_one_string():
        check.fail(dti, node, "property is not a string", prop)


def check_is_string_list(check: Check, dti: DtInfo, node: Node) -> None:
    """Fail if the property named by ``check.data`` is not a list of strings."""
    prop = node.get_property(check.data)
    if prop is None:
        return
    val = prop.val.val
    if val and val[-1] != 0:
        check.fail(dti, node, "property is not a string list", prop)


def check_is_cell(check: Check, dti: DtInfo, node: Node) -> None:
    """Fail if the property named by ``check.data`` is not a single cell."""
    prop = node.get_property(check.data)
    if prop is None:
        return
    if len(prop.val) != _CELL_SIZE:
        check.fail(dti, node, "property is not a single cell", prop)