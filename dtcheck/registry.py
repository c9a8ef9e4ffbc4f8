"""The table of all checks, option handling and running them over a tree."""

from __future__ import annotations

import sys
from typing import Iterator

from dtcheck import providers, semantic, structural
from dtcheck.checkbase import Check, CheckConfig, resolve
from dtcheck.tree import DtInfo

_TABLE_ORDER = (
    "duplicate_node_names", "duplicate_property_names",
    "node_name_chars", "node_name_format", "property_name_chars",
    "name_is_string", "name_properties",
    "duplicate_label",
    "explicit_phandles",
    "phandle_references", "path_references",
    "omit_unused_nodes",
    "address_cells_is_cell", "size_cells_is_cell", "interrupt_cells_is_cell",
    "device_type_is_string", "model_is_string", "status_is_string",
    "label_is_string",
    "compatible_is_string_list", "names_is_string_list",
    "property_name_chars_strict",
    "node_name_chars_strict",
    "addr_size_cells", "reg_format", "ranges_format",
    "unit_address_vs_reg",
    "unit_address_format",
    "pci_bridge",
    "pci_device_reg",
    "pci_device_bus_num",
    "simple_bus_bridge",
    "simple_bus_reg",
    "i2c_bus_bridge",
    "i2c_bus_reg",
    "spi_bus_bridge",
    "spi_bus_reg",
    "avoid_default_addr_size",
    "avoid_unnecessary_addr_size",
    "unique_unit_address",
    "unique_unit_address_if_enabled",
    "obsolete_chosen_interrupt_controller",
    "chosen_node_is_root", "chosen_node_bootargs", "chosen_node_stdout_path",
    "clocks_property",
    "cooling_device_property",
    "dmas_property",
    "hwlocks_property",
    "interrupts_extended_property",
    "io_channels_property",
    "iommus_property",
    "mboxes_property",
    "msi_parent_property",
    "mux_controls_property",
    "phys_property",
    "power_domains_property",
    "pwms_property",
    "resets_property",
    "sound_dai_property",
    "thermal_sensors_property",
    "deprecated_gpio_property",
    "gpios_property",
    "interrupts_property",
    "alias_paths",
    "graph_nodes", "graph_child_address", "graph_port", "graph_endpoint",
    "always_fail",
)


class TreeErrors(Exception):
    """The tree has errors and output was not forced."""


class CheckRegistry:
    """A fresh set of all checks, in the order they are run."""

    def __init__(self) -> None:
        templates = {
            c.name: c for c in structural.CHECKS + semantic.CHECKS + providers.CHECKS
        }
        self._checks = resolve(templates[name] for name in _TABLE_ORDER)

    def __iter__(self) -> Iterator[Check]:
        return iter(self._checks.values())

    def __contains__(self, name: object) -> bool:
        return name in self._checks

    def get(self, name: str) -> Check:
        """Return the check with this name."""
        return self._checks[name]

    def _enable(self, check: Check, warn: bool, error: bool) -> None:
        # Raising a level raises it for the prerequisites too.
        if (warn and not check.warn) or (error and not check.error):
            for prq in check.prerequisites:
                self._enable(prq, warn, error)
        check.warn = check.warn or warn
        check.error = check.error or error

    def _disable(self, check: Check, warn: bool, error: bool) -> None:
        # Lowering a level lowers it for the checks that depend on this one.
        if (warn and check.warn) or (error and check.error):
            for other in self._checks.values():
                if any(prq is check for prq in other.prerequisites):
                    self._disable(other, warn, error)
        check.warn = check.warn and not warn
        check.error = check.error and not error

    def parse_option(self, warn: bool, error: bool, arg: str) -> None:
        """Enable a check, or disable it when prefixed with "no-" or "no_"."""
        name = arg
        enable = True
        if arg.startswith(("no-", "no_")):
            name = arg[3:]
            enable = False
        check = self._checks.get(name)
        if check is None:
            raise ValueError(f'Unrecognized check name "{name}"')
        if enable:
            self._enable(check, warn, error)
        else:
            self._disable(check, warn, error)

    def process(
        self, dti: DtInfo, force: bool = False, config: CheckConfig | None = None
    ) -> bool:
        """Run the enabled checks; True if errors were found and output forced."""
        config = config or CheckConfig()
        error = False
        for check in self._checks.values():
            if check.warn or check.error:
                error = error or check.run(dti, config)

        if error:
            if not force:
                raise TreeErrors(
                    "Input tree has errors, aborting (use -f to force output)"
                )
            if config.quiet < 3:
                stream = config.stream or sys.stderr
                stream.write("Warning: Input tree has errors, output forced\n")
        return error