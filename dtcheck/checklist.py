"""The table of checks, their default levels, and running them over a tree."""

from __future__ import annotations

import sys
from typing import Any, Iterator, Optional

from dtcheck import buses, graph, providers, semantic, structural
from dtcheck.checkrun import Check, CheckFn
from dtcheck.providers import Provider
from dtcheck.tree import DtInfo

_PHANDLE_PROVIDERS = (
    ("clocks", "clocks", "#clock-cells", False),
    ("cooling_device", "cooling-device", "#cooling-cells", False),
    ("dmas", "dmas", "#dma-cells", False),
    ("hwlocks", "hwlocks", "#hwlock-cells", False),
    ("interrupts_extended", "interrupts-extended", "#interrupt-cells", False),
    ("io_channels", "io-channels", "#io-channel-cells", False),
    ("iommus", "iommus", "#iommu-cells", False),
    ("mboxes", "mboxes", "#mbox-cells", False),
    ("msi_parent", "msi-parent", "#msi-cells", True),
    ("mux_controls", "mux-controls", "#mux-control-cells", False),
    ("phys", "phys", "#phy-cells", False),
    ("power_domains", "power-domains", "#power-domain-cells", False),
    ("pwms", "pwms", "#pwm-cells", False),
    ("resets", "resets", "#reset-cells", False),
    ("sound_dai", "sound-dai", "#sound-dai-cells", False),
    ("thermal_sensors", "thermal-sensors", "#thermal-sensor-cells", False),
)

_TABLE_HEAD = (
    "duplicate_node_names", "duplicate_property_names",
    "node_name_chars", "node_name_format", "property_name_chars",
    "name_is_string", "name_properties", "node_name_vs_property_name",
    "duplicate_label",
    "explicit_phandles",
    "phandle_references", "path_references",
    "omit_unused_nodes",
    "address_cells_is_cell", "size_cells_is_cell",
    "device_type_is_string", "model_is_string", "status_is_string",
    "label_is_string",
    "compatible_is_string_list", "names_is_string_list",
    "property_name_chars_strict",
    "node_name_chars_strict",
    "addr_size_cells", "reg_format", "ranges_format", "dma_ranges_format",
    "unit_address_vs_reg",
    "unit_address_format",
    "pci_bridge", "pci_device_reg", "pci_device_bus_num",
    "simple_bus_bridge", "simple_bus_reg",
    "i2c_bus_bridge", "i2c_bus_reg",
    "spi_bus_bridge", "spi_bus_reg",
    "avoid_default_addr_size",
    "avoid_unnecessary_addr_size",
    "unique_unit_address",
    "unique_unit_address_if_enabled",
    "obsolete_chosen_interrupt_controller",
    "chosen_node_is_root", "chosen_node_bootargs", "chosen_node_stdout_path",
)

_TABLE_TAIL = (
    "deprecated_gpio_property",
    "gpios_property",
    "interrupts_property",
    "interrupt_provider",
    "interrupt_map",
    "alias_paths",
    "graph_nodes", "graph_child_address", "graph_port", "graph_endpoint",
    "always_fail",
)


class TreeErrorsFound(Exception):
    """Raised when enabled error checks fail and output is not forced."""


class CheckSuite:
    """A full, independent set of checks with their enable levels."""

    def __init__(self) -> None:
        self._checks: dict[str, Check] = {}
        self._define()
        order = list(_TABLE_HEAD)
        for prefix, *_ in _PHANDLE_PROVIDERS:
            order += [f"{prefix}_property", f"{prefix}_is_cell"]
        order += _TABLE_TAIL
        self._table = [self._checks[name] for name in order]

    def _add(
        self,
        name: str,
        fn: Optional[CheckFn],
        data: Any = None,
        *prereqs: str,
        warn: bool = False,
        error: bool = False,
    ) -> None:
        self._checks[name] = Check(
            name,
            fn,
            data,
            warn=warn,
            error=error,
            prereqs=[self._checks[p] for p in prereqs],
        )

    def _warning(self, name: str, fn: CheckFn, data: Any = None, *prereqs: str) -> None:
        self._add(name, fn, data, *prereqs, warn=True)

    def _error(self, name: str, fn: CheckFn, data: Any = None, *prereqs: str) -> None:
        self._add(name, fn, data, *prereqs, error=True)

    def _define(self) -> None:
        s, m, b, p, g = structural, semantic, buses, providers, graph

        self._add("always_fail", s.check_always_fail)
        self._error("duplicate_node_names", s.check_duplicate_node_names)
        self._error("duplicate_property_names", s.check_duplicate_property_names)
        self._error("node_name_chars", s.check_node_name_chars, s.NODECHARS)
        self._add(
            "node_name_chars_strict",
            s.check_node_name_chars_strict,
            s.PROPNODECHARSSTRICT,
        )
        self._error("node_name_format", s.check_node_name_format, None,
                    "node_name_chars")
        self._warning("node_name_vs_property_name",
                      s.check_node_name_vs_property_name, None, "node_name_chars")
        self._warning("unit_address_vs_reg", s.check_unit_address_vs_reg)
        self._error("property_name_chars", s.check_property_name_chars, s.PROPCHARS)
        self._add(
            "property_name_chars_strict",
            s.check_property_name_chars_strict,
            s.PROPNODECHARSSTRICT,
        )
        self._error("duplicate_label", s.check_duplicate_label_node)
        self._error("explicit_phandles", s.check_explicit_phandles)
        self._error("name_is_string", s.check_is_string, "name")
        self._error("name_properties", s.check_name_properties, None,
                    "name_is_string")
        self._error("phandle_references", s.fixup_phandle_references, None,
                    "duplicate_node_names", "explicit_phandles")
        self._error("path_references", s.fixup_path_references, None,
                    "duplicate_node_names")
        self._error("omit_unused_nodes", s.fixup_omit_unused_nodes, None,
                    "phandle_references", "path_references")

        self._warning("address_cells_is_cell", s.check_is_cell, "#address-cells")
        self._warning("size_cells_is_cell", s.check_is_cell, "#size-cells")
        self._warning("device_type_is_string", s.check_is_string, "device_type")
        self._warning("model_is_string", s.check_is_string, "model")
        self._warning("status_is_string", s.check_is_string, "status")
        self._warning("label_is_string", s.check_is_string, "label")
        self._warning("compatible_is_string_list", s.check_is_string_list,
                      "compatible")
        self._warning("names_is_string_list", m.check_names_is_string_list)
        self._warning("alias_paths", m.check_alias_paths)
        self._warning("addr_size_cells", m.fixup_addr_size_cells, None,
                      "address_cells_is_cell", "size_cells_is_cell")
        self._warning("reg_format", m.check_reg_format, None, "addr_size_cells")
        self._warning("ranges_format", m.check_ranges_format, "ranges",
                      "addr_size_cells")
        self._warning("dma_ranges_format", m.check_ranges_format, "dma-ranges",
                      "addr_size_cells")

        self._warning("pci_bridge", b.check_pci_bridge, None,
                      "device_type_is_string", "addr_size_cells")
        self._warning("pci_device_bus_num", b.check_pci_device_bus_num, None,
                      "reg_format", "pci_bridge")
        self._warning("pci_device_reg", b.check_pci_device_reg, None,
                      "reg_format", "pci_bridge")
        self._warning("simple_bus_bridge", b.check_simple_bus_bridge, None,
                      "addr_size_cells", "compatible_is_string_list")
        self._warning("simple_bus_reg", b.check_simple_bus_reg, None,
                      "reg_format", "simple_bus_bridge")
        self._warning("i2c_bus_bridge", b.check_i2c_bus_bridge, None,
                      "addr_size_cells")
        self._warning("i2c_bus_reg", b.check_i2c_bus_reg, None,
                      "reg_format", "i2c_bus_bridge")
        self._warning("spi_bus_bridge", b.check_spi_bus_bridge, None,
                      "addr_size_cells")
        self._warning("spi_bus_reg", b.check_spi_bus_reg, None,
                      "reg_format", "spi_bus_bridge")
        self._warning("unit_address_format", m.check_unit_address_format, None,
                      "node_name_format", "pci_bridge", "simple_bus_bridge")

        self._warning("avoid_default_addr_size", m.check_avoid_default_addr_size,
                      None, "addr_size_cells")
        self._warning("avoid_unnecessary_addr_size",
                      m.check_avoid_unnecessary_addr_size, None,
                      "avoid_default_addr_size")
        self._warning("unique_unit_address", m.check_unique_unit_address, None,
                      "avoid_default_addr_size")
        self._add("unique_unit_address_if_enabled",
                  m.check_unique_unit_address_if_enabled, None,
                  "avoid_default_addr_size")
        self._warning("obsolete_chosen_interrupt_controller",
                      m.check_obsolete_chosen_interrupt_controller)
        self._warning("chosen_node_is_root", m.check_chosen_node_is_root)
        self._warning("chosen_node_bootargs", m.check_chosen_node_bootargs)
        self._warning("chosen_node_stdout_path", m.check_chosen_node_stdout_path)

        for prefix, prop_name, cell_name, optional in _PHANDLE_PROVIDERS:
            self._warning(f"{prefix}_is_cell", s.check_is_cell, cell_name)
            self._warning(
                f"{prefix}_property",
                p.check_provider_cells_property,
                Provider(prop_name, cell_name, optional),
                f"{prefix}_is_cell",
                "phandle_references",
            )

        self._warning("gpios_property", p.check_gpios_property, None,
                      "phandle_references")
        self._add("deprecated_gpio_property", p.check_deprecated_gpio_property)
        self._warning("interrupt_provider", p.check_interrupt_provider, None,
                      "interrupts_extended_is_cell")
        self._warning("interrupt_map", p.check_interrupt_map, None,
                      "phandle_references", "addr_size_cells",
                      "interrupt_provider")
        # The reference check is carried as data here, not as a prerequisite.
        self._warning("interrupts_property", p.check_interrupts_property,
                      self._checks["phandle_references"])

        self._warning("graph_nodes", g.check_graph_nodes)
        self._warning("graph_port", g.check_graph_port, None, "graph_nodes")
        self._warning("graph_endpoint", g.check_graph_endpoint, None, "graph_nodes")
        self._warning("graph_child_address", g.check_graph_child_address, None,
                      "graph_nodes", "graph_port", "graph_endpoint")

    def __iter__(self) -> Iterator[Check]:
        return iter(self._table)

    def get(self, name: str) -> Check:
        """Return the check called ``name``; KeyError if there is none."""
        return self._checks[name]

    def names(self) -> list[str]:
        """Names of all checks, in the order they are run."""
        return [c.name for c in self._table]

    def _enable(self, c: Check, warn: bool, error: bool) -> None:
        # Raising a level raises it for prerequisites too.
        if (warn and not c.warn) or (error and not c.error):
            for prq in c.prereqs:
                self._enable(prq, warn, error)
        c.warn = c.warn or warn
        c.error = c.error or error

    def _disable(self, c: Check, warn: bool, error: bool) -> None:
        # Lowering a level lowers it for the checks that depend on this one.
        if (warn and c.warn) or (error and c.error):
            for cc in self._table:
                if any(prq is c for prq in cc.prereqs):
                    self._disable(cc, warn, error)
        c.warn = c.warn and not warn
        c.error = c.error and not error

    def parse_checks_option(self, warn: bool, error: bool, arg: str) -> None:
        """Apply a -W/-E style option: a check name, or "no-"/"no_" plus a name."""
        name = arg
        enable = True
        if arg.startswith(("no-", "no_")):
            name = arg[3:]
            enable = False

        c = self._checks.get(name)
        if c is None:
            raise ValueError(f'Unrecognized check name "{name}"')
        if enable:
            self._enable(c, warn, error)
        else:
            self._disable(c, warn, error)

    def process_checks(self, force: bool, dti: DtInfo) -> bool:
        """Run every enabled check; return True if errors were found.

        Raises TreeErrorsFound on errors unless ``force`` is set.
        """
        error = False
        for c in self._table:
            if c.warn or c.error:
                error = error or c.run(dti)

        if error:
            if not force:
                raise TreeErrorsFound(
                    "Input tree has errors, aborting (use -f to force output)"
                )
            if dti.quiet < 3:
                sys.stderr.write("Warning: Input tree has errors, output forced\n")
        return error