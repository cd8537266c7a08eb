import pytest

from dtcheck.checklist import CheckSuite, TreeErrorsFound
from dtcheck.checkrun import CheckStatus
from dtcheck.data import Data
from dtcheck.tree import DtInfo, Node, Property


def _dti(root):
    dti = DtInfo(dt=root)
    dti.quiet = 0
    dti.outname = "-"
    return dti


def test_names_are_unique_and_start_with_table_head():
    suite = CheckSuite()
    names = suite.names()
    assert len(names) == len(set(names))
    assert names[0] == "duplicate_node_names"
    assert names[-1] == "always_fail"


def test_every_name_resolves():
    suite = CheckSuite()
    for name in suite.names():
        assert suite.get(name).name == name


def test_unknown_get_raises_key_error():
    with pytest.raises(KeyError):
        CheckSuite().get("no_such_check")


def test_default_levels():
    suite = CheckSuite()
    assert suite.get("duplicate_node_names").error is True
    assert suite.get("unit_address_vs_reg").warn is True
    assert suite.get("unit_address_vs_reg").error is False
    always = suite.get("always_fail")
    assert (always.warn, always.error) == (False, False)
    strict = suite.get("unique_unit_address_if_enabled")
    assert (strict.warn, strict.error) == (False, False)


def test_provider_check_data():
    suite = CheckSuite()
    provider = suite.get("msi_parent_property").data
    assert provider.prop_name == "msi-parent"
    assert provider.cell_name == "#msi-cells"
    assert provider.optional is True
    prereq_names = [c.name for c in suite.get("clocks_property").prereqs]
    assert prereq_names == ["clocks_is_cell", "phandle_references"]


def test_enable_error_raises_prerequisites():
    suite = CheckSuite()
    suite.parse_checks_option(False, True, "reg_format")
    assert suite.get("reg_format").error is True
    assert suite.get("addr_size_cells").error is True
    assert suite.get("address_cells_is_cell").error is True
    assert suite.get("size_cells_is_cell").error is True


def test_disable_lowers_dependents():
    suite = CheckSuite()
    suite.parse_checks_option(True, False, "no-addr_size_cells")
    assert suite.get("addr_size_cells").warn is False
    assert suite.get("reg_format").warn is False
    assert suite.get("pci_bridge").warn is False
    assert suite.get("pci_device_reg").warn is False
    assert suite.get("address_cells_is_cell").warn is True


def test_disable_with_underscore_prefix():
    suite = CheckSuite()
    suite.parse_checks_option(True, False, "no_alias_paths")
    assert suite.get("alias_paths").warn is False


def test_unknown_option_raises():
    with pytest.raises(ValueError, match="bogus"):
        CheckSuite().parse_checks_option(True, False, "bogus")


def test_suites_are_independent():
    first = CheckSuite()
    second = CheckSuite()
    first.parse_checks_option(False, True, "always_fail")
    assert first.get("always_fail").error is True
    assert second.get("always_fail").error is False


def test_clean_root_passes():
    suite = CheckSuite()
    dti = _dti(Node(name=""))
    assert suite.process_checks(False, dti) is False
    assert suite.get("duplicate_node_names").status is CheckStatus.PASSED


def test_failing_error_check_raises():
    suite = CheckSuite()
    suite.parse_checks_option(False, True, "always_fail")
    with pytest.raises(TreeErrorsFound):
        suite.process_checks(False, _dti(Node(name="")))
    assert suite.get("always_fail").status is CheckStatus.FAILED


def test_forced_output_reports_warning(capsys):
    suite = CheckSuite()
    suite.parse_checks_option(False, True, "always_fail")
    assert suite.process_checks(True, _dti(Node(name=""))) is True
    err = capsys.readouterr().err
    assert "Warning: Input tree has errors, output forced" in err


def test_quiet_suppresses_forced_warning(capsys):
    suite = CheckSuite()
    suite.parse_checks_option(False, True, "always_fail")
    dti = _dti(Node(name=""))
    dti.quiet = 3
    assert suite.process_checks(True, dti) is True
    assert "output forced" not in capsys.readouterr().err


def test_bad_property_name_is_an_error():
    root = Node(name="")
    root.add_property(Property(name="bad!", val=Data()))
    suite = CheckSuite()
    with pytest.raises(TreeErrorsFound):
        suite.process_checks(False, _dti(root))
    assert suite.get("property_name_chars").status is CheckStatus.FAILED


def test_disabled_error_check_does_not_abort():
    root = Node(name="")
    root.add_property(Property(name="bad!", val=Data()))
    suite = CheckSuite()
    suite.parse_checks_option(False, True, "no-property_name_chars")
    assert suite.process_checks(False, _dti(root)) is False
    assert suite.get("property_name_chars").status is CheckStatus.UNCHECKED