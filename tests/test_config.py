import attr
import pytest

import femtophi as fph


def test_defaults() -> None:
    config = fph.SelectionConfig()
    assert config.phi.pdg_code == 333
    assert config.phi.cut == 338
    child_codes = (config.child.pdg_code_pos, config.child.pdg_code_neg)
    assert child_codes == (321, 321), "Children should default to kaons."
    assert config.child.cut_pos == 150 and config.child.cut_neg == 149
    assert config.child.pid_nsigma_max == (4.0, 3.0)
    assert config.child.expected_type_pos is fph.ParticleType.PHI_CHILD
    assert not config.use_cut_bits, "Cut bits should be inert by default."
    assert not config.use_pid, "PID should be inert by default."
    assert config.use_max and not config.secondary_vertex


def test_immutable() -> None:
    config = fph.SelectionConfig()
    with pytest.raises(attr.exceptions.FrozenInstanceError):
        config.use_pid = True  # type: ignore


def test_dict_round_trip() -> None:
    config = fph.SelectionConfig.from_dict(
        {
            "phi": {"cut": 2, "temp_fit_var_bins": [100, 0.99, 1.05]},
            "child": {"pdg_code_neg": -321, "expected_type_neg": 6},
            "use_cut_bits": True,
        }
    )
    assert config.phi.temp_fit_var_bins == fph.AxisSpec(100, 0.99, 1.05)
    assert config.child.pdg_code_neg == -321
    rebuilt = fph.SelectionConfig.from_dict(config.to_dict())
    assert rebuilt == config, "Configuration round trip not invertible."


def test_unknown_keys() -> None:
    with pytest.raises(ValueError):
        fph.SelectionConfig.from_dict({"phy": {}})
    with pytest.raises(ValueError):
        fph.SelectionConfig.from_dict({"child": {"cutpos": 3}})


def test_axis_validation() -> None:
    with pytest.raises(ValueError):
        fph.AxisSpec(0, 0.0, 1.0)
    with pytest.raises(ValueError):
        fph.AxisSpec(10, 1.0, 0.5)
    with pytest.raises(ValueError):
        fph.AxisSpec.variable([0.0, 0.5, 0.4])
    variable = fph.AxisSpec.variable([0.0, 0.5, 2.0])
    assert variable.bins == 2 and variable.is_variable
    assert variable.axis("pt").size == 2


def test_species_index_validation() -> None:
    with pytest.raises(ValueError):
        fph.ChildConfig(pos_index=2, n_species=2)
