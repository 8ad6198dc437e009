"""
Test BOM extraction from logs, COGS, LCA and blueprints.
"""

import sys
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from bioforge.analysis import (
    BillOfMaterials, bom_from_media_state, generate_bom, aggregate_boms,
    calculate_cogs, calculate_lca, generate_blueprint, labor_hours_for, resolve_material
)
from bioforge.builder import SimulationBuilder
from bioforge.logger import read_log
from bioforge.data_types import (
    Measurement, Asset, OperationalParameters, PowerModel, LaborRequirement,
    CostEntry, ImpactEntry, LifecycleStage, LifecycleStages, TechnoEconomicAndLcaProfile,
    Material, MaterialMetadata, Identifiers, LaborRole, LaborCostProfile, Rule, MediaValue,
    ComparisonOperator, AddMaterial
)
from bioforge.errors import ConfigError, MethodNotFoundError
from bioforge.tests.sim_factory import (
    make_organism, make_media, make_method, make_process, advance_after, NUTRIENT_ID
)


def _asset(asset_id="BIOREACTOR-01", capex=87600.0, lifespan=10.0, opex=876.0):
    return Asset(
        asset_id=asset_id,
        asset_type="BIOREACTOR",
        operational_parameters=OperationalParameters(
            power_model=PowerModel(
                operating_power=Measurement(value=2.0, unit="kW"),
                standby_power=Measurement(value=0.1, unit="kW")
            ),
            labor_requirements=[
                LaborRequirement("TASK-1", "Setup", "ROLE-TECH", Measurement(value=30.0, unit="min")),
                LaborRequirement("TASK-2", "Monitoring", "ROLE-TECH", Measurement(value=6.0, unit="min/hr_op")),
            ]
        ),
        techno_economic_and_lca_profile=TechnoEconomicAndLcaProfile(
            lifecycle_stages=LifecycleStages(
                manufacturing_and_acquisition=LifecycleStage(costs=[CostEntry("capex", capex)]),
                use_and_operation=LifecycleStage(impacts=[
                    ImpactEntry("gwp_per_year", 876.0, "kg CO2e/year"),
                    ImpactEntry("adp_fossil_per_year", 1752.0, "MJ/year"),
                ]),
                maintenance=LifecycleStage(costs=[CostEntry("opex_per_year", opex)])
            ),
            expected_lifespan=Measurement(value=lifespan, unit="years")
        )
    )


def _glucose_material():
    return Material(
        material_id="MAT-GLU",
        material_name="Glucose",
        material_class="Chemical",
        material_subtype="Carbohydrate",
        material_category="PurchasedRawMaterial",
        unit="kg",
        metadata=MaterialMetadata(process_role="CarbonSource", identifiers=Identifiers(chebi_id=NUTRIENT_ID)),
        techno_economic_and_lca_profile=TechnoEconomicAndLcaProfile(
            lifecycle_stages=LifecycleStages(
                manufacturing_and_acquisition=LifecycleStage(
                    costs=[CostEntry("purchase_price_per_kg", 0.6)],
                    impacts=[ImpactEntry("gwp", 0.001, "kg CO2e/g"), ImpactEntry("adp_fossil", 0.01, "MJ/g")]
                )
            )
        )
    )


def _run_logged(tmp_path, ticks=5):
    log_path = tmp_path / "run.csv"
    process = make_process([make_method("MTHD-1", [f"rule_advance_after_{ticks}"])])
    engine = (SimulationBuilder()
              .with_organisms([make_organism(initial_biomass=1.0)])
              .with_assets([_asset()])
              .with_rules([advance_after(ticks)])
              .with_process(process)
              .with_initial_media(make_media([(NUTRIENT_ID, "glucose", 20.0)], volume=10.0))
              .with_timeseries_logging_to_file(log_path)
              .with_verbose(False)
              .build())
    engine.run()
    return log_path, process, engine


def test_generate_bom_from_log(tmp_path):
    print("=" * 60)
    print("Test: BOM from log")
    print("=" * 60)

    log_path, process, engine = _run_logged(tmp_path)
    materials = {"MAT-GLU": _glucose_material()}

    bom = generate_bom(log_path, process, {"BIOREACTOR-01": _asset()}, materials)

    # INITIAL row counts as a tick but draws no power
    assert bom.total_ticks == 6
    assert bom.total_energy_kwh == pytest.approx(10.0)
    # 30 min once + 6 min per operating hour over 5 hours
    assert bom.labor_hours == {"ROLE-TECH": pytest.approx(1.0)}

    consumed_from_media = (20.0 - engine.state.find_component(NUTRIENT_ID).concentration.value) * 10.0
    assert set(bom.materials_consumed) == {"MAT-GLU"}
    assert bom.materials_consumed["MAT-GLU"] == pytest.approx(consumed_from_media)

    print(f"[OK] {bom.materials_consumed['MAT-GLU']:.4f} g glucose, {bom.total_energy_kwh} kWh\n")


def test_unknown_materials_are_ignored(tmp_path):
    log_path, process, _ = _run_logged(tmp_path)
    bom = generate_bom(log_path, process, {}, {})

    assert bom.materials_consumed == {}
    assert bom.total_energy_kwh == 0.0
    assert bom.labor_hours == {}


def test_material_added_is_not_in_log(tmp_path):
    """Feed additions happen after the snapshot and are cleared before the next one"""
    log_path = tmp_path / "feed.csv"
    feed = Rule(
        name="feed",
        condition=MediaValue(molecule_id=NUTRIENT_ID, operator=ComparisonOperator.LESS_THAN, value=1e6),
        action=AddMaterial(asset_id="BIOREACTOR-01", material_id=NUTRIENT_ID, amount_grams=5.0)
    )
    process = make_process([make_method("MTHD-1", ["feed", "rule_advance_after_3"])])
    (SimulationBuilder()
     .with_organisms([make_organism()])
     .with_rules([feed, advance_after(3)])
     .with_process(process)
     .with_initial_media(make_media([(NUTRIENT_ID, "glucose", 20.0)]))
     .with_timeseries_logging_to_file(log_path)
     .with_verbose(False)
     .build()
     .run())

    event_types = {type(e).__name__ for entry in read_log(log_path) for e in entry.events()}
    assert event_types == {"MaterialConsumed"}


def test_labor_units():
    def hours(value, unit, ticks=10, volume=100.0):
        return labor_hours_for(LaborRequirement("T", "task", "R", Measurement(value, unit)), ticks, volume)

    assert hours(30.0, "min") == 0.5
    assert hours(6.0, "min/hr_op") == pytest.approx(1.0)
    assert hours(12.0, "min/box") == pytest.approx(0.2)
    assert hours(6.0, "min/10L") == pytest.approx(1.0)
    assert hours(2.0, "h") == 2.0


def test_bom_from_media_state():
    bom = bom_from_media_state(make_media([(NUTRIENT_ID, "glucose", 20.0), ("CHEBI:132204", "ammonia", 2.0)],
                                          volume=500.0))
    assert bom.materials_consumed == {NUTRIENT_ID: 10000.0, "CHEBI:132204": 1000.0}
    assert bom.total_ticks == 0


def test_aggregate_boms():
    first = BillOfMaterials({"A": 1.0}, 2.0, {"R": 1.0}, 3)
    second = BillOfMaterials({"A": 2.0, "B": 5.0}, 3.0, {"R": 0.5, "S": 1.0}, 4)

    combined = aggregate_boms([first, second])

    assert combined.materials_consumed == {"A": 3.0, "B": 5.0}
    assert combined.total_energy_kwh == 5.0
    assert combined.labor_hours == {"R": 1.5, "S": 1.0}
    assert combined.total_ticks == 7


def test_resolve_material_by_chebi():
    materials = {"MAT-GLU": _glucose_material()}
    assert resolve_material("MAT-GLU", materials).material_id == "MAT-GLU"
    assert resolve_material(NUTRIENT_ID, materials).material_id == "MAT-GLU"
    assert resolve_material("CHEBI:0", materials) is None


def test_calculate_cogs():
    bom = BillOfMaterials(
        materials_consumed={"MAT-GLU": 2000.0},
        total_energy_kwh=10.0,
        labor_hours={"ROLE-TECH": 2.0, "ROLE-UNKNOWN": 5.0},
        total_ticks=876
    )
    roles = {"ROLE-TECH": LaborRole("ROLE-TECH", "Technician", LaborCostProfile(35.0))}

    cogs = calculate_cogs(bom, {"MAT-GLU": _glucose_material()}, roles, {"BIOREACTOR-01": _asset()})

    assert cogs.material_costs == pytest.approx(1.2)
    assert cogs.labor_costs == pytest.approx(70.0)
    assert cogs.energy_costs == pytest.approx(1.2)
    # 87600 / 10 years = 8760 per year = 1 USD per hour
    assert cogs.asset_depreciation_costs == pytest.approx(876.0)
    assert cogs.maintenance_costs == pytest.approx(87.6)
    assert cogs.total_cogs == pytest.approx(1.2 + 70.0 + 1.2 + 876.0 + 87.6)


def test_calculate_lca():
    bom = BillOfMaterials(materials_consumed={NUTRIENT_ID: 1000.0}, total_energy_kwh=10.0, total_ticks=8760)

    lca = calculate_lca(bom, {"MAT-GLU": _glucose_material()}, {"BIOREACTOR-01": _asset()})

    assert lca.gwp_kg_co2e == pytest.approx(1.0 + 876.0 + 4.0)
    assert lca.adp_fossil_mj == pytest.approx(10.0 + 1752.0 + 80.0)


class TestBlueprint:

    def test_steps_and_durations(self):
        rules = {r.name: r for r in [advance_after(6, "short"), advance_after(4, "long")]}
        method = make_method("MTHD-1", ["short"], technique="saponification")
        method.operating_parameters = {"temperature_c": 50}
        process = make_process([method, make_method("MTHD-2", ["long"])])

        blueprint = generate_blueprint(process, rules)

        assert blueprint.process_id == "PROC-TEST"
        assert [s.step for s in blueprint.workflow] == [1, 2]
        assert [s.duration_ticks for s in blueprint.workflow] == [6, 4]
        assert blueprint.workflow[0].technique == "saponification"
        assert blueprint.workflow[0].control_parameters == {"temperature_c": 50}

    def test_missing_duration_rule(self):
        with pytest.raises(ConfigError):
            generate_blueprint(make_process([make_method("MTHD-1", [])]), {})

    def test_missing_method(self):
        process = make_process([make_method("MTHD-1", ["short"])])
        process.default_workflow.append("MTHD-GHOST")
        with pytest.raises(MethodNotFoundError):
            generate_blueprint(process, {"short": advance_after(1, "short")})
