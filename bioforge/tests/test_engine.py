"""
Test the engine tick loop and the builder.

Verifies:
- Tick ordering (log before commands, events cleared per tick)
- Stage advancement only through rules
- Termination and fatal errors
- Builder validation and isolation of built engines
"""

import sys
import math
from pathlib import Path

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from bioforge.builder import SimulationBuilder
from bioforge.data_types import (
    Rule, MediaValue, ComparisonOperator, AddMaterial, SetOrganismGrowthMultiplier, SetTemperature,
    TimeInStage
)
from bioforge.state import MaterialConsumed
from bioforge import unit_operations
from bioforge.unit_operations import register_technique, registered_techniques, execute_unit_operation_tick
from bioforge.errors import (
    NoOrganismProvidedError, MediaNotDefinedError, ProcessNotDefinedError, MethodNotFoundError
)
from bioforge.constants import NAOH_MOLECULE_ID, NAOH_CONSUMABLE_ID, INITIAL_STAGE_ID
from bioforge.tests.sim_factory import (
    make_organism, make_media, make_asset, make_method, make_process, advance_after, NUTRIENT_ID
)


class RecordingLogger:
    """In-memory logger capturing (stage_id, tick, event count, biomass) per call"""

    def __init__(self):
        self.records = []
        self.closed = False

    def log_state(self, state, stage_id):
        self.records.append({
            'stage_id': stage_id,
            'tick': state.tick,
            'events': list(state.events),
            'biomass': state.total_biomass(),
            'temperature': {a_id: a.temperature for a_id, a in state.assets.items()},
        })

    def close(self):
        self.closed = True


def _builder(process, rules=(), organisms=None, media=None, logger=None):
    return (SimulationBuilder()
            .with_organisms(organisms or [make_organism()])
            .with_assets([make_asset()])
            .with_rules(list(rules))
            .with_process(process)
            .with_initial_media(media or make_media())
            .with_logger(logger)
            .with_verbose(False))


def test_run_logs_initial_and_every_tick():
    print("=" * 60)
    print("Test: run loop")
    print("=" * 60)

    logger = RecordingLogger()
    process = make_process([make_method("MTHD-1", ["rule_advance_after_3"])])
    engine = _builder(process, [advance_after(3)], logger=logger).build()

    engine.run()

    stages = [r['stage_id'] for r in logger.records]
    assert stages == [INITIAL_STAGE_ID, "MTHD-1", "MTHD-1", "MTHD-1"]
    assert [r['tick'] for r in logger.records] == [0, 1, 2, 3]
    assert engine.is_complete
    assert engine.get_tick() == 3
    assert logger.closed, "run() must close the logger"
    assert engine.tick() is False, "tick() after completion does nothing"

    print(f"[OK] {len(logger.records)} records, engine complete\n")


def test_two_stages_without_advance_rule_stay_in_stage_one():
    process = make_process([make_method("MTHD-1", []), make_method("MTHD-2", [])])
    engine = _builder(process).build()

    for _ in range(50):
        assert engine.tick()

    assert engine.current_stage_id == "MTHD-1"
    assert engine.current_step_index == 0
    assert engine.state.ticks_in_current_stage == 50


def test_multi_stage_progression():
    rules = [advance_after(2, "short"), advance_after(4, "long")]
    process = make_process([make_method("MTHD-1", ["short"]), make_method("MTHD-2", ["long"])])
    logger = RecordingLogger()
    engine = _builder(process, rules, logger=logger).build()

    engine.run()

    stages = [r['stage_id'] for r in logger.records[1:]]
    assert stages == ["MTHD-1"] * 2 + ["MTHD-2"] * 4
    assert engine.get_tick() == 6


def test_events_cleared_each_tick():
    logger = RecordingLogger()
    process = make_process([make_method("MTHD-1", ["rule_advance_after_5"])])
    engine = _builder(process, [advance_after(5)], logger=logger).build()

    engine.run()

    for record in logger.records[1:]:
        consumed = [e for e in record['events'] if isinstance(e, MaterialConsumed)]
        # One organism, one nutrient: exactly one event per tick
        assert len(consumed) == 1, f"tick {record['tick']} carries {len(consumed)} consumption events"


def test_commands_apply_after_logging():
    """A command's effect is first visible in the next tick's record"""
    logger = RecordingLogger()
    heat = Rule(name="heat", condition=TimeInStage(ticks=1),
                action=SetTemperature(asset_id="BIOREACTOR-01", celsius=37.0))
    process = make_process([make_method("MTHD-1", ["heat", "rule_advance_after_2"])])
    engine = _builder(process, [heat, advance_after(2)], logger=logger).build()

    engine.run()

    temperatures = [r['temperature']["BIOREACTOR-01"] for r in logger.records]
    assert temperatures == [25.0, 25.0, 37.0]


def test_multiple_triggers_in_one_tick():
    feed = Rule(
        name="feed",
        condition=MediaValue(molecule_id=NUTRIENT_ID, operator=ComparisonOperator.LESS_THAN, value=1e12),
        action=AddMaterial(asset_id="BIOREACTOR-01", material_id=NUTRIENT_ID, amount_grams=10.0)
    )
    throttle = Rule(
        name="throttle",
        condition=TimeInStage(ticks=1),
        action=SetOrganismGrowthMultiplier(organism_id="ORG-TEST", multiplier=0.25)
    )
    process = make_process([make_method("MTHD-1", ["feed", "throttle"])])
    engine = _builder(process, [feed, throttle]).build()

    assert engine.tick()

    assert [type(c).__name__ for c in engine.last_commands] == ["AddMaterial", "SetOrganismGrowthMultiplier"]
    assert engine.get_growth_multipliers()["ORG-TEST"] == 0.25


def test_growth_through_engine():
    """Engine growth at the organism's optimum matches the closed form"""
    process = make_process([make_method("MTHD-1", ["rule_advance_after_10"])])
    organism = make_organism(growth_rate=0.1, initial_biomass=0.1, t_opt=25.0)
    engine = _builder(process, [advance_after(10)], organisms=[organism]).build()

    engine.run()

    biomass = engine.get_organism_states()["ORG-TEST"].biomass.value
    assert biomass == pytest.approx(0.1 * math.exp(1.0), abs=1e-6)
    assert len(engine.get_biomass_history()) == 10


def test_unknown_method_is_fatal():
    process = make_process([make_method("MTHD-1")])
    engine = _builder(process).build()
    engine.workflow.process.default_workflow[0] = "MTHD-GHOST"

    with pytest.raises(MethodNotFoundError):
        engine.tick()


def test_saponification_unit_operation():
    media = make_media([(NUTRIENT_ID, "glucose", 1e9), (NAOH_MOLECULE_ID, "sodium hydroxide", 1.2)], volume=10.0)
    process = make_process([make_method("MTHD-SAPON", ["rule_advance_after_4"], technique="saponification")])
    logger = RecordingLogger()
    engine = _builder(process, [advance_after(4)], media=media, logger=logger).build()

    engine.run()

    assert engine.state.find_component(NAOH_MOLECULE_ID).concentration.value == 0.0
    naoh_events = [
        e for record in logger.records for e in record['events']
        if isinstance(e, MaterialConsumed) and e.id == NAOH_CONSUMABLE_ID
    ]
    # 0.5 + 0.5 + 0.2 g/L over 10 L, nothing left for tick 4
    assert [e.amount for e in naoh_events] == pytest.approx([5.0, 5.0, 2.0])


def test_custom_technique_registration(monkeypatch):
    monkeypatch.setattr(unit_operations, "_TECHNIQUES", dict(unit_operations._TECHNIQUES))
    calls = []

    @register_technique("test_counter")
    def counter(state, method):
        calls.append(state.tick)

    assert "test_counter" in registered_techniques()
    process = make_process([make_method("MTHD-1", ["rule_advance_after_3"], technique="test_counter")])
    engine = _builder(process, [advance_after(3)]).build()
    engine.run()

    assert calls == [1, 2, 3]
    assert execute_unit_operation_tick(engine.state, make_method("X", technique="no_such_technique")) is False


class TestBuilder:

    def test_requires_organisms(self):
        with pytest.raises(NoOrganismProvidedError):
            SimulationBuilder().with_initial_media(make_media()).with_process(make_process([])).build()

    def test_requires_media(self):
        with pytest.raises(MediaNotDefinedError):
            SimulationBuilder().with_organisms([make_organism()]).with_process(make_process([])).build()

    def test_requires_process(self):
        with pytest.raises(ProcessNotDefinedError):
            SimulationBuilder().with_organisms([make_organism()]).with_initial_media(make_media()).build()

    def test_unknown_workflow_method_fails_at_build(self, tmp_path):
        log_path = tmp_path / "run.csv"
        process = make_process([make_method("MTHD-1", ["rule_advance_after_3"])])
        process.default_workflow = ["MTHD-1", "MTHD-GHOST"]
        builder = (SimulationBuilder()
                   .with_organisms([make_organism()])
                   .with_process(process)
                   .with_rules([advance_after(3)])
                   .with_initial_media(make_media())
                   .with_timeseries_logging_to_file(log_path)
                   .with_verbose(False))

        with pytest.raises(MethodNotFoundError):
            builder.build()
        assert not log_path.exists()

    def test_default_set_points_and_multipliers(self):
        engine = _builder(make_process([make_method("MTHD-1")])).build()

        asset = engine.get_assets()["BIOREACTOR-01"]
        assert (asset.temperature, asset.ph) == (25.0, 7.0)
        assert engine.get_growth_multipliers() == {"ORG-TEST": 1.0}
        assert engine.current_stage_id == "MTHD-1"

    def test_engines_do_not_share_state(self):
        organism = make_organism()
        media = make_media()
        process = make_process([make_method("MTHD-1", [])])
        first = _builder(process, organisms=[organism], media=media).build()
        second = _builder(process, organisms=[organism], media=media).build()

        for _ in range(5):
            first.tick()

        assert second.get_organism_states()["ORG-TEST"].biomass.value == organism.initial_biomass.value
        assert organism.initial_biomass.value == 0.1
        assert media.composition.dissolved_components[0].concentration.value == 1e9

    def test_file_logging(self, tmp_path):
        log_path = tmp_path / "run.csv"
        engine = (SimulationBuilder()
                  .with_organisms([make_organism()])
                  .with_process(make_process([make_method("MTHD-1", ["rule_advance_after_2"])]))
                  .with_rules([advance_after(2)])
                  .with_initial_media(make_media())
                  .with_timeseries_logging_to_file(log_path)
                  .with_verbose(False)
                  .build())
        engine.run()

        lines = log_path.read_text().strip().splitlines()
        assert len(lines) == 4  # header + INITIAL + 2 ticks
