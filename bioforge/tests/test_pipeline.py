"""
Test the end-to-end valorization workflow on the sample knowledge base.

Verifies:
- Generated upstream rules (stop, throttle, feed, time limit)
- Every artifact is written to the output directory
- Requested amounts are reached and the report adds up
"""

import sys
from pathlib import Path

import pytest
import yaml

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from bioforge.pipeline import (
    build_upstream_rules, build_upstream_process, generate_qca_table, run_valorization
)
from bioforge.loader import load_knowledge_base, load_valorization_request
from bioforge.logger import read_log
from bioforge.data_types import (
    ProductAmount, MediaValue, TimeInStage, AdvanceToNextStep, SetOrganismGrowthMultiplier, AddMaterial,
    ValorizationRequest, TargetRequest, Objective
)
from bioforge.errors import ConfigError
from bioforge.constants import UPSTREAM_METHOD_ID, FEED_MOLECULE_ID, MAX_UPSTREAM_TICKS
from bioforge.tests.sim_factory import make_organism, DATA_ROOT, KB_ROOT

from scripts.run_valorization import main


def _two_target_request():
    return ValorizationRequest(targets=[
        TargetRequest("Lutein", Objective.MAXIMIZE_YIELD, "PROC-A", 0.5),
        TargetRequest("beta-glucans", Objective.MAXIMIZE_YIELD, "PROC-B", 50.0),
    ])


def test_upstream_rules():
    slow = make_organism("ORG-SLOW", growth_rate=0.05, terpenoids=[("Lutein", 4.0)])
    fast = make_organism("ORG-FAST", growth_rate=0.3, cell_wall=[("beta-glucans", 300.0)])

    rules = build_upstream_rules([fast, slow], _two_target_request())

    assert [r.name for r in rules] == [
        "rule_stop_on_Lutein",
        "rule_stop_ORG-FAST_growth",
        "rule_feed_sucrose",
        "rule_upstream_time_limit",
    ]
    assert rules[0].condition == ProductAmount(molecule_name="Lutein", target_grams=0.5)
    assert rules[0].action == AdvanceToNextStep()
    assert rules[1].action == SetOrganismGrowthMultiplier(organism_id="ORG-FAST", multiplier=0.0)
    assert isinstance(rules[2].condition, MediaValue) and rules[2].condition.molecule_id == FEED_MOLECULE_ID
    assert isinstance(rules[2].action, AddMaterial)
    assert rules[3].condition == TimeInStage(ticks=MAX_UPSTREAM_TICKS)

    process = build_upstream_process(rules)
    assert process.default_workflow == [UPSTREAM_METHOD_ID]
    assert process.methods[0].required_rule_ids == [r.name for r in rules]


def test_upstream_rules_need_a_producer():
    with pytest.raises(ConfigError):
        build_upstream_rules([make_organism()], _two_target_request())


def test_qca_table():
    kb = load_knowledge_base(KB_ROOT)
    table = generate_qca_table([kb.processes["PROC-LUTEIN-EXTRACTION"]])

    lines = table.strip().splitlines()
    assert lines[0] == "| Process Stage | QC Method ID | Timing |"
    assert "| Saponification | QC-HPLC-LUTEIN-01 | End of stage |" in lines
    assert "| Chromatography | *None* | N/A |" in lines


def test_run_valorization_end_to_end(tmp_path):
    print("=" * 60)
    print("Test: end-to-end valorization")
    print("=" * 60)

    kb = load_knowledge_base(KB_ROOT)
    request = load_valorization_request(DATA_ROOT / "request.yaml")

    report = run_valorization(request, kb, tmp_path, verbose=False)

    for name in ["initial_media.yaml", "upstream_consortium.csv", "qca_report.md",
                 "downstream_PROC-LUTEIN-EXTRACTION.csv", "downstream_PROC-BETAGLUCAN-PURIFICATION.csv",
                 "blueprint_PROC-LUTEIN-EXTRACTION.yaml", "blueprint_PROC-BETAGLUCAN-PURIFICATION.yaml"]:
        assert (tmp_path / name).exists(), f"Missing artifact {name}"

    assert report.produced_grams["Lutein"] >= 0.5
    assert report.produced_grams["beta-glucans"] >= 50.0
    assert report.process_ids == ["PROC-LUTEIN-EXTRACTION", "PROC-BETAGLUCAN-PURIFICATION"]

    upstream_rows = list(read_log(tmp_path / "upstream_consortium.csv"))
    upstream_ticks = upstream_rows[-1].tick
    assert 0 < upstream_ticks < MAX_UPSTREAM_TICKS
    # upstream rows + (6 + 4 + 1) + (3 + 1) downstream rows
    assert report.final_bom.total_ticks == len(upstream_rows) + 11 + 4

    assert report.final_bom.total_energy_kwh > 0.0
    assert report.cogs.total_cogs == pytest.approx(
        report.cogs.material_costs + report.cogs.labor_costs + report.cogs.energy_costs
        + report.cogs.asset_depreciation_costs + report.cogs.maintenance_costs
    )
    assert report.cogs.material_costs > 0.0
    assert report.lca.gwp_kg_co2e > 0.0

    with open(tmp_path / "blueprint_PROC-LUTEIN-EXTRACTION.yaml") as f:
        blueprint = yaml.safe_load(f)
    assert [step['duration_ticks'] for step in blueprint['workflow']] == [6, 4]

    print(f"[OK] Upstream ran {upstream_ticks} ticks, total COGS ${report.cogs.total_cogs:.2f}\n")


def test_script_reports_failure(tmp_path, capsys):
    bad_request = tmp_path / "request.yaml"
    bad_request.write_text(
        "targets:\n"
        "  - molecule_name: Lutein\n"
        "    objective: MaximizeYield\n"
        "    process_id: PROC-DOES-NOT-EXIST\n"
        "    target_amount_grams: 1.0\n"
    )

    exit_code = main([str(bad_request), str(KB_ROOT), str(tmp_path / "out")])

    assert exit_code == 1
    assert "[FAIL]" in capsys.readouterr().out
