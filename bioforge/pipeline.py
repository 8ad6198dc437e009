"""
End-to-end valorization workflow.

Chains organism selection, a generated upstream cultivation run, the
downstream process runs of every target and the aggregated BOM/COGS/LCA
report. All artifacts are written to one output directory:

    initial_media.yaml              generated starting medium
    upstream_consortium.csv         cultivation time series
    downstream_<process_id>.csv     one time series per downstream process
    blueprint_<process_id>.yaml     executable step list per downstream process
    qca_report.md                   QC checks per process stage
"""

from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml

from .data_types import (
    Organism, Process, Method, Rule, MediaState, KnowledgeBase, ValorizationRequest,
    ProductAmount, MediaValue, TimeInStage, ComparisonOperator,
    AdvanceToNextStep, SetOrganismGrowthMultiplier, AddMaterial
)
from .builder import SimulationBuilder
from .analysis import (
    BillOfMaterials, CogsResult, LcaResult,
    bom_from_media_state, generate_bom, aggregate_boms, calculate_cogs, calculate_lca,
    generate_blueprint, resolve_material
)
from .optimizer import (
    find_yield, select_optimal_organism_mix, generate_initial_media, select_downstream_processes
)
from .errors import ConfigError
from .constants import (
    UPSTREAM_METHOD_ID,
    UPSTREAM_PROCESS_ID,
    UPSTREAM_ASSET_ID,
    FEED_MOLECULE_ID,
    FEED_TRIGGER_CONCENTRATION,
    FEED_AMOUNT_G,
    MAX_UPSTREAM_TICKS,
)


@dataclass
class UpstreamOutput:
    biomass_produced: Dict[str, float]
    combined_bom: BillOfMaterials
    log_path: Path
    ticks: int


@dataclass
class ValorizationReport:
    final_bom: BillOfMaterials
    cogs: CogsResult
    lca: LcaResult
    produced_grams: Dict[str, float] = field(default_factory=dict)
    process_ids: List[str] = field(default_factory=list)
    qca_report_path: Optional[Path] = None


# ============================================================================
# Upstream
# ============================================================================

def producer_of(organisms: List[Organism], molecule_name: str) -> Optional[Organism]:
    """First organism in the list that yields the molecule"""
    return next((org for org in organisms if find_yield(org, molecule_name) is not None), None)


def build_upstream_rules(organisms: List[Organism], request: ValorizationRequest) -> List[Rule]:
    """
    Generate the control rules of the cultivation stage.

    - Stop: advance (and so end the run) once the target of the slowest
      growing producer is reached
    - Throttle: zero the growth multiplier of every other producer once its
      target is reached
    - Feed: add sucrose when it drops below FEED_TRIGGER_CONCENTRATION
    - Time limit: advance after MAX_UPSTREAM_TICKS

    Raises:
        ConfigError: If no selected organism produces a target
    """
    producers = []
    for target in request.targets:
        organism = producer_of(organisms, target.molecule_name)
        if organism is None:
            raise ConfigError(f"No selected organism produces '{target.molecule_name}'")
        producers.append((target, organism))

    slowest_target, slowest = min(
        producers, key=lambda pair: pair[1].dynamic_parameters.growth_rate_per_hr
    )

    rules = [Rule(
        name=f"rule_stop_on_{slowest_target.molecule_name}",
        condition=ProductAmount(
            molecule_name=slowest_target.molecule_name,
            target_grams=slowest_target.target_amount_grams
        ),
        action=AdvanceToNextStep()
    )]

    for target, organism in producers:
        if organism.organism_id == slowest.organism_id:
            continue
        rules.append(Rule(
            name=f"rule_stop_{organism.organism_id}_growth",
            condition=ProductAmount(molecule_name=target.molecule_name, target_grams=target.target_amount_grams),
            action=SetOrganismGrowthMultiplier(organism_id=organism.organism_id, multiplier=0.0)
        ))

    rules.append(Rule(
        name="rule_feed_sucrose",
        condition=MediaValue(
            molecule_id=FEED_MOLECULE_ID,
            operator=ComparisonOperator.LESS_THAN,
            value=FEED_TRIGGER_CONCENTRATION
        ),
        action=AddMaterial(asset_id=UPSTREAM_ASSET_ID, material_id=FEED_MOLECULE_ID, amount_grams=FEED_AMOUNT_G)
    ))

    rules.append(Rule(
        name="rule_upstream_time_limit",
        condition=TimeInStage(ticks=MAX_UPSTREAM_TICKS),
        action=AdvanceToNextStep()
    ))

    return rules


def build_upstream_process(rules: List[Rule]) -> Process:
    """Single-stage fed-batch cultivation process driven by `rules`"""
    method = Method(
        method_id=UPSTREAM_METHOD_ID,
        stage="Cultivation",
        technique="fed-batch",
        required_asset_id=UPSTREAM_ASSET_ID,
        required_rule_ids=[rule.name for rule in rules]
    )
    return Process(
        process_id=UPSTREAM_PROCESS_ID,
        process_name="Dynamic Upstream Cultivation",
        default_workflow=[method.method_id],
        methods=[method],
        component_class="Cultivation",
        status="Active",
        notes="A dynamically generated, single-stage cultivation process."
    )


def run_upstream_simulations(
    organisms: List[Organism],
    kb: KnowledgeBase,
    output_dir: Union[str, Path],
    initial_media: MediaState,
    request: ValorizationRequest,
    verbose: bool = True
) -> UpstreamOutput:
    """
    Cultivate the selected consortium in one generated fed-batch run.

    Returns:
        Final biomass per organism and the BOM of the run
    """
    if verbose:
        print("\n--- Starting upstream consortium simulation ---")

    log_path = Path(output_dir) / "upstream_consortium.csv"
    generated_rules = build_upstream_rules(organisms, request)
    process = build_upstream_process(generated_rules)

    rules = dict(kb.rules)
    for rule in generated_rules:
        rules[rule.name] = rule

    engine = (SimulationBuilder()
              .with_organisms(organisms)
              .with_assets(list(kb.assets.values()))
              .with_rules(list(rules.values()))
              .with_process(process)
              .with_initial_media(initial_media)
              .with_timeseries_logging_to_file(log_path)
              .with_verbose(verbose)
              .build())
    engine.run()

    biomass_produced = {org_id: org.biomass.value for org_id, org in engine.get_organism_states().items()}
    bom = generate_bom(log_path, engine.get_process(), kb.assets, kb.materials)

    return UpstreamOutput(
        biomass_produced=biomass_produced,
        combined_bom=bom,
        log_path=log_path,
        ticks=engine.get_tick()
    )


# ============================================================================
# Downstream and reporting
# ============================================================================

def generate_qca_table(processes: List[Process]) -> str:
    """Markdown table of QC checks per process stage"""
    lines = [
        "| Process Stage | QC Method ID | Timing |",
        "|---------------|--------------|----------|",
    ]
    for process in processes:
        for method in process.methods:
            if not method.qc_checks:
                lines.append(f"| {method.stage} | *None* | N/A |")
            for qc in method.qc_checks:
                lines.append(f"| {method.stage} | {qc.method_id} | {qc.timing} |")
    return "\n".join(lines) + "\n"


def produced_target_grams(
    request: ValorizationRequest,
    upstream_output: UpstreamOutput,
    organisms: List[Organism]
) -> Dict[str, float]:
    """Grams of each target held in the final upstream biomass of its producer"""
    produced = {}
    for target in request.targets:
        grams = 0.0
        organism = producer_of(organisms, target.molecule_name)
        if organism is not None:
            biomass = upstream_output.biomass_produced.get(organism.organism_id)
            if biomass is not None:
                grams = biomass * find_yield(organism, target.molecule_name) / 1000.0
        produced[target.molecule_name] = grams
    return produced


def write_blueprint(process: Process, rules: Dict[str, Rule], output_dir: Union[str, Path]) -> Optional[Path]:
    """Write blueprint_<process_id>.yaml; None if the process has an untimed step"""
    try:
        blueprint = generate_blueprint(process, rules)
    except ConfigError as e:
        print(f"[WARN] No blueprint for {process.process_id}: {e}")
        return None

    path = Path(output_dir) / f"blueprint_{process.process_id}.yaml"
    with open(path, 'w') as f:
        yaml.safe_dump(asdict(blueprint), f, sort_keys=False)
    return path


def print_summary_report(report: ValorizationReport, request: ValorizationRequest,
                         processes: List[Process], kb: KnowledgeBase):
    bom = report.final_bom
    cogs = report.cogs
    lca = report.lca

    print("\n\n--- Final Summary Report ---")
    print("=" * 40)
    print("Request & Production Summary:")
    for target in request.targets:
        produced = report.produced_grams.get(target.molecule_name, 0.0)
        print(f"  - Target: {target.molecule_name:<12} | Produced: {produced:>8.2f} g / "
              f"Requested: {target.target_amount_grams:>8.2f} g "
              f"({produced / target.target_amount_grams * 100.0:.1f}% of target)")

    print(f"\nProcesses Used: {', '.join(p.process_name for p in processes)}")
    print(f"Simulation Duration: {bom.total_ticks} hours")
    print("-" * 40)

    print("\nCombined Bill of Materials (BOM):")
    print(f"  - Energy Consumed: {bom.total_energy_kwh:.2f} kWh")
    print("  - Materials Consumed:")
    for key, grams in sorted(bom.materials_consumed.items()):
        material = resolve_material(key, kb.materials)
        name = material.material_name if material is not None else key
        print(f"    - {name}: {grams / 1000.0:.4f} kg")

    print("\nCombined Cost of Goods Sold (COGS):")
    print(f"  - Material Costs:           ${cogs.material_costs:.2f} USD")
    print(f"  - Labor Costs:              ${cogs.labor_costs:.2f} USD")
    print(f"  - Energy Costs:             ${cogs.energy_costs:.2f} USD")
    print(f"  - Asset Depreciation:       ${cogs.asset_depreciation_costs:.2f} USD")
    print(f"  - Maintenance Costs:        ${cogs.maintenance_costs:.2f} USD")
    print("  " + "-" * 38)
    print(f"  - Total COGS:               ${cogs.total_cogs:.2f} USD")

    print("\nCombined Life Cycle Assessment (LCA):")
    print(f"  - Global Warming Potential: {lca.gwp_kg_co2e:.2f} kg CO2e")
    print(f"  - Abiotic Depletion (fossil): {lca.adp_fossil_mj:.2f} MJ")
    print("=" * 40)


def run_downstream_and_report(
    processes: List[Process],
    upstream_output: UpstreamOutput,
    kb: KnowledgeBase,
    output_dir: Union[str, Path],
    request: ValorizationRequest,
    upstream_organisms: List[Organism],
    initial_bom: BillOfMaterials,
    verbose: bool = True
) -> ValorizationReport:
    """
    Run every downstream process, then aggregate and report.

    Downstream runs carry the first knowledge base organism as a placeholder
    culture in a freshly generated medium.

    Raises:
        ConfigError: If the knowledge base has no organisms
    """
    output_dir = Path(output_dir)
    if not kb.organisms:
        raise ConfigError("Downstream simulation needs at least one organism in the knowledge base")

    if verbose:
        print("\n--- Starting downstream simulations ---")

    boms = [initial_bom, upstream_output.combined_bom]
    placeholder = next(iter(kb.organisms.values()))

    for process in processes:
        if verbose:
            print(f"\nProcessing for: {process.process_name}")
        log_path = output_dir / f"downstream_{process.process_id}.csv"
        media = generate_initial_media([placeholder], verbose=verbose)

        engine = (SimulationBuilder()
                  .with_organisms([placeholder])
                  .with_assets(list(kb.assets.values()))
                  .with_rules(list(kb.rules.values()))
                  .with_process(process)
                  .with_initial_media(media)
                  .with_timeseries_logging_to_file(log_path)
                  .with_verbose(verbose)
                  .build())
        engine.run()

        boms.append(generate_bom(log_path, process, kb.assets, kb.materials))
        write_blueprint(process, kb.rules, output_dir)

    if verbose:
        print("\n--- Aggregating reports ---")
    final_bom = aggregate_boms(boms)

    qca_path = output_dir / "qca_report.md"
    qca_path.write_text(generate_qca_table(processes))

    report = ValorizationReport(
        final_bom=final_bom,
        cogs=calculate_cogs(final_bom, kb.materials, kb.labor_roles, kb.assets),
        lca=calculate_lca(final_bom, kb.materials, kb.assets),
        produced_grams=produced_target_grams(request, upstream_output, upstream_organisms),
        process_ids=[p.process_id for p in processes],
        qca_report_path=qca_path
    )

    if verbose:
        print_summary_report(report, request, processes, kb)
    return report


def run_valorization(
    request: ValorizationRequest,
    kb: KnowledgeBase,
    output_dir: Union[str, Path],
    verbose: bool = True
) -> ValorizationReport:
    """
    Full request-to-report workflow.

    Raises:
        BioforgeError: On the first failing step
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    organisms = select_optimal_organism_mix(request, kb, verbose=verbose)
    processes = select_downstream_processes(request, kb, verbose=verbose)

    initial_media = generate_initial_media(organisms, output_dir, verbose=verbose)
    initial_bom = bom_from_media_state(initial_media)

    upstream_output = run_upstream_simulations(
        organisms, kb, output_dir, initial_media, request, verbose=verbose
    )
    report = run_downstream_and_report(
        processes, upstream_output, kb, output_dir, request, organisms, initial_bom, verbose=verbose
    )

    if verbose:
        print(f"\n[OK] End-to-end workflow complete. Results are in '{output_dir}'")
    return report
