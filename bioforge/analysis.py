"""
Post-run analysis.

Turns time-series logs into a bill of materials (BOM) and prices it:
cost of goods sold (COGS), life cycle assessment (LCA) and an executable
blueprint of a process workflow.

Units:
- materials_consumed: grams, keyed by material id (or molecule id for
  BOMs derived directly from a media state)
- total_energy_kwh: one hour of operating power per logged tick
- labor_hours: hours, keyed by labor role id
"""

from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .data_types import Asset, Material, LaborRole, MediaState, Process, Rule, TimeInStage, LaborRequirement
from .logger import read_log
from .state import MaterialConsumed
from .errors import ConfigError, MethodNotFoundError
from .constants import COST_PER_KWH_USD, GWP_PER_KWH, ADP_FOSSIL_PER_KWH, HOURS_PER_YEAR


@dataclass
class BillOfMaterials:
    materials_consumed: Dict[str, float] = field(default_factory=dict)
    total_energy_kwh: float = 0.0
    labor_hours: Dict[str, float] = field(default_factory=dict)
    total_ticks: int = 0


@dataclass
class CogsResult:
    material_costs: float = 0.0
    labor_costs: float = 0.0
    energy_costs: float = 0.0
    asset_depreciation_costs: float = 0.0
    maintenance_costs: float = 0.0
    total_cogs: float = 0.0


@dataclass
class LcaResult:
    gwp_kg_co2e: float = 0.0
    adp_fossil_mj: float = 0.0


@dataclass
class BlueprintStep:
    step: int
    method_id: str
    technique: str
    asset_id: str
    duration_ticks: int
    control_parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutableBlueprint:
    process_id: str
    process_name: str
    workflow: List[BlueprintStep] = field(default_factory=list)


# ============================================================================
# Bill of materials
# ============================================================================

def resolve_material(key: str, materials: Dict[str, Material]) -> Optional[Material]:
    """Find a material by id, falling back to its ChEBI identifier"""
    material = materials.get(key)
    if material is not None:
        return material
    for candidate in materials.values():
        if candidate.chebi_id == key:
            return candidate
    return None


def bom_from_media_state(media: MediaState) -> BillOfMaterials:
    """BOM of the grams dissolved in a media state (keyed by molecule id)"""
    consumed = defaultdict(float)
    volume = media.volume.value
    for component in media.composition.dissolved_components:
        consumed[component.molecule_id] += component.concentration.value * volume
    return BillOfMaterials(materials_consumed=dict(consumed))


def labor_hours_for(requirement: LaborRequirement, ticks_in_stage: int, volume_l: float) -> float:
    """
    Hours of labor for one requirement over a stage.

    Duration units:
    - min: once per stage
    - min/hr_op: per operating hour (tick)
    - min/box: once per stage (one box handled)
    - min/10L: per 10 L of media
    - anything else: hours, once per stage
    """
    value = requirement.duration.value
    unit = requirement.duration.unit

    if unit == "min":
        return value / 60.0
    elif unit == "min/hr_op":
        return value / 60.0 * ticks_in_stage
    elif unit == "min/box":
        return value / 60.0
    elif unit == "min/10L":
        return value / 60.0 * volume_l / 10.0
    else:
        return value


def generate_bom(
    log_path: Union[str, Path],
    process: Process,
    assets: Dict[str, Asset],
    materials: Dict[str, Material]
) -> BillOfMaterials:
    """
    Build a BOM from a time-series log.

    Every logged row counts one tick (the INITIAL row included). Consumption
    events are attributed to a material by id or ChEBI identifier; events of
    unknown materials are ignored. Each row of a method stage adds one hour
    of its asset's operating power. Labor is counted once per stage from the
    asset's labor requirements.

    Raises:
        LogWriteError: If the log cannot be read
        SerializationError: If an events column is malformed
    """
    bom = BillOfMaterials()
    consumed = defaultdict(float)
    ticks_in_stage = defaultdict(int)
    last_volume = 0.0

    for entry in read_log(log_path):
        bom.total_ticks += 1
        ticks_in_stage[entry.stage_id] += 1
        last_volume = entry.media_volume_l

        for event in entry.events():
            if not isinstance(event, MaterialConsumed):
                continue
            material = resolve_material(event.id, materials)
            if material is not None:
                consumed[material.material_id] += event.amount

        method = process.find_method(entry.stage_id)
        if method is None:
            continue
        asset = assets.get(method.required_asset_id)
        if asset is None or asset.operational_parameters is None:
            continue
        power_model = asset.operational_parameters.power_model
        if power_model is not None:
            bom.total_energy_kwh += power_model.operating_power.value

    labor = defaultdict(float)
    for stage_id, ticks in ticks_in_stage.items():
        method = process.find_method(stage_id)
        if method is None:
            continue
        asset = assets.get(method.required_asset_id)
        if asset is None or asset.operational_parameters is None:
            continue
        for requirement in asset.operational_parameters.labor_requirements:
            labor[requirement.required_role_id] += labor_hours_for(requirement, ticks, last_volume)

    bom.materials_consumed = dict(consumed)
    bom.labor_hours = dict(labor)
    return bom


def aggregate_boms(boms: Iterable[BillOfMaterials]) -> BillOfMaterials:
    """Sum several BOMs into one"""
    combined = BillOfMaterials()
    consumed = defaultdict(float)
    labor = defaultdict(float)

    for bom in boms:
        combined.total_energy_kwh += bom.total_energy_kwh
        combined.total_ticks += bom.total_ticks
        for material_id, grams in bom.materials_consumed.items():
            consumed[material_id] += grams
        for role_id, hours in bom.labor_hours.items():
            labor[role_id] += hours

    combined.materials_consumed = dict(consumed)
    combined.labor_hours = dict(labor)
    return combined


# ============================================================================
# Costing and impact
# ============================================================================

def calculate_cogs(
    bom: BillOfMaterials,
    materials: Dict[str, Material],
    labor_roles: Dict[str, LaborRole],
    assets: Dict[str, Asset]
) -> CogsResult:
    """
    Cost of goods sold for a BOM.

    - Materials: grams / 1000 * first acquisition cost (USD per kg)
    - Labor: hours * role hourly rate
    - Energy: kWh * COST_PER_KWH_USD
    - Depreciation: capex / lifespan (years, default 1) per simulated hour
    - Maintenance: maintenance opex_per_year per simulated hour

    Depreciation and maintenance are charged for every asset in `assets`.
    """
    result = CogsResult()
    duration_hr = float(bom.total_ticks)

    for key, grams in bom.materials_consumed.items():
        material = resolve_material(key, materials)
        if material is None:
            continue
        costs = material.techno_economic_and_lca_profile.lifecycle_stages.manufacturing_and_acquisition.costs
        if costs:
            result.material_costs += grams / 1000.0 * costs[0].value_usd

    for role_id, hours in bom.labor_hours.items():
        role = labor_roles.get(role_id)
        if role is not None:
            result.labor_costs += hours * role.techno_economic_profile.cost_per_hour_usd

    for asset in assets.values():
        profile = asset.techno_economic_and_lca_profile
        if profile is None:
            continue
        lifespan_years = profile.expected_lifespan.value if profile.expected_lifespan else 1.0
        stages = profile.lifecycle_stages

        capex = stages.manufacturing_and_acquisition.find_cost("capex")
        if capex is not None and lifespan_years > 0:
            result.asset_depreciation_costs += capex.value_usd / lifespan_years / HOURS_PER_YEAR * duration_hr

        opex = stages.maintenance.find_cost("opex_per_year")
        if opex is not None:
            result.maintenance_costs += opex.value_usd / HOURS_PER_YEAR * duration_hr

    result.energy_costs = bom.total_energy_kwh * COST_PER_KWH_USD
    result.total_cogs = (
        result.material_costs
        + result.labor_costs
        + result.energy_costs
        + result.asset_depreciation_costs
        + result.maintenance_costs
    )
    return result


def calculate_lca(
    bom: BillOfMaterials,
    materials: Dict[str, Material],
    assets: Dict[str, Asset]
) -> LcaResult:
    """
    Global warming potential and fossil abiotic depletion for a BOM.

    Material impacts are per gram. Asset use-phase impacts are per year and
    charged per simulated hour. Energy adds GWP_PER_KWH and ADP_FOSSIL_PER_KWH.
    """
    result = LcaResult()
    duration_hr = float(bom.total_ticks)

    for key, grams in bom.materials_consumed.items():
        material = resolve_material(key, materials)
        if material is None:
            continue
        stage = material.techno_economic_and_lca_profile.lifecycle_stages.manufacturing_and_acquisition
        gwp = stage.find_impact("gwp")
        if gwp is not None:
            result.gwp_kg_co2e += grams * gwp.value
        adp = stage.find_impact("adp_fossil")
        if adp is not None:
            result.adp_fossil_mj += grams * adp.value

    for asset in assets.values():
        profile = asset.techno_economic_and_lca_profile
        if profile is None:
            continue
        use_phase = profile.lifecycle_stages.use_and_operation
        gwp = use_phase.find_impact("gwp_per_year")
        if gwp is not None:
            result.gwp_kg_co2e += gwp.value / HOURS_PER_YEAR * duration_hr
        adp = use_phase.find_impact("adp_fossil_per_year")
        if adp is not None:
            result.adp_fossil_mj += adp.value / HOURS_PER_YEAR * duration_hr

    result.gwp_kg_co2e += bom.total_energy_kwh * GWP_PER_KWH
    result.adp_fossil_mj += bom.total_energy_kwh * ADP_FOSSIL_PER_KWH
    return result


# ============================================================================
# Blueprint
# ============================================================================

def generate_blueprint(process: Process, rules: Dict[str, Rule]) -> ExecutableBlueprint:
    """
    Flatten a process workflow into executable steps.

    Each step's duration comes from the first TimeInStage rule attached to
    its method.

    Raises:
        MethodNotFoundError: If a workflow id has no method
        ConfigError: If a method has no TimeInStage rule
    """
    blueprint = ExecutableBlueprint(process_id=process.process_id, process_name=process.process_name)

    for index, method_id in enumerate(process.default_workflow):
        method = process.find_method(method_id)
        if method is None:
            raise MethodNotFoundError(method_id)

        duration_ticks = None
        for rule_id in method.required_rule_ids or []:
            rule = rules.get(rule_id)
            if rule is not None and isinstance(rule.condition, TimeInStage):
                duration_ticks = rule.condition.ticks
                break

        if duration_ticks is None:
            raise ConfigError(f"Could not find a duration rule for method '{method_id}'")

        blueprint.workflow.append(BlueprintStep(
            step=index + 1,
            method_id=method.method_id,
            technique=method.technique,
            asset_id=method.required_asset_id,
            duration_ticks=duration_ticks,
            control_parameters=dict(method.operating_parameters)
        ))

    return blueprint
