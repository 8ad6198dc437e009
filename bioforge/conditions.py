"""
Rule and condition evaluation.

Evaluates the rules attached to the active method against post-kinetics
state and returns the commands of every rule whose condition holds.
Lookups that fail (unknown rule id, asset, molecule or parameter) make the
condition false instead of raising.
"""

from collections import deque
from typing import Dict, List, Optional, Union

from .data_types import (
    Method, Rule, Organism, Command, Condition, ComparisonOperator,
    TimeInStage, BiomassStationary, ProductAmount, MediaValue, AssetValue
)
from .state import SimulationState


def find_yield(organism: Organism, molecule_name: str) -> Optional[float]:
    """
    Yield of a molecule in mg per g dry weight.

    Terpenoids/carotenoids are searched before cell-wall components.

    Returns:
        Yield, or None if the organism does not produce the molecule
    """
    classes = organism.static_properties.targeted_molecular_classes
    for entry in classes.terpenoids_and_carotenoids:
        if entry.molecule == molecule_name:
            return entry.concentration_mg_g_dw
    for entry in classes.cell_wall_components:
        if entry.molecule == molecule_name:
            return entry.concentration_mg_g_dw
    return None


def compare(current: float, operator: Union[ComparisonOperator, str], value: float) -> bool:
    """Numeric comparison; equality is exact. Unknown operators compare false."""
    if not isinstance(operator, ComparisonOperator):
        try:
            operator = ComparisonOperator(operator)
        except ValueError:
            return False

    if operator == ComparisonOperator.LESS_THAN:
        return current < value
    elif operator == ComparisonOperator.GREATER_THAN:
        return current > value
    elif operator == ComparisonOperator.EQUAL_TO:
        return current == value
    elif operator == ComparisonOperator.NOT_EQUAL_TO:
        return current != value
    else:
        return False


def produced_grams(state: SimulationState, organism_defs: Dict[str, Organism], molecule_name: str) -> float:
    """
    Grams of a molecule held in biomass, summed over every producing organism.

    Organisms are not exclusive producers: two organisms yielding the same
    molecule both contribute.
    """
    total = 0.0
    for org_id, org_state in state.organisms.items():
        organism = organism_defs.get(org_id)
        if organism is None:
            continue
        yield_mg_g = find_yield(organism, molecule_name)
        if yield_mg_g is not None:
            total += org_state.biomass.value * yield_mg_g / 1000.0
    return total


def average_relative_growth(biomass_history: deque, window: int) -> Optional[float]:
    """
    Average relative growth per sample over the last `window` samples.

    Computed as (latest - reference) / reference / window, where reference is
    the sample window-1 positions before the latest.

    Returns:
        Rate, or None if there are fewer than `window` samples, window < 1,
        or the reference sample is zero
    """
    if window < 1 or len(biomass_history) < window:
        return None

    latest = biomass_history[-1]
    reference = biomass_history[-window]
    if reference == 0.0:
        return None

    return (latest - reference) / reference / window


def evaluate_condition(
    condition: Condition,
    state: SimulationState,
    organism_defs: Dict[str, Organism],
    biomass_history: deque
) -> bool:
    """
    Evaluate a single condition.

    Supported types:
    - TimeInStage: ticks_in_current_stage >= ticks
    - BiomassStationary: average relative growth below threshold
    - ProductAmount: produced grams >= target_grams
    - MediaValue: compare a component concentration
    - AssetValue: compare an asset's temperature or ph

    Args:
        condition: Condition variant
        state: Current (post-kinetics) state
        organism_defs: organism_id -> Organism
        biomass_history: Rolling total-biomass samples

    Returns:
        True if the condition holds, False otherwise
    """
    if isinstance(condition, TimeInStage):
        return state.ticks_in_current_stage >= condition.ticks

    elif isinstance(condition, BiomassStationary):
        rate = average_relative_growth(biomass_history, condition.window)
        if rate is None:
            return False
        return rate < condition.threshold

    elif isinstance(condition, ProductAmount):
        return produced_grams(state, organism_defs, condition.molecule_name) >= condition.target_grams

    elif isinstance(condition, MediaValue):
        component = state.find_component(condition.molecule_id)
        if component is None:
            return False
        return compare(component.concentration.value, condition.operator, condition.value)

    elif isinstance(condition, AssetValue):
        asset = state.assets.get(condition.asset_id)
        if asset is None:
            return False

        if condition.parameter == "temperature":
            current = asset.temperature
        elif condition.parameter == "ph":
            current = asset.ph
        else:
            return False

        return compare(current, condition.operator, condition.value)

    else:
        # Unknown condition type
        return False


def evaluate_rules(
    method: Method,
    rules: Dict[str, Rule],
    state: SimulationState,
    organism_defs: Dict[str, Organism],
    biomass_history: deque
) -> List[Command]:
    """
    Collect the commands of every attached rule whose condition holds.

    All triggered rules contribute (not just the first), in the order the
    method lists them. Rule ids missing from `rules` are skipped.
    """
    commands = []
    for rule_id in method.required_rule_ids or []:
        rule = rules.get(rule_id)
        if rule is None:
            continue
        if evaluate_condition(rule.condition, state, organism_defs, biomass_history):
            commands.append(rule.action)
    return commands
