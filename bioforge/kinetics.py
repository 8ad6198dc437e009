"""
Biological kinetics model.

Per-tick organism growth, nutrient consumption and byproduct secretion.

TWO-PASS MEDIA CONTRACT:
Organisms read the shared media pool as it stood at tick start and write
only into an accumulated per-molecule delta map. Deltas (and any new
byproduct entries) are applied once, after every organism has been
processed, so the result does not depend on organism iteration order.
"""

import numpy as np
from collections import deque
from typing import Dict, Optional

from .data_types import Organism, TemperatureTolerance
from .state import SimulationState, LiveAsset, MaterialConsumed
from .errors import OrganismNotFoundError
from .constants import (
    KS_NUTRIENT,
    STRESS_FLOOR,
    TIME_STEP_HR,
    MOLAR_MASSES,
    CONSUMPTION_FALLBACK_MOLAR_MASS,
    SECRETION_FALLBACK_MOLAR_MASS,
)


def temperature_stress_factor(temperature: float, tolerance: TemperatureTolerance) -> float:
    """
    Growth stress factor from temperature.

    Outside [min, max] the factor is STRESS_FLOOR. Inside, it ramps linearly
    from STRESS_FLOOR at min up to 1.0 at the optimum, then back down to
    STRESS_FLOOR at max.

    Args:
        temperature: Current temperature (Celsius)
        tolerance: Organism temperature tolerance

    Returns:
        Factor in [STRESS_FLOOR, 1.0]
    """
    t_min = tolerance.range.min
    t_max = tolerance.range.max
    t_opt = tolerance.optimal.value

    if temperature < t_min or temperature > t_max:
        return STRESS_FLOOR

    span = 1.0 - STRESS_FLOOR
    if temperature <= t_opt:
        if t_opt == t_min:
            return 1.0
        return STRESS_FLOOR + span * (temperature - t_min) / (t_opt - t_min)

    if t_max == t_opt:
        return 1.0
    return 1.0 - span * (temperature - t_opt) / (t_max - t_opt)


def nutrient_limitation_factor(concentration: float, half_saturation: float = KS_NUTRIENT) -> float:
    """Monod saturation C / (Ks + C); 0 for an empty pool"""
    if concentration <= 0.0:
        return 0.0
    return concentration / (half_saturation + concentration)


def molar_mass(molecule_id: str, fallback: float) -> float:
    """Molar mass (g/mol) from the lookup table, or the fallback"""
    return MOLAR_MASSES.get(molecule_id, fallback)


def _primary_nutrient_concentration(state: SimulationState, organism: Organism) -> float:
    """Concentration of the organism's first-listed consumption molecule (0 if absent)"""
    consumption = organism.dynamic_parameters.metabolic_exchange.media_consumption
    if not consumption:
        return 0.0

    component = state.find_component(consumption[0].molecule_id)
    if component is None:
        return 0.0
    return component.concentration.value


def run_biological_tick(
    state: SimulationState,
    organism_defs: Dict[str, Organism],
    growth_multipliers: Dict[str, float],
    biomass_history: deque,
    asset: Optional[LiveAsset] = None,
    time_step_hr: float = TIME_STEP_HR
) -> float:
    """
    Advance every organism by one tick.

    Steps per organism:
    1. Stress factor from the asset temperature (organism optimum if no asset)
    2. Monod limitation on the primary carbon source
    3. Effective rate = base * stress * limitation * growth multiplier
    4. Exponential biomass update, floored at 0
    5. Consumption (capped at available grams), MaterialConsumed events
    6. Secretion scaled by stress, new byproducts queued for insertion

    Then the tick's total biomass is pushed onto biomass_history and all
    media deltas are applied, floored at 0.

    Args:
        state: Simulation state (mutated)
        organism_defs: organism_id -> Organism
        growth_multipliers: organism_id -> multiplier (missing ids use 1.0)
        biomass_history: Bounded deque of total biomass samples (mutated)
        asset: Live asset of the active method, if any
        time_step_hr: Tick duration in hours

    Returns:
        Total biomass after the update (g)

    Raises:
        OrganismNotFoundError: If a state organism has no definition
    """
    volume = state.media.volume.value
    media_deltas: Dict[str, float] = {}
    new_byproducts: Dict[str, str] = {}  # molecule_id -> molecule_name, insertion order kept
    total_biomass = 0.0

    for org_id, org_state in state.organisms.items():
        organism = organism_defs.get(org_id)
        if organism is None:
            raise OrganismNotFoundError(org_id)

        dynamic = organism.dynamic_parameters
        tolerance = dynamic.environmental_tolerances.temperature
        temperature = asset.temperature if asset is not None else tolerance.optimal.value

        stress = temperature_stress_factor(temperature, tolerance)
        limitation = nutrient_limitation_factor(_primary_nutrient_concentration(state, organism))
        multiplier = growth_multipliers.get(org_id, 1.0)

        # Exponential growth over the tick
        growth_rate = dynamic.growth_rate_per_hr * stress * limitation * multiplier
        biomass = org_state.biomass.value
        biomass += biomass * float(np.expm1(growth_rate * time_step_hr))
        biomass = max(0.0, biomass)
        org_state.biomass.value = biomass
        total_biomass += biomass

        # Consumption (reads pool at tick start)
        for consumption in dynamic.metabolic_exchange.media_consumption:
            nutrient = state.find_component(consumption.molecule_id)
            if nutrient is None or nutrient.concentration.value <= 0.0:
                continue

            mw = molar_mass(consumption.molecule_id, CONSUMPTION_FALLBACK_MOLAR_MASS)
            rate_g_per_gdw_hr = consumption.max_exchange_rate.value * mw / 1000.0 * multiplier
            max_consumption_g = rate_g_per_gdw_hr * biomass * time_step_hr
            available_g = nutrient.concentration.value * volume
            consumed_g = min(max_consumption_g, available_g)

            if consumed_g > 0.0:
                media_deltas[consumption.molecule_id] = media_deltas.get(consumption.molecule_id, 0.0) - consumed_g / volume
                state.events.append(MaterialConsumed(id=consumption.molecule_id, amount=consumed_g))

        # Secretion (scaled by stress, not by nutrient limitation)
        for secretion in dynamic.metabolic_exchange.media_secretion:
            mw = molar_mass(secretion.molecule_id, SECRETION_FALLBACK_MOLAR_MASS)
            rate_g_per_gdw_hr = secretion.max_exchange_rate.value * mw / 1000.0
            secreted_g = rate_g_per_gdw_hr * biomass * time_step_hr * stress

            if secreted_g > 0.0:
                media_deltas[secretion.molecule_id] = media_deltas.get(secretion.molecule_id, 0.0) + secreted_g / volume
                if state.find_component(secretion.molecule_id) is None:
                    new_byproducts.setdefault(secretion.molecule_id, secretion.molecule_name)

    biomass_history.append(total_biomass)

    for molecule_id, molecule_name in new_byproducts.items():
        state.ensure_component(molecule_id, molecule_name)

    for molecule_id, delta in media_deltas.items():
        component = state.find_component(molecule_id)
        if component is not None:
            component.concentration.value = max(0.0, component.concentration.value + delta)

    return total_biomass
