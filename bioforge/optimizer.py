"""
Request-driven selection of organisms, media and downstream processes.

Given a valorization request (target molecules + objectives) and a loaded
knowledge base, picks a producing organism per target, sizes their
inocula relative to each other, formulates a starting medium and looks up
the downstream process of each target. The knowledge base is never
mutated: selected organisms are deep copies.
"""

import copy
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml

from .data_types import (
    Organism, Process, KnowledgeBase, ValorizationRequest, TargetRequest, Objective,
    Measurement, DissolvedComponent, DissolvedGas, MediaComposition, MediaState
)
from .conditions import find_yield
from .loader import media_state_to_dict
from .errors import ConfigError, ProcessNotDefinedError
from .constants import (
    DEFAULT_INOCULUM_G,
    MIN_INOCULUM_G,
    DEFAULT_MEDIA_VOLUME_L,
    DEFAULT_MEDIA_PH,
    DEFAULT_NUTRIENT_CONCENTRATION,
    BASE_MEDIA_COMPONENTS,
    BASE_MEDIA_GASES,
)


__all__ = [
    'find_yield',
    'best_producer',
    'required_biomass',
    'select_optimal_organism_mix',
    'generate_initial_media',
    'select_downstream_processes',
]


def best_producer(organisms: Dict[str, Organism], molecule_name: str) -> Optional[Organism]:
    """Organism with the highest yield of a molecule (first one wins a tie)"""
    best = None
    best_yield = None
    for organism in organisms.values():
        yield_mg_g = find_yield(organism, molecule_name)
        if yield_mg_g is None:
            continue
        if best_yield is None or yield_mg_g > best_yield:
            best = organism
            best_yield = yield_mg_g
    return best


def required_biomass(organism: Organism, target: TargetRequest) -> Optional[float]:
    """Grams of dry biomass needed to hold target_amount_grams of the target"""
    yield_mg_g = find_yield(organism, target.molecule_name)
    if yield_mg_g is None or yield_mg_g <= 0.0:
        return None
    return target.target_amount_grams / (yield_mg_g / 1000.0)


def select_optimal_organism_mix(request: ValorizationRequest, kb: KnowledgeBase,
                                verbose: bool = True) -> List[Organism]:
    """
    Select one producing organism per target and size their inocula.

    Every objective currently ranks by yield; MinimizeCost and MinimizeLca
    print a warning and fall back to MaximizeYield.

    Inoculum sizing: each organism's required biomass is computed from the
    first request target it produces; the largest requirement gets
    DEFAULT_INOCULUM_G and the others are scaled proportionally (never below
    MIN_INOCULUM_G).

    Returns:
        Deep copies of the selected organisms, in target order

    Raises:
        ConfigError: If no organism produces a target molecule
    """
    if verbose:
        print("\n--- Running upstream organism selection ---")

    selected: Dict[str, Organism] = OrderedDict()
    for target in request.targets:
        if verbose:
            print(f"Optimizing for target: {target.molecule_name}")
        if target.objective != Objective.MAXIMIZE_YIELD and verbose:
            print(f"[WARN] {target.objective.value} not yet implemented, using MaximizeYield")

        organism = best_producer(kb.organisms, target.molecule_name)
        if organism is None:
            raise ConfigError(f"No organism in the knowledge base produces '{target.molecule_name}'")

        if organism.organism_id not in selected:
            selected[organism.organism_id] = copy.deepcopy(organism)

    requirements: Dict[str, float] = {}
    for org_id, organism in selected.items():
        target = next((t for t in request.targets if find_yield(organism, t.molecule_name) is not None), None)
        if target is None:
            continue
        required = required_biomass(organism, target)
        if required is not None:
            requirements[org_id] = required

    max_required = max(requirements.values(), default=0.0)
    if max_required > 0.0:
        for org_id, required in requirements.items():
            organism = selected[org_id]
            scaled = max(required / max_required * DEFAULT_INOCULUM_G, MIN_INOCULUM_G)
            if verbose:
                print(f"Adjusting initial biomass for {org_id} from {organism.initial_biomass.value}g "
                      f"to {scaled:.4f}g (target: {required:.2f}g)")
            organism.initial_biomass.value = scaled

    if verbose:
        print(f"[OK] Selected organisms: {list(selected)}")
    return list(selected.values())


def generate_initial_media(organisms: List[Organism], output_dir: Optional[Union[str, Path]] = None,
                           verbose: bool = True) -> MediaState:
    """
    Formulate a starting medium for a set of organisms.

    Base components (ammonia) plus every consumed nutrient at
    DEFAULT_NUTRIENT_CONCENTRATION, in DEFAULT_MEDIA_VOLUME_L at
    DEFAULT_MEDIA_PH, with dissolved oxygen.

    Args:
        organisms: Organisms to feed
        output_dir: If given, the media is also written to initial_media.yaml there

    Returns:
        New MediaState
    """
    components: Dict[str, DissolvedComponent] = OrderedDict()
    for base in BASE_MEDIA_COMPONENTS:
        components[base["molecule_id"]] = DissolvedComponent(
            molecule_id=base["molecule_id"],
            molecule_name=base["molecule_name"],
            concentration=Measurement(value=base["concentration"], unit="g/L")
        )

    for organism in organisms:
        for consumption in organism.dynamic_parameters.metabolic_exchange.media_consumption:
            if consumption.molecule_id in components:
                continue
            if verbose:
                print(f"Adding required nutrient: {consumption.molecule_name}")
            components[consumption.molecule_id] = DissolvedComponent(
                molecule_id=consumption.molecule_id,
                molecule_name=consumption.molecule_name,
                concentration=Measurement(value=DEFAULT_NUTRIENT_CONCENTRATION, unit="g/L")
            )

    gases = [
        DissolvedGas(
            gas_id=base["gas_id"],
            gas_name=base["gas_name"],
            concentration=Measurement(value=base["concentration"], unit="g/L")
        )
        for base in BASE_MEDIA_GASES
    ]

    media = MediaState(
        volume=Measurement(value=DEFAULT_MEDIA_VOLUME_L, unit="L"),
        ph=DEFAULT_MEDIA_PH,
        composition=MediaComposition(dissolved_components=list(components.values()), dissolved_gases=gases)
    )

    if output_dir is not None:
        media_path = Path(output_dir) / "initial_media.yaml"
        with open(media_path, 'w') as f:
            yaml.safe_dump(media_state_to_dict(media), f, sort_keys=False)

    return media


def select_downstream_processes(request: ValorizationRequest, kb: KnowledgeBase,
                                verbose: bool = True) -> List[Process]:
    """
    Look up the downstream process named by each target.

    Raises:
        ProcessNotDefinedError: If a target's process_id is not in the knowledge base
    """
    selected = []
    for target in request.targets:
        process = kb.processes.get(target.process_id)
        if process is None:
            raise ProcessNotDefinedError(target.process_id)
        selected.append(process)
        if verbose:
            print(f"Selected process '{process.process_id}' for target '{target.molecule_name}'")
    return selected
