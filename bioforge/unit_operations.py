"""
Unit-operation models.

Technique-keyed per-tick physical/chemical transformations that run after
the biological tick, independent of organism biology. Handlers are looked
up by the active method's technique; unrecognized techniques are no-ops.

New techniques register with @register_technique("name") and never need
changes to the kinetics model or the engine.
"""

from typing import Callable, Dict

from .data_types import Method
from .state import SimulationState, MaterialConsumed
from .constants import NAOH_MOLECULE_ID, NAOH_CONSUMABLE_ID, SAPONIFICATION_NAOH_RATE


UnitOperation = Callable[[SimulationState, Method], None]

_TECHNIQUES: Dict[str, UnitOperation] = {}


def register_technique(technique: str):
    """Decorator registering a per-tick handler for a technique name"""
    def decorator(func: UnitOperation) -> UnitOperation:
        _TECHNIQUES[technique] = func
        return func
    return decorator


def registered_techniques() -> list:
    return sorted(_TECHNIQUES)


def execute_unit_operation_tick(state: SimulationState, method: Method) -> bool:
    """
    Run the unit operation for the method's technique, if one is registered.

    Returns:
        True if a handler ran, False for an unrecognized technique
    """
    handler = _TECHNIQUES.get(method.technique)
    if handler is None:
        return False
    handler(state, method)
    return True


@register_technique("saponification")
def saponification(state: SimulationState, method: Method):
    """Consume NaOH at a fixed rate, capped at what is dissolved"""
    naoh = state.find_component(NAOH_MOLECULE_ID)
    if naoh is None or naoh.concentration.value <= 0.0:
        return

    consumed_conc = min(SAPONIFICATION_NAOH_RATE, naoh.concentration.value)
    naoh.concentration.value -= consumed_conc

    consumed_g = consumed_conc * state.media.volume.value
    state.events.append(MaterialConsumed(id=NAOH_CONSUMABLE_ID, amount=consumed_g))
