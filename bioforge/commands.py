"""
Command executor.

Applies a triggered command to simulation state. Commands run after the
tick's snapshot is logged, so their effects are first visible next tick.
Commands naming an unknown asset or media component are no-ops.
"""

from typing import Dict

from .data_types import (
    Command, AdvanceToNextStep, SetTemperature, AdjustPh, AddMaterial,
    SetOrganismGrowthMultiplier
)
from .state import SimulationState, MaterialAdded
from .workflow import WorkflowStateMachine


def execute_command(
    command: Command,
    state: SimulationState,
    workflow: WorkflowStateMachine,
    growth_multipliers: Dict[str, float],
    verbose: bool = True
):
    """
    Apply one command.

    Supported commands:
    - AdvanceToNextStep: advance the workflow, reset the stage tick counter
    - SetTemperature / AdjustPh: overwrite a live asset set-point
    - AddMaterial: raise an existing component by amount_grams / volume
      (silently dropped if the component is not in the media)
    - SetOrganismGrowthMultiplier: overwrite (or create) the multiplier

    Args:
        command: Command variant
        state: Simulation state (mutated)
        workflow: Workflow state machine (mutated on advance)
        growth_multipliers: organism_id -> multiplier (mutated)
        verbose: Print the stage banner on advance
    """
    if isinstance(command, AdvanceToNextStep):
        next_method_id = workflow.advance()
        state.ticks_in_current_stage = 0
        if verbose:
            if next_method_id is not None:
                print(f"--- Entering stage: {next_method_id} ---")
            else:
                print("--- Reached end of process workflow ---")

    elif isinstance(command, SetTemperature):
        asset = state.assets.get(command.asset_id)
        if asset is not None:
            asset.temperature = command.celsius

    elif isinstance(command, AdjustPh):
        asset = state.assets.get(command.asset_id)
        if asset is not None:
            asset.ph = command.target_ph

    elif isinstance(command, AddMaterial):
        # TODO: decide whether a missing component should be inserted at zero before adding
        component = state.find_component(command.material_id)
        if component is not None:
            component.concentration.value += command.amount_grams / state.media.volume.value
            state.events.append(MaterialAdded(id=command.material_id, amount=command.amount_grams))

    elif isinstance(command, SetOrganismGrowthMultiplier):
        growth_multipliers[command.organism_id] = command.multiplier
