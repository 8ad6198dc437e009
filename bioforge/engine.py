"""
Bioprocess simulation kernel.

The engine owns the simulation state for the lifetime of a run and advances
it one simulated hour per tick. Construct it with SimulationBuilder.
"""

from collections import deque
from typing import Dict, List, Optional

from .data_types import Process, Rule, Organism, MediaState, Command
from .state import SimulationState, LiveAsset, IndividualOrganismState
from .workflow import WorkflowStateMachine
from .kinetics import run_biological_tick
from .unit_operations import execute_unit_operation_tick
from .conditions import evaluate_rules
from .commands import execute_command
from .constants import BIOMASS_HISTORY_LENGTH, INITIAL_STAGE_ID


class SimulationEngine:
    """
    Deterministic tick-by-tick bioprocess simulation.

    TICK CONTRACT (in order, no interleaving):

    1. Clear events, increment tick and ticks_in_current_stage
    2. Biological kinetics (growth, consumption, secretion)
    3. Unit operation of the active method's technique
    4. Evaluate the active method's rules against post-kinetics state;
       queue the command of every rule that holds
    5. Log the snapshot (pre-command state)
    6. Execute queued commands (visible from the next tick)

    Stage advancement only happens through an AdvanceToNextStep command.
    """

    def __init__(
        self,
        state: SimulationState,
        process: Process,
        rules: Dict[str, Rule],
        organism_defs: Dict[str, Organism],
        logger=None,
        growth_multipliers: Optional[Dict[str, float]] = None,
        verbose: bool = True
    ):
        """
        Args:
            state: Initial simulation state (owned by the engine from now on)
            process: Process whose default_workflow drives the stages
            rules: rule name -> Rule
            organism_defs: organism_id -> Organism
            logger: Optional object with log_state(state, stage_id)
            growth_multipliers: Optional initial multipliers (1.0 for any missing organism)
            verbose: Print stage banners
        """
        self.state = state
        self.process = process
        self.rules = rules
        self.organism_defs = organism_defs
        self.logger = logger
        self.verbose = verbose

        self.workflow = WorkflowStateMachine(process)
        self.biomass_history: deque = deque(maxlen=BIOMASS_HISTORY_LENGTH)

        self.growth_multipliers: Dict[str, float] = {org_id: 1.0 for org_id in organism_defs}
        if growth_multipliers:
            self.growth_multipliers.update(growth_multipliers)

        # Commands executed by the most recent tick (for inspection)
        self.last_commands: List[Command] = []

    @property
    def current_step_index(self) -> int:
        return self.workflow.current_step_index

    @property
    def current_stage_id(self) -> Optional[str]:
        return self.workflow.current_method_id

    @property
    def is_complete(self) -> bool:
        return self.workflow.is_complete

    def run(self):
        """
        Log the INITIAL snapshot, then tick until the workflow completes.

        Raises:
            BioforgeError: On the first fatal error (the run is aborted)
        """
        if self.verbose and self.current_stage_id is not None:
            print(f"--- Entering stage: {self.current_stage_id} ---")

        try:
            if self.logger is not None:
                self.logger.log_state(self.state, INITIAL_STAGE_ID)

            while self.tick():
                pass
        finally:
            self.close()

        if self.verbose:
            print(f"Simulation Complete. ({self.state.tick} ticks)")

    def close(self):
        """Close the logger, if it has anything to close"""
        close = getattr(self.logger, 'close', None)
        if close is not None:
            close()

    def tick(self) -> bool:
        """
        Advance the simulation by one tick.

        Returns:
            False if the workflow was already complete (nothing done), True otherwise

        Raises:
            MethodNotFoundError: If the active workflow id has no method
            OrganismNotFoundError: If an organism has no definition
            LogWriteError / SerializationError: If the snapshot cannot be written
        """
        if self.workflow.is_complete:
            return False

        method = self.workflow.current_method()
        stage_id = method.method_id

        self.state.events.clear()
        self.state.tick += 1
        self.state.ticks_in_current_stage += 1

        asset = self._active_asset(method.required_asset_id)
        run_biological_tick(
            self.state,
            self.organism_defs,
            self.growth_multipliers,
            self.biomass_history,
            asset=asset
        )
        execute_unit_operation_tick(self.state, method)

        command_queue = evaluate_rules(
            method,
            self.rules,
            self.state,
            self.organism_defs,
            self.biomass_history
        )

        if self.logger is not None:
            self.logger.log_state(self.state, stage_id)

        for command in command_queue:
            execute_command(command, self.state, self.workflow, self.growth_multipliers, verbose=self.verbose)
        self.last_commands = command_queue

        return True

    def _active_asset(self, asset_id: str) -> Optional[LiveAsset]:
        return self.state.assets.get(asset_id)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_tick(self) -> int:
        return self.state.tick

    def get_assets(self) -> Dict[str, LiveAsset]:
        return self.state.assets

    def get_organism_states(self) -> Dict[str, IndividualOrganismState]:
        return self.state.organisms

    def get_media_state(self) -> MediaState:
        return self.state.media

    def get_process(self) -> Process:
        return self.process

    def get_growth_multipliers(self) -> Dict[str, float]:
        return dict(self.growth_multipliers)

    def get_biomass_history(self) -> List[float]:
        return list(self.biomass_history)

    def get_snapshot(self) -> dict:
        """
        Get complete simulation state snapshot.

        Returns:
            Dict with tick, stage and per-organism biomass
        """
        return {
            'tick': self.state.tick,
            'stage_id': self.current_stage_id,
            'ticks_in_current_stage': self.state.ticks_in_current_stage,
            'organisms': {org_id: org.biomass.value for org_id, org in self.state.organisms.items()},
            'growth_multipliers': self.get_growth_multipliers(),
        }
