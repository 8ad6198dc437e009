"""
Fluent builder for SimulationEngine.

The builder validates the required inputs, deep-copies every configuration
object it is given (so independent engines never share mutable data), and
creates the initial simulation state.
"""

import copy
from pathlib import Path
from typing import List, Optional, Union

from .data_types import Asset, Rule, Process, Organism, MediaState, Measurement
from .state import SimulationState, LiveAsset, IndividualOrganismState
from .engine import SimulationEngine
from .logger import TimeSeriesLogger
from .workflow import WorkflowStateMachine
from .errors import NoOrganismProvidedError, MediaNotDefinedError, ProcessNotDefinedError
from .constants import DEFAULT_ASSET_TEMPERATURE_C, DEFAULT_ASSET_PH


class SimulationBuilder:
    """
    Step-by-step configuration of a SimulationEngine.

    Example:
        engine = (SimulationBuilder()
                  .with_organisms([organism])
                  .with_assets(assets)
                  .with_rules(rules)
                  .with_process(process)
                  .with_initial_media(media)
                  .with_timeseries_logging_to_file("run.csv")
                  .build())
        engine.run()
    """

    def __init__(self):
        self._assets: List[Asset] = []
        self._rules: List[Rule] = []
        self._process: Optional[Process] = None
        self._organisms: List[Organism] = []
        self._initial_media: Optional[MediaState] = None
        self._log_path: Optional[Path] = None
        self._logger = None
        self._verbose: bool = True

    def with_assets(self, assets: List[Asset]) -> 'SimulationBuilder':
        self._assets = list(assets)
        return self

    def with_rules(self, rules: List[Rule]) -> 'SimulationBuilder':
        self._rules = list(rules)
        return self

    def with_process(self, process: Process) -> 'SimulationBuilder':
        self._process = process
        return self

    def with_organisms(self, organisms: List[Organism]) -> 'SimulationBuilder':
        self._organisms = list(organisms)
        return self

    def with_initial_media(self, media: MediaState) -> 'SimulationBuilder':
        self._initial_media = media
        return self

    def with_timeseries_logging_to_file(self, path: Union[str, Path]) -> 'SimulationBuilder':
        """Write the per-tick CSV log to `path` (opened at build time)"""
        self._log_path = Path(path)
        return self

    def with_logger(self, logger) -> 'SimulationBuilder':
        """Use any object exposing log_state(state, stage_id)"""
        self._logger = logger
        return self

    def with_verbose(self, verbose: bool) -> 'SimulationBuilder':
        self._verbose = verbose
        return self

    def build(self) -> SimulationEngine:
        """
        Create the engine.

        Raises:
            NoOrganismProvidedError: If no organisms were given
            MediaNotDefinedError: If no initial media was given
            ProcessNotDefinedError: If no process was given
            MethodNotFoundError: If the workflow names a method the process lacks
            LogWriteError: If the log file cannot be created
        """
        if not self._organisms:
            raise NoOrganismProvidedError()
        if self._initial_media is None:
            raise MediaNotDefinedError()
        if self._process is None:
            raise ProcessNotDefinedError()
        WorkflowStateMachine(self._process).validate()

        organisms = copy.deepcopy(self._organisms)
        organism_defs = {org.organism_id: org for org in organisms}

        assets = {}
        for asset_def in copy.deepcopy(self._assets):
            assets[asset_def.asset_id] = LiveAsset(
                definition=asset_def,
                temperature=DEFAULT_ASSET_TEMPERATURE_C,
                ph=DEFAULT_ASSET_PH
            )

        organism_states = {
            org.organism_id: IndividualOrganismState(
                biomass=Measurement(value=org.initial_biomass.value, unit=org.initial_biomass.unit)
            )
            for org in organisms
        }

        state = SimulationState(
            media=copy.deepcopy(self._initial_media),
            assets=assets,
            organisms=organism_states,
        )

        rules = {rule.name: rule for rule in copy.deepcopy(self._rules)}

        logger = self._logger
        if logger is None and self._log_path is not None:
            logger = TimeSeriesLogger(self._log_path)

        return SimulationEngine(
            state=state,
            process=copy.deepcopy(self._process),
            rules=rules,
            organism_defs=organism_defs,
            logger=logger,
            verbose=self._verbose
        )
