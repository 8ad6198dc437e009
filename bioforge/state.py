"""
Simulation state runtime representation.

The state is a single mutable aggregate owned by one SimulationEngine.
It is created by SimulationBuilder and mutated only by the engine's tick.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .data_types import Asset, DissolvedComponent, MediaState, Measurement


@dataclass
class MaterialConsumed:
    """A material consumed during the current tick (grams)"""
    TYPE = "material_consumed"
    id: str
    amount: float

    def to_dict(self) -> dict:
        return {'type': self.TYPE, 'id': self.id, 'amount': float(self.amount)}


@dataclass
class MaterialAdded:
    """A material added to the media during the current tick (grams)"""
    TYPE = "material_added"
    id: str
    amount: float

    def to_dict(self) -> dict:
        return {'type': self.TYPE, 'id': self.id, 'amount': float(self.amount)}


SimulationEvent = Union[MaterialConsumed, MaterialAdded]


def event_from_dict(data: dict) -> SimulationEvent:
    """
    Deserialize an event from its tagged dict form.

    Raises:
        ValueError: If the type tag is unknown
    """
    event_type = data.get('type')
    if event_type == MaterialConsumed.TYPE:
        return MaterialConsumed(id=data['id'], amount=data['amount'])
    elif event_type == MaterialAdded.TYPE:
        return MaterialAdded(id=data['id'], amount=data['amount'])
    raise ValueError(f"Unknown event type: {event_type!r}")


@dataclass
class LiveAsset:
    """
    Runtime asset in the simulation.

    Attributes:
        definition: Immutable asset reference data
        temperature: Current temperature set-point (Celsius)
        ph: Current pH set-point
    """
    definition: Asset
    temperature: float
    ph: float

    def to_dict(self) -> dict:
        return {'temperature': float(self.temperature), 'ph': float(self.ph)}


@dataclass
class IndividualOrganismState:
    """Per-organism mutable state"""
    biomass: Measurement  # g dry weight

    def to_dict(self) -> dict:
        return {'biomass': self.biomass.to_dict()}


@dataclass
class SimulationState:
    """
    Mutable snapshot of a running simulation.

    Attributes:
        tick: Ticks executed so far (0 before the first tick)
        ticks_in_current_stage: Ticks spent in the active stage, reset on advance
        assets: asset_id -> LiveAsset
        media: Shared media pool
        organisms: organism_id -> IndividualOrganismState (keys fixed at build)
        events: Occurrences of the current tick, cleared at tick start
    """
    media: MediaState
    assets: Dict[str, LiveAsset] = field(default_factory=dict)
    organisms: Dict[str, IndividualOrganismState] = field(default_factory=dict)
    events: List[SimulationEvent] = field(default_factory=list)
    tick: int = 0
    ticks_in_current_stage: int = 0

    def find_component(self, molecule_id: str) -> Optional[DissolvedComponent]:
        """Find a dissolved component by chemical id"""
        for component in self.media.composition.dissolved_components:
            if component.molecule_id == molecule_id:
                return component
        return None

    def ensure_component(self, molecule_id: str, molecule_name: str, unit: str = "g/L") -> DissolvedComponent:
        """
        Return the component with this id, inserting it at zero concentration if absent.

        Never creates a duplicate entry.
        """
        component = self.find_component(molecule_id)
        if component is None:
            component = DissolvedComponent(
                molecule_id=molecule_id,
                molecule_name=molecule_name,
                concentration=Measurement(value=0.0, unit=unit)
            )
            self.media.composition.dissolved_components.append(component)
        return component

    def total_biomass(self) -> float:
        return float(sum(org.biomass.value for org in self.organisms.values()))
