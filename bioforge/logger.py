"""
Time-series logger.

Writes one CSV row per tick. Nested state (organisms, media composition,
asset set-points, events) is stored as JSON inside the row. This file is
the only persisted artifact of a run and the input of analysis.py, so the
column names and JSON shapes below are a stable contract:

    tick                       int
    stage_id                   active method id, or "INITIAL"
    organisms_json             {org_id: {"biomass": {"value", "unit"}}}
    media_volume_l             float
    media_ph                   float
    dissolved_components_json  [{"id", "name", "concentration": {"value", "unit"}}]
    dissolved_gases_json       [{"id", "name", "concentration": {"value", "unit"}}]
    asset_states_json          {asset_id: {"temperature", "ph"}}
    events_json                [{"type": "material_consumed"|"material_added", "id", "amount"}]
"""

import csv
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Union

from .state import SimulationState, SimulationEvent, event_from_dict
from .errors import LogWriteError, SerializationError


LOG_COLUMNS = [
    'tick',
    'stage_id',
    'organisms_json',
    'media_volume_l',
    'media_ph',
    'dissolved_components_json',
    'dissolved_gases_json',
    'asset_states_json',
    'events_json',
]


def _dumps(value) -> str:
    try:
        return json.dumps(value, separators=(',', ':'))
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Failed to serialize log field: {e}")


def _loads(text: str, column: str):
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise SerializationError(f"Failed to parse JSON in column '{column}': {e}")


def state_to_record(state: SimulationState, stage_id: str) -> dict:
    """
    Flatten simulation state into one log record.

    Returns:
        Dict keyed by LOG_COLUMNS with JSON strings for nested fields
    """
    organisms = {org_id: org.to_dict() for org_id, org in state.organisms.items()}

    components = [
        {'id': c.molecule_id, 'name': c.molecule_name, 'concentration': c.concentration.to_dict()}
        for c in state.media.composition.dissolved_components
    ]
    gases = [
        {'id': g.gas_id, 'name': g.gas_name, 'concentration': g.concentration.to_dict()}
        for g in state.media.composition.dissolved_gases
    ]
    assets = {asset_id: asset.to_dict() for asset_id, asset in state.assets.items()}
    events = [event.to_dict() for event in state.events]

    return {
        'tick': int(state.tick),
        'stage_id': stage_id,
        'organisms_json': _dumps(organisms),
        'media_volume_l': float(state.media.volume.value),
        'media_ph': float(state.media.ph),
        'dissolved_components_json': _dumps(components),
        'dissolved_gases_json': _dumps(gases),
        'asset_states_json': _dumps(assets),
        'events_json': _dumps(events),
    }


class TimeSeriesLogger:
    """
    CSV time-series writer.

    The header is written on open; every log_state() call writes and
    flushes one row before returning.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        try:
            self._file = open(self.path, 'w', newline='')
            self._writer = csv.DictWriter(self._file, fieldnames=LOG_COLUMNS)
            self._writer.writeheader()
            self._file.flush()
        except OSError as e:
            raise LogWriteError(str(self.path), e)
        self.records_written = 0

    def log_state(self, state: SimulationState, stage_id: str):
        """
        Append one record for the current state.

        Raises:
            LogWriteError: On I/O failure
            SerializationError: If a nested field cannot be encoded
        """
        record = state_to_record(state, stage_id)
        try:
            self._writer.writerow(record)
            self._file.flush()
        except (OSError, ValueError) as e:
            raise LogWriteError(str(self.path), e)
        self.records_written += 1

    def close(self):
        if not self._file.closed:
            self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


# ============================================================================
# Reading
# ============================================================================

@dataclass
class LogEntry:
    """One parsed log row; JSON columns are kept as strings"""
    tick: int
    stage_id: str
    organisms_json: str
    media_volume_l: float
    media_ph: float
    dissolved_components_json: str
    dissolved_gases_json: str
    asset_states_json: str
    events_json: str

    def organisms(self) -> dict:
        return _loads(self.organisms_json, 'organisms_json')

    def dissolved_components(self) -> list:
        return _loads(self.dissolved_components_json, 'dissolved_components_json')

    def dissolved_gases(self) -> list:
        return _loads(self.dissolved_gases_json, 'dissolved_gases_json')

    def asset_states(self) -> dict:
        return _loads(self.asset_states_json, 'asset_states_json')

    def events(self) -> List[SimulationEvent]:
        try:
            return [event_from_dict(e) for e in _loads(self.events_json, 'events_json')]
        except (KeyError, ValueError) as e:
            raise SerializationError(f"Invalid event in events_json: {e}")


def read_log(path: Union[str, Path]) -> Iterator[LogEntry]:
    """
    Iterate over the records of a time-series log.

    Raises:
        LogWriteError: If the file cannot be read or a row is malformed
    """
    path = Path(path)
    try:
        with open(path, 'r', newline='') as f:
            reader = csv.DictReader(f)
            for row in reader:
                try:
                    yield LogEntry(
                        tick=int(row['tick']),
                        stage_id=row['stage_id'],
                        organisms_json=row['organisms_json'],
                        media_volume_l=float(row['media_volume_l']),
                        media_ph=float(row['media_ph']),
                        dissolved_components_json=row['dissolved_components_json'],
                        dissolved_gases_json=row['dissolved_gases_json'],
                        asset_states_json=row['asset_states_json'],
                        events_json=row['events_json'],
                    )
                except (KeyError, TypeError, ValueError) as e:
                    raise LogWriteError(str(path), e)
    except OSError as e:
        raise LogWriteError(str(path), e)
