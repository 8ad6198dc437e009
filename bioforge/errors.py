"""
Exception hierarchy for the bioforge engine.

Structural and configuration errors are fatal: they propagate out of
tick()/run() and abort the run. Soft lookups (unknown rule, asset or
molecule) never raise.
"""


class BioforgeError(Exception):
    """Base class for all bioforge errors"""
    pass


class AssetNotFoundError(BioforgeError):
    """Raised when an asset id is not present in simulation state"""

    def __init__(self, asset_id: str):
        super().__init__(f"Asset '{asset_id}' not found in simulation state")
        self.asset_id = asset_id


class OrganismNotFoundError(BioforgeError):
    """Raised when an organism definition is missing"""

    def __init__(self, organism_id: str):
        super().__init__(f"Organism definition for '{organism_id}' not found")
        self.organism_id = organism_id


class ProcessNotDefinedError(BioforgeError):
    """Raised when the builder has no process, or a process id is unknown"""

    def __init__(self, process_id: str = None):
        if process_id is None:
            message = "Process definition is missing"
        else:
            message = f"Process '{process_id}' is not defined"
        super().__init__(message)
        self.process_id = process_id


class MediaNotDefinedError(BioforgeError):
    """Raised when the builder has no initial media state"""

    def __init__(self):
        super().__init__("Initial media state is missing")


class NoOrganismProvidedError(BioforgeError):
    """Raised when the builder has an empty organism list"""

    def __init__(self):
        super().__init__("At least one organism must be provided for the simulation")


class MethodNotFoundError(BioforgeError):
    """Raised when a workflow references a method id the process does not define"""

    def __init__(self, method_id: str):
        super().__init__(f"Could not find method '{method_id}' in process definition")
        self.method_id = method_id


class ConfigError(BioforgeError):
    """Raised for invalid or incomplete configuration"""
    pass


class LogWriteError(BioforgeError):
    """Raised when the time-series log cannot be opened, written or read"""

    def __init__(self, path: str, reason: Exception):
        super().__init__(f"I/O error for file '{path}': {reason}")
        self.path = path
        self.reason = reason


class SerializationError(BioforgeError):
    """Raised when a log record cannot be encoded or decoded as JSON"""
    pass
