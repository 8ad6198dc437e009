"""
BioForge Bioprocess Simulation

A deterministic, tick-based simulator for microbial cultivation and
downstream processing. A workflow of methods runs against a shared media
pool; organisms grow, consume and secrete each simulated hour, rules fire
commands, and every tick is logged for costing and life cycle analysis.

Architecture: the engine owns the state. Builders configure it, the logger
records it, analysis and the valorization pipeline consume the logs.
"""

__version__ = "0.1.0"
