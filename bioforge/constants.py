"""
Central configuration constants for the bioforge simulation engine.

Defines default values, kinetic constants, and lookup tables used across
multiple modules.
"""

# ============================================================================
# Simulation State Defaults
# ============================================================================

# Live asset set-points applied at build time
DEFAULT_ASSET_TEMPERATURE_C = 25.0
DEFAULT_ASSET_PH = 7.0

# Stage id written for the pre-run snapshot
INITIAL_STAGE_ID = "INITIAL"

# One tick = one simulated hour
TIME_STEP_HR = 1.0


# ============================================================================
# Biological Kinetics
# ============================================================================

# Monod half-saturation constant for the primary carbon source (g/L)
KS_NUTRIENT = 0.5

# Growth stress factor outside the tolerated temperature range
STRESS_FLOOR = 0.1

# Rolling total-biomass history used by BiomassStationary
BIOMASS_HISTORY_LENGTH = 10

# Molar masses (g/mol) keyed by ChEBI identifier
MOLAR_MASSES = {
    'CHEBI:17234': 180.16,   # glucose
    'CHEBI:17992': 342.3,    # sucrose
    'CHEBI:30089': 60.05,    # acetate
    'CHEBI:132204': 17.03,   # ammonia
}

# Fallbacks when an exchange molecule is not in MOLAR_MASSES
CONSUMPTION_FALLBACK_MOLAR_MASS = 342.3
SECRETION_FALLBACK_MOLAR_MASS = 1.0


# ============================================================================
# Unit Operations
# ============================================================================

# Saponification: NaOH consumed per tick (g/L)
NAOH_MOLECULE_ID = 'CHEBI:32145'
NAOH_CONSUMABLE_ID = 'CONS-NAOH-1M-01'
SAPONIFICATION_NAOH_RATE = 0.5


# ============================================================================
# Optimizer Defaults
# ============================================================================

# Inoculum given to the organism with the largest biomass requirement (g)
DEFAULT_INOCULUM_G = 0.1
MIN_INOCULUM_G = 1e-6

# Generated media
DEFAULT_MEDIA_VOLUME_L = 500.0
DEFAULT_MEDIA_PH = 7.0
DEFAULT_NUTRIENT_CONCENTRATION = 20.0   # g/L per consumed nutrient
BASE_MEDIA_COMPONENTS = [
    {'molecule_id': 'CHEBI:132204', 'molecule_name': 'ammonia', 'concentration': 2.0},
]
BASE_MEDIA_GASES = [
    {'gas_id': 'CHEBI:15379', 'gas_name': 'oxygen', 'concentration': 0.008},
]


# ============================================================================
# Upstream Cultivation (generated process)
# ============================================================================

UPSTREAM_METHOD_ID = 'MTHD-UP-CULT-DYNAMIC-01'
UPSTREAM_PROCESS_ID = 'PROC-UPSTREAM-CULTIVATION-DYNAMIC'
UPSTREAM_ASSET_ID = 'CULTIVATION-LOOP-01'
FEED_MOLECULE_ID = 'CHEBI:17992'        # sucrose
FEED_TRIGGER_CONCENTRATION = 1.0        # g/L
FEED_AMOUNT_G = 2500.0

# Cultivation is stopped after this many ticks if no target rule advances it
MAX_UPSTREAM_TICKS = 2000


# ============================================================================
# Techno-Economic and Life Cycle Factors
# ============================================================================

COST_PER_KWH_USD = 0.12
GWP_PER_KWH = 0.4            # kg CO2e
ADP_FOSSIL_PER_KWH = 8.0     # MJ
HOURS_PER_YEAR = 8760.0
