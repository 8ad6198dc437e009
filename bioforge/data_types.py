"""
Data types mirroring the knowledge base YAML structures.

These dataclasses are populated by loader.py from YAML files, or built
directly in code by the optimizer and the tests. They are treated as
immutable reference data for the lifetime of a simulation run.
"""

from dataclasses import dataclass, field
from typing import ClassVar, List, Dict, Optional, Any, Union
from enum import Enum


# ============================================================================
# Shared Primitives
# ============================================================================

@dataclass
class Measurement:
    """A numeric value with its unit"""
    value: float
    unit: str

    def to_dict(self) -> Dict[str, Any]:
        return {'value': float(self.value), 'unit': self.unit}


# ============================================================================
# Environment / Media
# ============================================================================

@dataclass
class DissolvedComponent:
    """A chemical dissolved in the shared media pool"""
    molecule_id: str  # Stable chemical identifier (e.g., "CHEBI:17992")
    molecule_name: str
    concentration: Measurement  # g/L


@dataclass
class DissolvedGas:
    """A gas dissolved in the shared media pool"""
    gas_id: str
    gas_name: str
    concentration: Measurement


@dataclass
class MediaComposition:
    """Ordered dissolved components and gases"""
    dissolved_components: List[DissolvedComponent] = field(default_factory=list)
    dissolved_gases: List[DissolvedGas] = field(default_factory=list)


@dataclass
class MediaState:
    """Media volume, pH and composition"""
    volume: Measurement  # L
    ph: float
    composition: MediaComposition = field(default_factory=MediaComposition)


# ============================================================================
# Organism Definition
# ============================================================================

class OrganismType(str, Enum):
    BACTERIA = "Bacteria"
    MICROALGAE = "Microalgae"
    MICROFUNGI = "Microfungi"
    PHAGE = "Phage"
    CELL_LINE = "CellLine"


@dataclass
class StrainDetails:
    """Strain lineage and engineering status"""
    is_engineered: bool = False
    description: Optional[str] = None


@dataclass
class ElementalComposition:
    """Elemental composition, % of dry weight"""
    carbon: float
    hydrogen: float
    oxygen: float
    nitrogen: float
    phosphorus: float
    sulfur: float


@dataclass
class MacromolecularSummary:
    """Macromolecular composition, % of dry weight"""
    protein: float
    carbohydrate: float
    lipid: float
    nucleic_acid: float
    ash: float


@dataclass
class Morphology:
    nominal_diameter: Measurement


@dataclass
class TargetMoleculeYield:
    """Yield of a target molecule in mg per g dry weight"""
    molecule: str
    concentration_mg_g_dw: float


@dataclass
class TargetedMolecularClasses:
    """Target molecules grouped by chemical class"""
    terpenoids_and_carotenoids: List[TargetMoleculeYield] = field(default_factory=list)
    cell_wall_components: List[TargetMoleculeYield] = field(default_factory=list)


@dataclass
class StaticProperties:
    """Properties that do not change during a simulation"""
    targeted_molecular_classes: TargetedMolecularClasses = field(default_factory=TargetedMolecularClasses)
    elemental_composition: Optional[ElementalComposition] = None
    macromolecular_summary: Optional[MacromolecularSummary] = None
    morphology: Optional[Morphology] = None


@dataclass
class ToleranceRange:
    min: float
    max: float


@dataclass
class TemperatureTolerance:
    """Optimal temperature and viable range (Celsius)"""
    optimal: Measurement
    range: ToleranceRange


@dataclass
class PHTolerance:
    optimal: float
    range: ToleranceRange


@dataclass
class ChemicalTolerance:
    molecule_id: str
    molecule_name: str
    minimum_inhibitory_concentration: Optional[Measurement] = None
    inhibitory_concentration_50: Optional[Measurement] = None


@dataclass
class PhotosyntheticLightResponse:
    par_wavelength_range_nm: List[int]  # [low, high]
    saturation_ppfd: Measurement
    photoinhibition_ppfd: Measurement


@dataclass
class EnvironmentalTolerances:
    """All environmental tolerances of an organism"""
    temperature: TemperatureTolerance
    ph: Optional[PHTolerance] = None
    chemical: List[ChemicalTolerance] = field(default_factory=list)
    photosynthetic_light_response: Optional[PhotosyntheticLightResponse] = None


@dataclass
class ExchangeConditions:
    aeration: str  # Aerobic, Anaerobic, MicroAerobic, Anoxic
    light: Optional[str] = None  # Light, Dark
    notes: Optional[str] = None


@dataclass
class MediaExchangeRate:
    """Consumption or secretion rate of a dissolved component (mmol/gDW/h)"""
    molecule_id: str
    molecule_name: str
    max_exchange_rate: Measurement
    conditions: Optional[ExchangeConditions] = None


@dataclass
class GasExchangeRate:
    gas_id: str
    gas_name: str
    max_exchange_rate: Measurement
    conditions: Optional[ExchangeConditions] = None


@dataclass
class MetabolicExchange:
    """Metabolic exchange with the media; the first consumption entry is the primary carbon source"""
    media_consumption: List[MediaExchangeRate] = field(default_factory=list)
    media_secretion: List[MediaExchangeRate] = field(default_factory=list)
    gas_consumption: List[GasExchangeRate] = field(default_factory=list)
    gas_secretion: List[GasExchangeRate] = field(default_factory=list)


@dataclass
class DynamicParameters:
    """Parameters driving the kinetics model"""
    growth_rate_per_hr: float
    environmental_tolerances: EnvironmentalTolerances
    metabolic_exchange: MetabolicExchange = field(default_factory=MetabolicExchange)


@dataclass
class Organism:
    """Complete organism definition"""
    organism_id: str
    organism_name: str
    organism_type: OrganismType
    initial_biomass: Measurement  # g
    static_properties: StaticProperties
    dynamic_parameters: DynamicParameters
    strain_details: Optional[StrainDetails] = None


# ============================================================================
# Techno-Economic and LCA Profiles
# ============================================================================

@dataclass
class CostEntry:
    cost_type: str  # capex, opex_per_year, ...
    value_usd: float


@dataclass
class ImpactEntry:
    metric: str  # gwp, adp_fossil, gwp_per_year, ...
    value: float
    unit: str


@dataclass
class LifecycleStage:
    costs: List[CostEntry] = field(default_factory=list)
    impacts: List[ImpactEntry] = field(default_factory=list)

    def find_cost(self, cost_type: str) -> Optional[CostEntry]:
        return next((c for c in self.costs if c.cost_type == cost_type), None)

    def find_impact(self, metric: str) -> Optional[ImpactEntry]:
        return next((i for i in self.impacts if i.metric == metric), None)


@dataclass
class LifecycleStages:
    manufacturing_and_acquisition: LifecycleStage = field(default_factory=LifecycleStage)
    use_and_operation: LifecycleStage = field(default_factory=LifecycleStage)
    maintenance: LifecycleStage = field(default_factory=LifecycleStage)
    end_of_life: LifecycleStage = field(default_factory=LifecycleStage)


@dataclass
class TechnoEconomicAndLcaProfile:
    lifecycle_stages: LifecycleStages = field(default_factory=LifecycleStages)
    expected_lifespan: Optional[Measurement] = None  # years


# ============================================================================
# Asset Definition
# ============================================================================

@dataclass
class PowerModel:
    operating_power: Measurement  # kW
    standby_power: Measurement
    description: Optional[str] = None


@dataclass
class LaborRequirement:
    """Labor attached to an asset; duration unit drives the hour conversion"""
    linked_task_id: str
    task_description: str
    required_role_id: str
    duration: Measurement  # min, min/hr_op, min/box, min/10L, or hours


@dataclass
class OperationalParameters:
    power_model: Optional[PowerModel] = None
    labor_requirements: List[LaborRequirement] = field(default_factory=list)
    configuration_and_control: List[Dict[str, Any]] = field(default_factory=list)
    monitoring: List[Dict[str, Any]] = field(default_factory=list)
    operational_tasks: List[Dict[str, Any]] = field(default_factory=list)
    maintenance: Optional[Dict[str, Any]] = None


@dataclass
class Asset:
    """A piece of equipment anywhere in the bioprocess value chain"""
    asset_id: str
    asset_type: str  # BIOREACTOR, CHROMATOGRAPHY_SKID, ...
    display_name: Optional[str] = None
    group: Optional[str] = None  # CULTIVATION, DOWNSTREAM, ...
    description: Optional[str] = None
    connection_points: List[Dict[str, Any]] = field(default_factory=list)
    operational_parameters: Optional[OperationalParameters] = None
    techno_economic_and_lca_profile: Optional[TechnoEconomicAndLcaProfile] = None


# ============================================================================
# Material and Labor Definitions
# ============================================================================

@dataclass
class Identifiers:
    cas_number: Optional[str] = None
    chebi_id: Optional[str] = None
    pubchem_cid: Optional[str] = None


@dataclass
class MaterialMetadata:
    process_role: str
    vendor: Optional[str] = None
    part_number: Optional[str] = None
    notes: Optional[str] = None
    identifiers: Optional[Identifiers] = None


@dataclass
class Material:
    """Purchased raw material, intermediate, product or byproduct"""
    material_id: str
    material_name: str
    material_class: str  # Chemical, Biological
    material_subtype: str
    material_category: str  # PurchasedRawMaterial, FinalProduct, ...
    unit: str
    metadata: MaterialMetadata
    techno_economic_and_lca_profile: TechnoEconomicAndLcaProfile = field(default_factory=TechnoEconomicAndLcaProfile)
    specifications: List[Dict[str, Any]] = field(default_factory=list)
    formulation: Optional[Dict[str, Any]] = None

    @property
    def chebi_id(self) -> Optional[str]:
        if self.metadata.identifiers is None:
            return None
        return self.metadata.identifiers.chebi_id


@dataclass
class LaborCostProfile:
    cost_per_hour_usd: float


@dataclass
class LaborRole:
    labor_role_id: str
    role_name: str
    techno_economic_profile: LaborCostProfile
    skill_level: Optional[int] = None
    description: Optional[str] = None


# ============================================================================
# Process Definition
# ============================================================================

@dataclass
class RequiredMaterial:
    type: str
    id: str


@dataclass
class QcCheck:
    method_id: str
    timing: str


@dataclass
class Method:
    """A workflow stage bound to an asset and a technique"""
    method_id: str
    stage: str
    technique: str
    required_asset_id: str
    operating_parameters: Dict[str, Any] = field(default_factory=dict)
    required_materials: List[RequiredMaterial] = field(default_factory=list)
    qc_checks: List[QcCheck] = field(default_factory=list)
    required_rule_ids: Optional[List[str]] = None


@dataclass
class Process:
    """Ordered workflow of method ids plus the method definitions"""
    process_id: str
    process_name: str
    default_workflow: List[str]
    methods: List[Method]
    component_class: str = ""
    status: str = ""
    notes: str = ""

    def find_method(self, method_id: str) -> Optional[Method]:
        return next((m for m in self.methods if m.method_id == method_id), None)


# ============================================================================
# Rules: Conditions and Commands
# ============================================================================

class ComparisonOperator(str, Enum):
    LESS_THAN = "less_than"
    GREATER_THAN = "greater_than"
    EQUAL_TO = "equal_to"
    NOT_EQUAL_TO = "not_equal_to"


@dataclass
class AssetValue:
    """Compare a live asset parameter (temperature, ph) against a value"""
    TYPE: ClassVar[str] = "asset_value"
    asset_id: str
    parameter: str
    operator: ComparisonOperator
    value: float


@dataclass
class TimeInStage:
    """True once the active stage has run for at least `ticks` ticks"""
    TYPE: ClassVar[str] = "time_in_stage"
    ticks: int


@dataclass
class BiomassStationary:
    """True when average relative growth over `window` samples drops below `threshold`"""
    TYPE: ClassVar[str] = "biomass_stationary"
    threshold: float
    window: int


@dataclass
class ProductAmount:
    """True when all producers together hold at least `target_grams` of the molecule"""
    TYPE: ClassVar[str] = "product_amount"
    molecule_name: str
    target_grams: float


@dataclass
class MediaValue:
    """Compare a dissolved component concentration against a value"""
    TYPE: ClassVar[str] = "media_value"
    molecule_id: str
    operator: ComparisonOperator
    value: float


Condition = Union[AssetValue, TimeInStage, BiomassStationary, ProductAmount, MediaValue]
CONDITION_TYPES = {cls.TYPE: cls for cls in (AssetValue, TimeInStage, BiomassStationary, ProductAmount, MediaValue)}


@dataclass
class SetTemperature:
    TYPE: ClassVar[str] = "set_temperature"
    asset_id: str
    celsius: float


@dataclass
class AdjustPh:
    TYPE: ClassVar[str] = "adjust_ph"
    asset_id: str
    target_ph: float


@dataclass
class AdvanceToNextStep:
    TYPE: ClassVar[str] = "advance_to_next_step"


@dataclass
class AddMaterial:
    TYPE: ClassVar[str] = "add_material"
    asset_id: str
    material_id: str
    amount_grams: float


@dataclass
class SetOrganismGrowthMultiplier:
    TYPE: ClassVar[str] = "set_organism_growth_multiplier"
    organism_id: str
    multiplier: float


Command = Union[SetTemperature, AdjustPh, AdvanceToNextStep, AddMaterial, SetOrganismGrowthMultiplier]
COMMAND_TYPES = {cls.TYPE: cls for cls in (SetTemperature, AdjustPh, AdvanceToNextStep, AddMaterial, SetOrganismGrowthMultiplier)}


@dataclass
class Rule:
    """A named (condition, command) pair attached to methods by name"""
    name: str
    condition: Condition
    action: Command


# ============================================================================
# Valorization Request
# ============================================================================

class Objective(str, Enum):
    MAXIMIZE_YIELD = "MaximizeYield"
    MINIMIZE_COST = "MinimizeCost"
    MINIMIZE_LCA = "MinimizeLca"


@dataclass
class TargetRequest:
    """A target molecule, the objective, and its downstream process"""
    molecule_name: str
    objective: Objective
    process_id: str
    target_amount_grams: float


@dataclass
class ValorizationRequest:
    targets: List[TargetRequest]


# ============================================================================
# Knowledge Base
# ============================================================================

@dataclass
class KnowledgeBase:
    """All static data for a run, keyed by id"""
    assets: Dict[str, Asset] = field(default_factory=dict)
    materials: Dict[str, Material] = field(default_factory=dict)
    organisms: Dict[str, Organism] = field(default_factory=dict)
    labor_roles: Dict[str, LaborRole] = field(default_factory=dict)
    processes: Dict[str, Process] = field(default_factory=dict)
    rules: Dict[str, Rule] = field(default_factory=dict)
