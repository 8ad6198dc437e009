"""
YAML knowledge base loader with schema validation.

Loads materials, organisms, assets, labor roles, processes and rules from
YAML files and validates them against JSON schemas.

Knowledge base layout (every file holds `schema_version` plus one list):

    1_materials/*.yaml   materials
    2_organisms/*.yaml   organisms
    3_assets/*.yaml      assets
    4_labor/*.yaml       labor_roles
    5_processes/*.yaml   processes
    6_rules/*.yaml       rules
"""

import yaml
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
import jsonschema

from .data_types import (
    Measurement, DissolvedComponent, DissolvedGas, MediaComposition, MediaState,
    Organism, OrganismType, StrainDetails, ElementalComposition, MacromolecularSummary,
    Morphology, TargetMoleculeYield, TargetedMolecularClasses, StaticProperties,
    ToleranceRange, TemperatureTolerance, PHTolerance, ChemicalTolerance,
    PhotosyntheticLightResponse, EnvironmentalTolerances, ExchangeConditions,
    MediaExchangeRate, GasExchangeRate, MetabolicExchange, DynamicParameters,
    CostEntry, ImpactEntry, LifecycleStage, LifecycleStages, TechnoEconomicAndLcaProfile,
    PowerModel, LaborRequirement, OperationalParameters, Asset,
    Identifiers, MaterialMetadata, Material, LaborCostProfile, LaborRole,
    RequiredMaterial, QcCheck, Method, Process,
    ComparisonOperator, CONDITION_TYPES, COMMAND_TYPES, Rule,
    Objective, TargetRequest, ValorizationRequest, KnowledgeBase
)
from .errors import ConfigError, MethodNotFoundError


# JSON schemas shipped with the package
SCHEMA_DIR = Path(__file__).parent / "schemas"


class DataLoadError(ConfigError):
    """Raised when data loading or validation fails"""
    pass


def load_yaml(file_path: Path) -> dict:
    """Load YAML file and return parsed dict"""
    file_path = Path(file_path)
    if not file_path.exists():
        raise DataLoadError(f"File not found: {file_path}")

    try:
        with open(file_path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise DataLoadError(f"YAML parse error in {file_path}: {e}")

    if data is None:
        raise DataLoadError(f"Empty YAML file: {file_path}")
    return data


def validate_against_schema(data: dict, schema_path: Path, data_path: Path):
    """Validate data dict against JSON schema"""
    if not schema_path.exists():
        # Schema validation optional (schemas may not exist for every file kind)
        return

    try:
        with open(schema_path, 'r') as f:
            schema = json.load(f)
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        raise DataLoadError(f"Validation error in {data_path}: {e.message}")
    except json.JSONDecodeError as e:
        raise DataLoadError(f"Invalid JSON schema {schema_path}: {e}")


# ============================================================================
# Shared
# ============================================================================

def parse_measurement(data: Optional[dict]) -> Optional[Measurement]:
    if data is None:
        return None
    return Measurement(value=float(data['value']), unit=data.get('unit', ''))


def _parse_list(items: Optional[List[dict]], parser: Callable[[dict], Any]) -> list:
    return [parser(item) for item in (items or [])]


# ============================================================================
# Media
# ============================================================================

def parse_media_state(data: dict) -> MediaState:
    """
    Parse a media state (volume, ph, composition).

    Raises:
        DataLoadError: If a molecule id appears twice in the composition
    """
    composition = data.get('composition', {})

    components = [
        DissolvedComponent(
            molecule_id=c['molecule_id'],
            molecule_name=c['molecule_name'],
            concentration=parse_measurement(c['concentration'])
        )
        for c in composition.get('dissolved_components', [])
    ]
    seen = set()
    for component in components:
        if component.molecule_id in seen:
            raise DataLoadError(f"Duplicate dissolved component '{component.molecule_id}' in media")
        seen.add(component.molecule_id)

    gases = [
        DissolvedGas(
            gas_id=g['gas_id'],
            gas_name=g['gas_name'],
            concentration=parse_measurement(g['concentration'])
        )
        for g in composition.get('dissolved_gases', [])
    ]

    return MediaState(
        volume=parse_measurement(data['volume']),
        ph=float(data['ph']),
        composition=MediaComposition(dissolved_components=components, dissolved_gases=gases)
    )


def media_state_to_dict(media: MediaState) -> dict:
    """Inverse of parse_media_state (used to write initial_media.yaml)"""
    return {
        'volume': media.volume.to_dict(),
        'ph': float(media.ph),
        'composition': {
            'dissolved_components': [
                {
                    'molecule_id': c.molecule_id,
                    'molecule_name': c.molecule_name,
                    'concentration': c.concentration.to_dict(),
                }
                for c in media.composition.dissolved_components
            ],
            'dissolved_gases': [
                {
                    'gas_id': g.gas_id,
                    'gas_name': g.gas_name,
                    'concentration': g.concentration.to_dict(),
                }
                for g in media.composition.dissolved_gases
            ],
        },
    }


# ============================================================================
# Organisms
# ============================================================================

def _parse_exchange_conditions(data: Optional[dict]) -> Optional[ExchangeConditions]:
    if data is None:
        return None
    return ExchangeConditions(**data)


def _parse_media_exchange(data: dict) -> MediaExchangeRate:
    return MediaExchangeRate(
        molecule_id=data['molecule_id'],
        molecule_name=data['molecule_name'],
        max_exchange_rate=parse_measurement(data['max_exchange_rate']),
        conditions=_parse_exchange_conditions(data.get('conditions'))
    )


def _parse_gas_exchange(data: dict) -> GasExchangeRate:
    return GasExchangeRate(
        gas_id=data['gas_id'],
        gas_name=data['gas_name'],
        max_exchange_rate=parse_measurement(data['max_exchange_rate']),
        conditions=_parse_exchange_conditions(data.get('conditions'))
    )


def _parse_yield(data: dict) -> TargetMoleculeYield:
    return TargetMoleculeYield(molecule=data['molecule'], concentration_mg_g_dw=float(data['concentration_mg_g_dw']))


def parse_organism(data: dict) -> Organism:
    """Parse one organism definition"""
    static_data = data.get('static_properties', {})
    classes_data = static_data.get('targeted_molecular_classes', {})

    static = StaticProperties(
        targeted_molecular_classes=TargetedMolecularClasses(
            terpenoids_and_carotenoids=_parse_list(classes_data.get('terpenoids_and_carotenoids'), _parse_yield),
            cell_wall_components=_parse_list(classes_data.get('cell_wall_components'), _parse_yield)
        ),
        elemental_composition=(ElementalComposition(**static_data['elemental_composition'])
                               if 'elemental_composition' in static_data else None),
        macromolecular_summary=(MacromolecularSummary(**static_data['macromolecular_summary'])
                                if 'macromolecular_summary' in static_data else None),
        morphology=(Morphology(nominal_diameter=parse_measurement(static_data['morphology']['nominal_diameter']))
                    if 'morphology' in static_data else None)
    )

    dyn_data = data['dynamic_parameters']
    tol_data = dyn_data['environmental_tolerances']

    temperature = TemperatureTolerance(
        optimal=parse_measurement(tol_data['temperature']['optimal']),
        range=ToleranceRange(**tol_data['temperature']['range'])
    )
    ph = None
    if tol_data.get('ph') is not None:
        ph = PHTolerance(optimal=float(tol_data['ph']['optimal']), range=ToleranceRange(**tol_data['ph']['range']))

    light = None
    light_data = tol_data.get('photosynthetic_light_response')
    if light_data is not None:
        light = PhotosyntheticLightResponse(
            par_wavelength_range_nm=list(light_data['par_wavelength_range_nm']),
            saturation_ppfd=parse_measurement(light_data['saturation_ppfd']),
            photoinhibition_ppfd=parse_measurement(light_data['photoinhibition_ppfd'])
        )

    chemical = [
        ChemicalTolerance(
            molecule_id=c['molecule_id'],
            molecule_name=c['molecule_name'],
            minimum_inhibitory_concentration=parse_measurement(c.get('minimum_inhibitory_concentration')),
            inhibitory_concentration_50=parse_measurement(c.get('inhibitory_concentration_50'))
        )
        for c in tol_data.get('chemical', [])
    ]

    exchange_data = dyn_data.get('metabolic_exchange', {})
    exchange = MetabolicExchange(
        media_consumption=_parse_list(exchange_data.get('media_consumption'), _parse_media_exchange),
        media_secretion=_parse_list(exchange_data.get('media_secretion'), _parse_media_exchange),
        gas_consumption=_parse_list(exchange_data.get('gas_consumption'), _parse_gas_exchange),
        gas_secretion=_parse_list(exchange_data.get('gas_secretion'), _parse_gas_exchange)
    )

    dynamic = DynamicParameters(
        growth_rate_per_hr=float(dyn_data['growth_rate_per_hr']),
        environmental_tolerances=EnvironmentalTolerances(
            temperature=temperature,
            ph=ph,
            chemical=chemical,
            photosynthetic_light_response=light
        ),
        metabolic_exchange=exchange
    )

    strain = None
    if data.get('strain_details') is not None:
        strain = StrainDetails(**data['strain_details'])

    try:
        organism_type = OrganismType(data['organism_type'])
    except ValueError:
        raise DataLoadError(f"Unknown organism_type '{data['organism_type']}' for {data['organism_id']}")

    return Organism(
        organism_id=data['organism_id'],
        organism_name=data['organism_name'],
        organism_type=organism_type,
        initial_biomass=parse_measurement(data['initial_biomass']),
        static_properties=static,
        dynamic_parameters=dynamic,
        strain_details=strain
    )


# ============================================================================
# Techno-economic profiles, assets, materials, labor
# ============================================================================

def _parse_lifecycle_stage(data: Optional[dict]) -> LifecycleStage:
    data = data or {}
    return LifecycleStage(
        costs=[CostEntry(cost_type=c['cost_type'], value_usd=float(c['value_usd'])) for c in data.get('costs', [])],
        impacts=[ImpactEntry(metric=i['metric'], value=float(i['value']), unit=i.get('unit', ''))
                 for i in data.get('impacts', [])]
    )


def parse_tea_profile(data: Optional[dict]) -> Optional[TechnoEconomicAndLcaProfile]:
    """Parse a techno-economic and LCA profile"""
    if data is None:
        return None
    stages = data.get('lifecycle_stages', {})
    return TechnoEconomicAndLcaProfile(
        lifecycle_stages=LifecycleStages(
            manufacturing_and_acquisition=_parse_lifecycle_stage(stages.get('manufacturing_and_acquisition')),
            use_and_operation=_parse_lifecycle_stage(stages.get('use_and_operation')),
            maintenance=_parse_lifecycle_stage(stages.get('maintenance')),
            end_of_life=_parse_lifecycle_stage(stages.get('end_of_life'))
        ),
        expected_lifespan=parse_measurement(data.get('expected_lifespan'))
    )


def parse_asset(data: dict) -> Asset:
    """Parse one asset definition"""
    operational = None
    op_data = data.get('operational_parameters')
    if op_data is not None:
        power = None
        if op_data.get('power_model') is not None:
            pm = op_data['power_model']
            power = PowerModel(
                operating_power=parse_measurement(pm['operating_power']),
                standby_power=parse_measurement(pm['standby_power']),
                description=pm.get('description')
            )
        labor = [
            LaborRequirement(
                linked_task_id=req['linked_task_id'],
                task_description=req['task_description'],
                required_role_id=req['required_role_id'],
                duration=parse_measurement(req['duration'])
            )
            for req in op_data.get('labor_requirements') or []
        ]
        operational = OperationalParameters(
            power_model=power,
            labor_requirements=labor,
            configuration_and_control=op_data.get('configuration_and_control') or [],
            monitoring=op_data.get('monitoring') or [],
            operational_tasks=op_data.get('operational_tasks') or [],
            maintenance=op_data.get('maintenance')
        )

    return Asset(
        asset_id=data['asset_id'],
        asset_type=data['asset_type'],
        display_name=data.get('display_name'),
        group=data.get('group'),
        description=data.get('description'),
        connection_points=data.get('connection_points') or [],
        operational_parameters=operational,
        techno_economic_and_lca_profile=parse_tea_profile(data.get('techno_economic_and_lca_profile'))
    )


def parse_material(data: dict) -> Material:
    """Parse one material definition"""
    meta = data['metadata']
    identifiers = None
    if meta.get('identifiers') is not None:
        identifiers = Identifiers(**meta['identifiers'])

    return Material(
        material_id=data['material_id'],
        material_name=data['material_name'],
        material_class=data['material_class'],
        material_subtype=data['material_subtype'],
        material_category=data['material_category'],
        unit=data['unit'],
        metadata=MaterialMetadata(
            process_role=meta['process_role'],
            vendor=meta.get('vendor'),
            part_number=meta.get('part_number'),
            notes=meta.get('notes'),
            identifiers=identifiers
        ),
        techno_economic_and_lca_profile=parse_tea_profile(data.get('techno_economic_and_lca_profile'))
                                        or TechnoEconomicAndLcaProfile(),
        specifications=data.get('specifications') or [],
        formulation=data.get('formulation')
    )


def parse_labor_role(data: dict) -> LaborRole:
    return LaborRole(
        labor_role_id=data['labor_role_id'],
        role_name=data['role_name'],
        techno_economic_profile=LaborCostProfile(
            cost_per_hour_usd=float(data['techno_economic_profile']['cost_per_hour_usd'])
        ),
        skill_level=data.get('skill_level'),
        description=data.get('description')
    )


# ============================================================================
# Processes and rules
# ============================================================================

def parse_process(data: dict) -> Process:
    """Parse one process definition"""
    methods = []
    for m in data['methods']:
        methods.append(Method(
            method_id=m['method_id'],
            stage=m['stage'],
            technique=m['technique'],
            required_asset_id=m['required_asset_id'],
            operating_parameters=m.get('operating_parameters') or {},
            required_materials=[RequiredMaterial(**r) for r in m.get('required_materials') or []],
            qc_checks=[QcCheck(**q) for q in m.get('qc_checks') or []],
            required_rule_ids=m.get('required_rule_ids')
        ))

    return Process(
        process_id=data['process_id'],
        process_name=data['process_name'],
        default_workflow=list(data['default_workflow']),
        methods=methods,
        component_class=data.get('component_class', ''),
        status=data.get('status', ''),
        notes=data.get('notes', '')
    )


def _tagged_fields(data: dict) -> dict:
    return {key: value for key, value in data.items() if key != 'type'}


def parse_condition(data: dict):
    """
    Parse a `type`-tagged condition.

    Raises:
        DataLoadError: On an unknown type, operator or field set
    """
    cls = CONDITION_TYPES.get(data.get('type'))
    if cls is None:
        raise DataLoadError(f"Unknown condition type: {data.get('type')!r}")

    fields = _tagged_fields(data)
    if 'operator' in fields:
        try:
            fields['operator'] = ComparisonOperator(fields['operator'])
        except ValueError:
            raise DataLoadError(f"Unknown comparison operator: {fields['operator']!r}")

    try:
        return cls(**fields)
    except TypeError as e:
        raise DataLoadError(f"Invalid fields for condition '{cls.TYPE}': {e}")


def parse_command(data: dict):
    """
    Parse a `type`-tagged command.

    Raises:
        DataLoadError: On an unknown type or field set
    """
    cls = COMMAND_TYPES.get(data.get('type'))
    if cls is None:
        raise DataLoadError(f"Unknown command type: {data.get('type')!r}")

    try:
        return cls(**_tagged_fields(data))
    except TypeError as e:
        raise DataLoadError(f"Invalid fields for command '{cls.TYPE}': {e}")


def parse_rule(data: dict) -> Rule:
    return Rule(
        name=data['name'],
        condition=parse_condition(data['condition']),
        action=parse_command(data['action'])
    )


# ============================================================================
# Files and directories
# ============================================================================

# directory -> (list key, schema file, parser, id getter)
KNOWLEDGE_BASE_SECTIONS = {
    'materials': ('1_materials', 'material_file.schema.json', parse_material, lambda m: m.material_id),
    'organisms': ('2_organisms', 'organism_file.schema.json', parse_organism, lambda o: o.organism_id),
    'assets': ('3_assets', 'asset_file.schema.json', parse_asset, lambda a: a.asset_id),
    'labor_roles': ('4_labor', 'labor_file.schema.json', parse_labor_role, lambda r: r.labor_role_id),
    'processes': ('5_processes', 'process_file.schema.json', parse_process, lambda p: p.process_id),
    'rules': ('6_rules', 'rule_file.schema.json', parse_rule, lambda r: r.name),
}


def load_section_file(file_path: Path, list_key: str, parser: Callable[[dict], Any],
                      schema_path: Optional[Path] = None) -> list:
    """Load one knowledge base file and parse its list of items"""
    data = load_yaml(file_path)

    # Validate if schema available
    if schema_path is not None:
        validate_against_schema(data, schema_path, file_path)

    if list_key not in data:
        raise DataLoadError(f"Missing '{list_key}' list in {file_path}")

    try:
        return [parser(item) for item in data[list_key] or []]
    except KeyError as e:
        raise DataLoadError(f"Missing field {e} in {file_path}")


def load_section_directory(dir_path: Path, list_key: str, parser: Callable[[dict], Any],
                           get_id: Callable[[Any], str], schema_path: Optional[Path] = None) -> dict:
    """Load every *.yaml / *.yml file in a directory into an id-keyed dict"""
    dir_path = Path(dir_path)
    registry = {}
    if not dir_path.exists():
        return registry

    files = sorted(list(dir_path.glob("*.yaml")) + list(dir_path.glob("*.yml")))
    for yaml_file in files:
        for item in load_section_file(yaml_file, list_key, parser, schema_path):
            registry[get_id(item)] = item

    return registry


def load_knowledge_base(base_path: Path, schema_dir: Optional[Path] = None) -> KnowledgeBase:
    """
    Load the complete knowledge base.

    Args:
        base_path: Knowledge base root (holds 1_materials .. 6_rules)
        schema_dir: JSON schema directory (defaults to the packaged schemas)

    Raises:
        DataLoadError: If base_path is missing or any file is invalid
        MethodNotFoundError: If a process workflow references an undefined method
    """
    base_path = Path(base_path)
    if not base_path.is_dir():
        raise DataLoadError(f"Knowledge base directory not found: {base_path}")

    schema_dir = Path(schema_dir) if schema_dir else SCHEMA_DIR
    print(f"Loading knowledge base from '{base_path}'...")

    sections = {}
    for attr, (dirname, schema_name, parser, get_id) in KNOWLEDGE_BASE_SECTIONS.items():
        schema_path = schema_dir / schema_name
        sections[attr] = load_section_directory(base_path / dirname, attr, parser, get_id, schema_path)

    kb = KnowledgeBase(**sections)

    for process in kb.processes.values():
        for method_id in process.default_workflow:
            if process.find_method(method_id) is None:
                raise MethodNotFoundError(method_id)

    print(f"[OK] Knowledge base loaded: {len(kb.organisms)} organisms, {len(kb.assets)} assets, "
          f"{len(kb.processes)} processes, {len(kb.rules)} rules")
    return kb


def load_valorization_request(file_path: Path, schema_dir: Optional[Path] = None) -> ValorizationRequest:
    """Load a valorization request (targets + objectives) from YAML"""
    data = load_yaml(file_path)

    schema_dir = Path(schema_dir) if schema_dir else SCHEMA_DIR
    validate_against_schema(data, schema_dir / "request.schema.json", file_path)

    targets = []
    for t in data['targets']:
        try:
            objective = Objective(t['objective'])
        except ValueError:
            raise DataLoadError(f"Unknown objective '{t['objective']}' in {file_path}")
        targets.append(TargetRequest(
            molecule_name=t['molecule_name'],
            objective=objective,
            process_id=t['process_id'],
            target_amount_grams=float(t['target_amount_grams'])
        ))

    return ValorizationRequest(targets=targets)
