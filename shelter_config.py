'''
settings shared by the cleaning, describing and testing modules
'''
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Tuple


DEFAULT_DATA_PATH = Path('data') / 'animal_shelter_intakes_outcomes.csv'
DEFAULT_OUTPUT_DIR = Path('output')
DATA_PATH_ENV = 'SHELTER_DATA_CSV'

#raw county exports use a few different column names for the same field
COLUMN_ALIASES: Dict[str, str] = {
    'type': 'animal_type',
    'kennel_number': 'kennel_code',
    'kennel': 'kennel_code',
    'intake_datetime': 'intake_date',
    'outcome_datetime': 'outcome_date',
}

REQUIRED_COLUMNS: List[str] = [
    'animal_type', 'intake_type', 'intake_date', 'outcome_type',
    'outcome_date', 'intake_condition', 'kennel_code'
]
CATEGORY_COLUMNS: List[str] = [
    'animal_type', 'intake_type', 'outcome_type', 'intake_condition',
    'kennel_code', 'breed', 'color'
]
DATE_COLUMNS: List[str] = ['intake_date', 'outcome_date']
NUMERIC_COLUMNS: List[str] = ['days_in_shelter', 'count']

#tried in order, the first format that parses a value wins
DATE_FORMATS: Tuple[str, ...] = (
    '%m/%d/%Y %I:%M:%S %p',
    '%m/%d/%Y',
    '%Y-%m-%dT%H:%M:%S.%f',
    '%Y-%m-%dT%H:%M:%S',
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d',
)

MISSING_STRINGS: List[str] = ['', 'nan', 'none', 'null', 'nat', 'n/a']

ADOPTION = 'adoption'
WILDLIFE = 'wildlife'

SEASON_MONTHS: Dict[str, Tuple[int, ...]] = {
    'Winter': (12, 1, 2),
    'Spring': (3, 4, 5),
    'Summer': (6, 7, 8),
    'Fall': (9, 10, 11),
}
UNKNOWN_SEASON = 'Unknown'
SEASON_ORDER: List[str] = ['Winter', 'Spring', 'Summer', 'Fall', UNKNOWN_SEASON]

CHI_SQUARED_PAIRS: List[Tuple[str, str]] = [
    ('intake_type', 'outcome_type'),
    ('intake_type', 'animal_type'),
    ('outcome_type', 'animal_type'),
]

#presentation only, the statistics always run on the normalised codes
DISPLAY_LABELS: Dict[str, str] = {
    'adoption': 'Adoption',
    'rto': 'Return to Owner',
    'return-to-owner': 'Return to Owner',
    'rtos': 'Return to Owner (Same Day)',
    'transfer': 'Transfer',
    'euthanize': 'Euthanasia',
    'euthanasia': 'Euthanasia',
    'died': 'Died',
    'escaped/stolen': 'Escaped/Stolen',
    'stray': 'Stray',
    'confiscate': 'Confiscated',
    'confiscated': 'Confiscated',
    'owner-surrender': 'Owner Surrender',
    'quarantine': 'Quarantine',
    'os-appt': 'Owner Surrender (Appointment)',
    'born-here': 'Born in Shelter',
    'cat': 'Cat',
    'dog': 'Dog',
    'bird': 'Bird',
    'livestock': 'Livestock',
    'wildlife': 'Wildlife',
    'other': 'Other',
}


@dataclass(frozen = True)
class ExclusionPolicy:
    '''values that remove a record from the analysis, one set per column'''
    outcome_type: FrozenSet[str] = frozenset({'disposal', 'lost-expired', 'found-expired'})
    intake_condition: FrozenSet[str] = frozenset({'dead'})
    intake_type: FrozenSet[str] = frozenset({'disposal'})
    kennel_code: FrozenSet[str] = frozenset({'found', 'lost'})

    def rules(self) -> Dict[str, FrozenSet[str]]:
        return {
            'outcome_type': self.outcome_type,
            'intake_condition': self.intake_condition,
            'intake_type': self.intake_type,
            'kennel_code': self.kennel_code,
        }


@dataclass(frozen = True)
class AnalysisConfig:
    alpha: float = 0.05
    random_seed: int = 42
    n_simulations: int = 2000
    min_expected_count: float = 5.0
    dunn_adjustment: str = 'holm'
    equal_var: bool = False
    rate_excluded_types: Tuple[str, ...] = (WILDLIFE,)
    exclusions: ExclusionPolicy = field(default_factory = ExclusionPolicy)


def resolve_data_path(path = None) -> Path:
    '''
    Picks the input CSV: an explicit path, then the SHELTER_DATA_CSV
    environment variable, then the default location.
    '''
    if path is not None:
        return Path(path).expanduser()
    env = os.getenv(DATA_PATH_ENV)
    if env:
        return Path(env).expanduser()
    return DEFAULT_DATA_PATH
