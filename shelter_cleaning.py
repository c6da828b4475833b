'''
loading, cleaning and feature derivation for the animal services records
'''
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from shelter_config import (
    ADOPTION, CATEGORY_COLUMNS, COLUMN_ALIASES, DATE_COLUMNS, DATE_FORMATS,
    MISSING_STRINGS, NUMERIC_COLUMNS, REQUIRED_COLUMNS,
    SEASON_MONTHS, UNKNOWN_SEASON, ExclusionPolicy, resolve_data_path
)
from shelter_errors import ExclusionPolicyWarning, ParseIssue


'''

define functions

'''
#this function makes a header used in later functions
def header():
    print('\n\n\n')
    print('*' * 30)
    print('\n')

def header2():
    print('\n\n')
    print('-' * 20)
    print('\n')


@dataclass
class CleanResult:
    '''output of the cleaning pass; raw is kept untouched for auditing'''
    raw: pd.DataFrame
    records: pd.DataFrame
    parse_issues: List[ParseIssue] = field(default_factory = list)
    exclusion_counts: Dict[str, int] = field(default_factory = dict)

    def parse_issue_table(self) -> pd.DataFrame:
        return parse_issue_table(self.parse_issues)


def import_data(file_name, table_name) -> pd.DataFrame:
    print(f'\n\nBeginning to load {table_name}:')
    path = Path(file_name)
    if not path.exists():
        raise FileNotFoundError(f'File not found at path: {file_name}')

    #everything comes in as text so bad dates and numbers can be reported later
    df = pd.read_csv(path, low_memory = False, dtype = str)
    print(f'Success, with {len(df)} rows')
    return df

def load_raw_table(file_name = None) -> pd.DataFrame:
    return import_data(resolve_data_path(file_name), 'animal services records')

def ensure_columns(df, required) -> None:
    missing = [col for col in required if col not in df.columns]
    if missing:
        raise KeyError(f'Missing expected columns: {missing}')

def create_clean_table(df, policy = None) -> CleanResult:
    header()
    print('Beginning to create the clean records table')
    if policy is None:
        policy = ExclusionPolicy()

    normalised = df.pipe(imported_data_clean, 'raw_records')
    parsed, issues = parse_fields(normalised, 'raw_records')
    retained, counts = apply_exclusions(parsed, policy)
    records = retained.pipe(derive_features, 'clean_records')
    records, issues = flag_outcome_before_intake(records, issues)

    print(f'{len(records)} of {len(df)} rows retained, {len(issues)} parse issues flagged')
    return CleanResult(raw = df, records = records, parse_issues = issues, exclusion_counts = counts)

def imported_data_clean(df, df_name) -> pd.DataFrame:
    header()
    print(f'Beginning to clean {df_name}')
    df = df.copy()

    df.columns = (
        df.columns.str.strip().str.lower()
        .str.replace(r'[\s\-]+', '_', regex = True)
    )
    df = df.rename(columns = COLUMN_ALIASES)
    ensure_columns(df, REQUIRED_COLUMNS)

    dup_count = df.duplicated().sum()
    df = df[~df.duplicated()].copy()
    print(f'...{dup_count} duplicate rows dropped and column names snake case')

    for column in df.columns:
        if not (pd.api.types.is_object_dtype(df[column]) or pd.api.types.is_string_dtype(df[column])):
            continue
        values = df[column].where(df[column].notna()).astype(str).str.strip()
        if column in CATEGORY_COLUMNS:
            values = values.str.lower().str.replace(r'[\s_]+', '-', regex = True)
        df[column] = values.mask(values.str.lower().isin(MISSING_STRINGS), np.nan)
    print('...categorical columns lowercase and stripped')

    df['record_id'] = build_record_id(df)
    print('...complete')
    return df

def build_record_id(df) -> pd.Series:
    '''impound number when there is one, otherwise animal id plus intake date'''
    if 'impound_number' in df.columns:
        ids = df['impound_number']
    elif 'animal_id' in df.columns:
        ids = df['animal_id'].astype(str) + '_' + df['intake_date'].fillna('').astype(str)
    else:
        ids = pd.Series([None] * len(df), index = df.index, dtype = object)

    fallback = pd.Series([f'row_{n}' for n in range(len(df))], index = df.index)
    return ids.fillna(fallback).astype(str)

def parse_datetime(series) -> pd.Series:
    if pd.api.types.is_datetime64_any_dtype(series):
        return series

    parsed = pd.Series(pd.NaT, index = series.index, dtype = 'datetime64[ns]')
    for fmt in DATE_FORMATS:
        remaining = parsed.isna() & series.notna()
        if not remaining.any():
            break
        parsed.loc[remaining] = pd.to_datetime(series[remaining], format = fmt, errors = 'coerce')
    return parsed

def parse_fields(df, df_name) -> Tuple[pd.DataFrame, List[ParseIssue]]:
    '''
    Parses the date and numeric columns. A value that is present but will
    not parse becomes null, is listed as a ParseIssue and is named in the
    row's parse_error column; the row itself stays in the table.
    '''
    header2()
    print(f'Beginning to parse dates and numbers in {df_name}')
    df = df.copy()
    issues = []
    failed_fields = {}

    targets = [(col, parse_datetime) for col in DATE_COLUMNS]
    targets += [(col, lambda s: pd.to_numeric(s, errors = 'coerce')) for col in NUMERIC_COLUMNS if col in df.columns]

    for column, parser in targets:
        raw = df[column]
        parsed = parser(raw)
        failed = raw.notna() & parsed.isna()
        for idx in df.index[failed.to_numpy()]:
            issues.append(ParseIssue(record_id = df.at[idx, 'record_id'], field = column, raw_value = str(raw.at[idx])))
            failed_fields.setdefault(idx, []).append(column)
        df[column] = parsed
        print(f'...{column}: {int(failed.sum())} unparseable values flagged')

    flagged = {idx: ','.join(names) for idx, names in failed_fields.items()}
    df['parse_error'] = pd.Series(flagged, dtype = object).reindex(df.index)
    print('...complete')
    return df, issues

def check_exclusion_policy(df, policy) -> None:
    for column, values in policy.rules().items():
        present = set(df[column].dropna().unique())
        for value in sorted(values - present):
            warnings.warn(
                f'exclusion value {value!r} for {column} does not appear in the data',
                ExclusionPolicyWarning,
                stacklevel = 3
            )

def apply_exclusions(df, policy) -> Tuple[pd.DataFrame, Dict[str, int]]:
    header2()
    print('Beginning to remove excluded records')
    check_exclusion_policy(df, policy)

    masks = {column: df[column].isin(values) for column, values in policy.rules().items()}
    excluded = np.logical_or.reduce([mask.to_numpy() for mask in masks.values()])
    counts = {column: int(mask.sum()) for column, mask in masks.items()}

    for column, count in counts.items():
        print(f'{column}: {count} rows match the exclusion list')
    print(f'...{int(excluded.sum())} rows removed')
    return df.loc[~excluded].copy(), counts

def flag_outcome_before_intake(df, issues) -> Tuple[pd.DataFrame, List[ParseIssue]]:
    '''
    an outcome dated before its intake leaves the stay undefined; the row is
    kept and listed with the parse issues against its outcome_date
    '''
    df = df.copy()
    issues = list(issues)
    backwards = df.index[df['outcome_before_intake'].to_numpy()]
    for idx in backwards:
        issues.append(ParseIssue(record_id = df.at[idx, 'record_id'], field = 'outcome_date', raw_value = str(df.at[idx, 'outcome_date'])))
        previous = df.at[idx, 'parse_error']
        df.at[idx, 'parse_error'] = 'outcome_date' if pd.isna(previous) else f'{previous},outcome_date'
    print(f'...{len(backwards)} outcome-before-intake rows added to the parse issues')
    return df, issues

def season_from_month(month) -> np.ndarray:
    conditions = [month.isin(months) for months in SEASON_MONTHS.values()]
    choices = list(SEASON_MONTHS.keys())
    return np.select(conditions, choices, default = UNKNOWN_SEASON)

def derive_features(df, df_name) -> pd.DataFrame:
    header2()
    print(f'Beginning to derive adoption, season and stay duration for {df_name}')
    df = df.copy()

    df['adopted'] = df['outcome_type'].eq(ADOPTION)
    #<NA> is an animal still in care, not a failed adoption
    df['adoption_outcome'] = df['adopted'].astype('boolean').mask(df['outcome_type'].isna())

    month = df['intake_date'].dt.month
    df['intake_month'] = month.astype('Int64')
    df['intake_season'] = season_from_month(month)

    stay = (df['outcome_date'] - df['intake_date']).dt.days
    df['outcome_before_intake'] = (stay < 0).to_numpy()
    df['stay_duration_days'] = stay.where(stay >= 0).astype(float)

    print(f'...{int(df["outcome_before_intake"].sum())} rows with an outcome before intake')
    print(f'...{int(df["stay_duration_days"].isna().sum())} rows without a stay duration')
    print('...complete')
    return df

def parse_issue_table(issues) -> pd.DataFrame:
    return pd.DataFrame([issue.to_dict() for issue in issues], columns = ['record_id', 'field', 'raw_value'])
