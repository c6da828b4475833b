'''
grouped counts, adoption rates, cross tabulations and plots built from the
clean records table
'''
from pathlib import Path

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from shelter_cleaning import header, header2
from shelter_config import DISPLAY_LABELS, SEASON_ORDER, UNKNOWN_SEASON, WILDLIFE

sns.set_style('whitegrid')


def monthly_season_counts(df) -> pd.DataFrame:
    '''
    Intake and adoption counts per intake month and season. Rows without an
    intake date form a single Unknown group at the end.
    '''
    header2()
    print('Beginning to count intakes and adoptions by month and season')
    grouped = (
        df.assign(intake_month = df['intake_month'].fillna(0).astype(int))
        .groupby(['intake_month', 'intake_season'], sort = False)
        .agg(intakes = ('record_id', 'size'), adoptions = ('adopted', 'sum'))
        .reset_index()
    )
    grouped['adoptions'] = grouped['adoptions'].astype(int)
    grouped['intake_season'] = pd.Categorical(grouped['intake_season'], categories = SEASON_ORDER, ordered = True)

    #month 0 stands in for an unknown intake date
    grouped['sort_key'] = grouped['intake_month'].replace(0, 13)
    grouped = grouped.sort_values('sort_key').drop(columns = 'sort_key').reset_index(drop = True)
    grouped['intake_month'] = grouped['intake_month'].astype('Int64').mask(grouped['intake_month'] == 0)
    print('...complete')
    return grouped

def adoption_rate_table(df, exclude_types = (WILDLIFE,)) -> pd.DataFrame:
    '''
    Adoption rate per animal type. Records still in care have no outcome and
    are left out of the denominator, as are the excluded animal types.
    '''
    header2()
    print('Beginning to compute adoption rates by animal type')
    eligible = df[df['adoption_outcome'].notna() & ~df['animal_type'].isin(exclude_types)]
    outcome = eligible['adoption_outcome'].astype(bool)

    table = (
        pd.DataFrame({'animal_type': eligible['animal_type'], 'adopted': outcome})
        .groupby('animal_type')
        .agg(total = ('adopted', 'size'), adopted_count = ('adopted', 'sum'))
    )
    table['adopted_count'] = table['adopted_count'].astype(int)
    table['non_adopted_count'] = table['total'] - table['adopted_count']
    table['adoption_rate'] = table['adopted_count'] / table['total']
    print(f'...{len(df) - len(eligible)} records left out (still in care or excluded type)')
    return table.reset_index()

def outcome_by_animal_crosstab(df) -> pd.DataFrame:
    with_outcome = df[df['outcome_type'].notna()]
    return pd.crosstab(with_outcome['outcome_type'], with_outcome['animal_type'])

def intake_type_counts(df) -> pd.DataFrame:
    counts = df['intake_type'].value_counts(dropna = False)
    return (
        pd.DataFrame({'intake_type': counts.index, 'count': counts.to_numpy()})
        .assign(share = lambda t: t['count'] / t['count'].sum())
    )

def stay_duration_summary(df) -> pd.DataFrame:
    return df.groupby('animal_type')['stay_duration_days'].describe()

def apply_display_labels(table, labels = None) -> pd.DataFrame:
    '''relabels index and column codes for presentation; values are untouched'''
    if labels is None:
        labels = DISPLAY_LABELS
    relabel = lambda code: labels.get(code, code)
    return table.rename(index = relabel, columns = relabel)

def table_check(df, df_name) -> pd.DataFrame:
    """
    Checks and prints the count of null (NaN) values for every column in a Pandas DataFrame.
    """
    header()
    print(f'Beginning errorcheck for: {df_name} ***')
    print(f'\n--- Null Value Check ---')
    for column in df.columns:
        null_count = df[column].isna().sum()
        print(f'{column} nulls: {null_count}')
    print('\n')

    print(f'--- Integrity Check ---')
    if 'record_id' in df.columns:
        duplicate_count = df['record_id'].duplicated().sum()
        print(f'Total record_id duplicates: {duplicate_count}')
    else:
        print('WARNING: "record_id" not found for duplication check.')
    if 'parse_error' in df.columns:
        print(f'Rows with parse errors: {df["parse_error"].notna().sum()}')

    print(f'\n--- Data Type Audit (DF.dtypes) ---')
    print(df.dtypes)

    print(f'\n--- Numerical Sanity Check (DF.describe) ---')
    numeric_cols = df.select_dtypes(include = 'number').columns
    if not numeric_cols.empty:
        print(df[numeric_cols].describe())
    else:
        print('No standard numerical columns found for description.')

    if 'intake_season' in df.columns:
        season_check = (~df['intake_season'].isin(SEASON_ORDER)).sum()
        unknown_count = (df['intake_season'] == UNKNOWN_SEASON).sum()
        print(f'\nthere are {season_check} rows with unexpected seasons and {unknown_count} unknown')

    print(f'\n--- Categorical Value Audit (Top 10 Counts) ---')
    object_cols = df.select_dtypes(include = ['object', 'string']).columns
    for column in object_cols:
        print(f"\n{column.upper()}:")
        print(df[column].value_counts().nlargest(10))

    print('\n')
    print('*' * 30)
    return df


'''

plots

'''
def _save(fig, path):
    if path is not None:
        path = Path(path)
        path.parent.mkdir(parents = True, exist_ok = True)
        fig.savefig(path, dpi = 150, bbox_inches = 'tight')
    return fig

def plot_monthly_counts(counts, path = None):
    known = counts[counts['intake_month'].notna()]
    known = known.assign(intake_month = known['intake_month'].astype(int))
    long = known.melt(
        id_vars = ['intake_month', 'intake_season'],
        value_vars = ['intakes', 'adoptions'],
        var_name = 'series', value_name = 'records'
    )
    fig, ax = plt.subplots(figsize = (12, 6))
    sns.barplot(data = long, x = 'intake_month', y = 'records', hue = 'series', ax = ax)
    ax.set_xlabel('Intake month')
    ax.set_ylabel('Records')
    ax.set_title('Intakes and adoptions by intake month')
    return _save(fig, path)

def plot_adoption_rates(rates, path = None):
    labelled = rates.assign(animal_type = rates['animal_type'].map(lambda code: DISPLAY_LABELS.get(code, code)))
    fig, ax = plt.subplots(figsize = (8, 5))
    sns.barplot(data = labelled, x = 'animal_type', y = 'adoption_rate', color = 'steelblue', ax = ax)
    ax.set_ylim(0, 1)
    ax.set_xlabel('Animal type')
    ax.set_ylabel('Adoption rate')
    ax.set_title('Adoption rate by animal type')
    return _save(fig, path)

def plot_stay_duration(df, path = None):
    stays = df[df['stay_duration_days'].notna()]
    fig, ax = plt.subplots(figsize = (10, 6))
    sns.boxplot(data = stays, x = 'animal_type', y = 'stay_duration_days', ax = ax)
    if not stays.empty and stays['stay_duration_days'].max() > 0:
        ax.set_yscale('symlog')
    ax.set_xlabel('Animal type')
    ax.set_ylabel('Days in shelter')
    ax.set_title('Shelter stay duration by animal type')
    return _save(fig, path)

def close_figures(figures) -> None:
    for fig in figures:
        plt.close(fig)
