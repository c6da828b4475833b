'''
hypothesis tests over the clean records table

Every test reads the table and returns a frozen result; nothing here changes
the data it is given. Tests that cannot run on the data raise
InsufficientDataError, and run_test_battery records that failure and moves
on to the next test.
'''
from dataclasses import asdict, dataclass
from itertools import combinations
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
import statsmodels.formula.api as smf
from scipy import stats
from statsmodels.stats.multitest import multipletests

from shelter_cleaning import header, header2
from shelter_config import CHI_SQUARED_PAIRS, AnalysisConfig
from shelter_errors import InsufficientDataError

STAY_PREDICTORS = ('animal_type', 'intake_type', 'intake_season')
SIMULATE_CHOICES = ('auto', True, False)


@dataclass(frozen = True)
class LinearModelResult:
    formula: str
    n_obs: int
    coefficients: Dict[str, float]
    r_squared: float
    adj_r_squared: float
    residual_std_error: float
    df_model: float
    df_resid: float
    f_statistic: float
    f_pvalue: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen = True)
class AnovaResult:
    factor: str
    f_statistic: float
    df_between: int
    df_within: int
    p_value: float
    group_sizes: Dict[str, int]
    group_means: Dict[str, float]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen = True)
class KruskalResult:
    factor: str
    h_statistic: float
    df: int
    p_value: float
    group_sizes: Dict[str, int]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen = True)
class DunnPair:
    group_a: str
    group_b: str
    z_statistic: float
    p_value: float
    adjusted_p_value: float
    reject: bool


@dataclass(frozen = True)
class DunnResult:
    factor: str
    adjustment: str
    pairs: Tuple[DunnPair, ...]

    def to_dict(self) -> dict:
        return {
            'factor': self.factor,
            'adjustment': self.adjustment,
            'pairs': {f'{p.group_a}|{p.group_b}': asdict(p) for p in self.pairs},
        }

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(p) for p in self.pairs])


@dataclass(frozen = True)
class TTestResult:
    equal_var: bool
    t_statistic: float
    df: float
    p_value: float
    mean_a: float
    mean_b: float
    n_a: int
    n_b: int
    mean_difference: float
    ci_low: float
    ci_high: float
    confidence: float
    labels: Tuple[str, str] = ('adopted', 'not_adopted')

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen = True)
class ChiSquaredResult:
    row: str
    column: str
    statistic: float
    dof: int
    p_value: float
    method: str
    n_obs: int
    min_expected_count: float
    cramers_v: float
    n_simulations: int = 0
    seed: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BatteryEntry:
    '''one entry of the battery: a result, or the reason there is none'''
    name: str
    result: object = None
    error: Optional[str] = None
    skipped: Optional[str] = None

    @property
    def status(self) -> str:
        if self.error is not None:
            return 'error'
        if self.skipped is not None:
            return 'skipped'
        return 'ok'


'''

helpers

'''
def _groups(df, value_col, group_col, min_size = 2) -> Dict[object, np.ndarray]:
    data = df.loc[df[value_col].notna() & df[group_col].notna(), [group_col, value_col]]
    groups = {
        name: group[value_col].to_numpy(dtype = float)
        for name, group in data.groupby(group_col, sort = True)
    }
    if len(groups) < 2:
        raise InsufficientDataError(
            f'{value_col} by {group_col} needs at least two groups, found {len(groups)}'
        )
    small = {str(name): len(values) for name, values in groups.items() if len(values) < min_size}
    if small:
        raise InsufficientDataError(
            f'{value_col} by {group_col}: groups with fewer than {min_size} observations: {small}'
        )
    return groups

def _finite(value, what) -> float:
    value = float(value)
    if not np.isfinite(value):
        raise InsufficientDataError(f'{what} is not defined for this data')
    return value

def _pearson_statistic(observed, expected) -> float:
    return float(((observed - expected) ** 2 / expected).sum())

def _cramers_v(statistic, n, shape) -> float:
    v = np.sqrt(statistic / (n * (min(shape) - 1)))
    return float(min(max(v, 0.0), 1.0))


'''

tests

'''
def stay_formula(predictors = STAY_PREDICTORS) -> str:
    return 'stay_duration_days ~ ' + ' + '.join(f'C({name})' for name in predictors)

def fit_stay_model(df, predictors = STAY_PREDICTORS) -> LinearModelResult:
    '''
    Ordinary least squares on stay duration with treatment-coded categorical
    predictors; the alphabetically first level of each factor is the
    reference. Rows without a stay duration do not take part, and a factor
    with a single level in the remaining rows is left out of the formula.
    '''
    header2()
    predictors = list(predictors)
    data = df.loc[df['stay_duration_days'].notna(), ['stay_duration_days'] + predictors].dropna()
    if len(data) < 2:
        raise InsufficientDataError(f'linear model needs at least 2 rows with a stay duration, found {len(data)}')
    data = data.astype({col: object for col in predictors})

    varying = [name for name in predictors if data[name].nunique() > 1]
    if not varying:
        raise InsufficientDataError('linear model has no predictor with more than one level')
    for name in predictors:
        if name not in varying:
            print(f'WARNING: {name} has a single level and is left out of the model')

    formula = stay_formula(varying)
    print(f'Beginning to fit {formula}')
    model = smf.ols(formula, data = data).fit()
    if model.df_model < 1:
        raise InsufficientDataError('linear model has no predictor with more than one level')
    if model.df_resid < 1:
        raise InsufficientDataError(
            f'linear model has {int(model.nobs)} rows for {len(model.params)} parameters'
        )

    print('...complete')
    return LinearModelResult(
        formula = formula,
        n_obs = int(model.nobs),
        coefficients = {name: float(value) for name, value in model.params.items()},
        r_squared = float(model.rsquared),
        adj_r_squared = float(model.rsquared_adj),
        residual_std_error = float(np.sqrt(model.mse_resid)),
        df_model = float(model.df_model),
        df_resid = float(model.df_resid),
        f_statistic = _finite(model.fvalue, 'F statistic'),
        f_pvalue = _finite(model.f_pvalue, 'F test p-value'),
    )

def one_way_anova(df, value_col = 'stay_duration_days', group_col = 'animal_type') -> AnovaResult:
    groups = _groups(df, value_col, group_col)
    samples = list(groups.values())
    if all(np.ptp(values) == 0 for values in samples):
        raise InsufficientDataError(f'{value_col} has no variation within any {group_col} group')

    f_statistic, p_value = stats.f_oneway(*samples)
    n_total = sum(len(values) for values in samples)
    return AnovaResult(
        factor = group_col,
        f_statistic = _finite(f_statistic, 'ANOVA F statistic'),
        df_between = len(samples) - 1,
        df_within = n_total - len(samples),
        p_value = _finite(p_value, 'ANOVA p-value'),
        group_sizes = {str(name): len(values) for name, values in groups.items()},
        group_means = {str(name): float(values.mean()) for name, values in groups.items()},
    )

def kruskal_wallis(df, value_col = 'stay_duration_days', group_col = 'animal_type') -> KruskalResult:
    groups = _groups(df, value_col, group_col)
    if np.ptp(np.concatenate(list(groups.values()))) == 0:
        raise InsufficientDataError(f'every {value_col} value is identical; ranks cannot differ')
    try:
        h_statistic, p_value = stats.kruskal(*groups.values())
    except ValueError as e:
        raise InsufficientDataError(f'Kruskal-Wallis on {value_col} by {group_col}: {e}') from e

    return KruskalResult(
        factor = group_col,
        h_statistic = _finite(h_statistic, 'Kruskal-Wallis H'),
        df = len(groups) - 1,
        p_value = _finite(p_value, 'Kruskal-Wallis p-value'),
        group_sizes = {str(name): len(values) for name, values in groups.items()},
    )

def dunn_test(df, value_col = 'stay_duration_days', group_col = 'animal_type', adjustment = 'holm', alpha = 0.05) -> DunnResult:
    '''
    Dunn's pairwise comparison of mean ranks (ranks taken over all groups
    together, with the tie correction), two-sided normal p-values, adjusted
    for multiple comparisons with statsmodels' multipletests.
    '''
    groups = _groups(df, value_col, group_col)
    names = [str(name) for name in groups]
    samples = list(groups.values())
    values = np.concatenate(samples)
    n = len(values)

    ranks = stats.rankdata(values)
    bounds = np.cumsum([0] + [len(s) for s in samples])
    mean_ranks = [ranks[bounds[i]:bounds[i + 1]].mean() for i in range(len(samples))]

    _, tie_counts = np.unique(values, return_counts = True)
    tie_term = np.sum(tie_counts ** 3 - tie_counts) / (12.0 * (n - 1))
    spread = n * (n + 1) / 12.0 - tie_term
    if spread <= 0:
        raise InsufficientDataError(f'every {value_col} value is tied; ranks cannot be compared')

    index_pairs = list(combinations(range(len(samples)), 2))
    z_values, raw_p = [], []
    for i, j in index_pairs:
        se = np.sqrt(spread * (1.0 / len(samples[i]) + 1.0 / len(samples[j])))
        z = (mean_ranks[i] - mean_ranks[j]) / se
        z_values.append(float(z))
        raw_p.append(float(2 * stats.norm.sf(abs(z))))

    reject, adjusted, _, _ = multipletests(raw_p, alpha = alpha, method = adjustment)
    pairs = tuple(
        DunnPair(
            group_a = names[i], group_b = names[j],
            z_statistic = z, p_value = p,
            adjusted_p_value = float(adj), reject = bool(rej)
        )
        for (i, j), z, p, adj, rej in zip(index_pairs, z_values, raw_p, adjusted, reject)
    )
    return DunnResult(factor = group_col, adjustment = adjustment, pairs = pairs)

def two_sample_t_test(a, b, equal_var = False, alpha = 0.05, labels = ('a', 'b')) -> TTestResult:
    a = np.asarray(a, dtype = float)
    b = np.asarray(b, dtype = float)
    if len(a) < 2 or len(b) < 2:
        raise InsufficientDataError(
            f't-test needs at least 2 observations per group, found {len(a)} and {len(b)}'
        )

    na, nb = len(a), len(b)
    va, vb = a.var(ddof = 1), b.var(ddof = 1)
    if equal_var:
        df = na + nb - 2
        pooled = ((na - 1) * va + (nb - 1) * vb) / df
        se = np.sqrt(pooled * (1.0 / na + 1.0 / nb))
    else:
        se = np.sqrt(va / na + vb / nb)
        df = (va / na + vb / nb) ** 2 / ((va / na) ** 2 / (na - 1) + (vb / nb) ** 2 / (nb - 1)) if se > 0 else np.nan
    if se == 0:
        raise InsufficientDataError('t-test groups both have zero variance')

    result = stats.ttest_ind(a, b, equal_var = equal_var)
    difference = float(a.mean() - b.mean())
    margin = stats.t.ppf(1 - alpha / 2, df) * se
    return TTestResult(
        equal_var = equal_var,
        t_statistic = float(result.statistic),
        df = float(df),
        p_value = float(result.pvalue),
        mean_a = float(a.mean()),
        mean_b = float(b.mean()),
        n_a = na,
        n_b = nb,
        mean_difference = difference,
        ci_low = float(difference - margin),
        ci_high = float(difference + margin),
        confidence = 1 - alpha,
        labels = tuple(labels),
    )

def welch_t_test(df, value_col = 'stay_duration_days', group_col = 'adoption_outcome', equal_var = False, alpha = 0.05) -> TTestResult:
    '''
    stay duration of adopted animals against every other outcome; records
    still in care (<NA> adoption_outcome) belong to neither group even when
    they carry an outcome date
    '''
    groups = _groups(df, value_col, group_col)
    if set(groups) != {True, False}:
        raise InsufficientDataError(f'{group_col} must split the data into True and False groups')
    return two_sample_t_test(
        groups[True], groups[False],
        equal_var = equal_var, alpha = alpha, labels = ('adopted', 'not_adopted')
    )

def contingency_table(df, row, column) -> pd.DataFrame:
    data = df[[row, column]].dropna()
    table = pd.crosstab(data[row], data[column])
    if table.shape[0] < 2 or table.shape[1] < 2:
        raise InsufficientDataError(
            f'{row} x {column} table is {table.shape[0]}x{table.shape[1]}; need at least 2x2'
        )
    return table

def simulated_p_value(observed, n_simulations = 2000, seed = None) -> float:
    '''
    Monte-Carlo p-value for the Pearson statistic: tables with the observed
    margins are drawn by shuffling column labels against row labels.
    '''
    observed = np.asarray(observed, dtype = float)
    n_rows, n_cols = observed.shape
    row_totals = observed.sum(axis = 1)
    col_totals = observed.sum(axis = 0)
    expected = np.outer(row_totals, col_totals) / observed.sum()
    statistic = _pearson_statistic(observed, expected)

    rng = np.random.default_rng(seed)
    row_labels = np.repeat(np.arange(n_rows), row_totals.astype(int))
    col_labels = np.repeat(np.arange(n_cols), col_totals.astype(int))
    simulated = np.empty(n_simulations)
    for k in range(n_simulations):
        cells = row_labels * n_cols + rng.permutation(col_labels)
        table = np.bincount(cells, minlength = n_rows * n_cols).reshape(n_rows, n_cols)
        simulated[k] = _pearson_statistic(table, expected)

    #tolerance so ties with the observed statistic count as extreme
    threshold = statistic / (1 + 64 * np.finfo(float).eps)
    return float((1 + np.sum(simulated >= threshold)) / (n_simulations + 1))

def chi_squared_test(df, row, column, simulate = 'auto', n_simulations = 2000, seed = None, min_expected = 5.0) -> ChiSquaredResult:
    '''
    Pearson chi-squared test of independence without continuity correction.
    With simulate='auto' the p-value is simulated whenever an expected count
    falls below min_expected; True and False force either method.
    '''
    if simulate not in SIMULATE_CHOICES:
        raise ValueError(f'simulate must be one of {SIMULATE_CHOICES}, got {simulate!r}')

    table = contingency_table(df, row, column)
    observed = table.to_numpy()
    statistic, p_value, dof, expected = stats.chi2_contingency(observed, correction = False)

    sparse = bool((expected < min_expected).any())
    use_simulation = sparse if simulate == 'auto' else simulate
    if use_simulation:
        p_value = simulated_p_value(observed, n_simulations = n_simulations, seed = seed)

    return ChiSquaredResult(
        row = row,
        column = column,
        statistic = float(statistic),
        dof = int(dof),
        p_value = float(p_value),
        method = 'monte_carlo' if use_simulation else 'asymptotic',
        n_obs = int(observed.sum()),
        min_expected_count = float(expected.min()),
        cramers_v = _cramers_v(statistic, observed.sum(), observed.shape),
        n_simulations = n_simulations if use_simulation else 0,
        seed = seed if use_simulation else None,
    )

def cramers_v(table) -> float:
    '''Cramér's V of a contingency table, between 0 and 1'''
    observed = np.asarray(table, dtype = float)
    if observed.ndim != 2 or min(observed.shape) < 2:
        raise InsufficientDataError(f'Cramér\'s V needs at least a 2x2 table, got shape {observed.shape}')
    statistic = stats.chi2_contingency(observed, correction = False)[0]
    return _cramers_v(statistic, observed.sum(), observed.shape)


'''

battery

'''
def _run(name, func, *args, **kwargs) -> BatteryEntry:
    print(f'\nrunning {name}')
    try:
        return BatteryEntry(name = name, result = func(*args, **kwargs))
    except (ValueError, np.linalg.LinAlgError) as e:
        #InsufficientDataError is a ValueError
        print(f'ERROR in {name}: {e}')
        return BatteryEntry(name = name, error = str(e))

def run_test_battery(df, config = None) -> Dict[str, BatteryEntry]:
    header()
    print('Beginning the statistical test battery')
    if config is None:
        config = AnalysisConfig()

    outcomes = {}
    def record(outcome):
        outcomes[outcome.name] = outcome
        return outcome

    record(_run('linear_model', fit_stay_model, df))
    record(_run('anova_animal_type', one_way_anova, df))
    kruskal = record(_run('kruskal_animal_type', kruskal_wallis, df))

    if kruskal.status != 'ok':
        record(BatteryEntry(name = 'dunn_animal_type', skipped = 'Kruskal-Wallis did not run'))
    elif kruskal.result.p_value >= config.alpha:
        record(BatteryEntry(
            name = 'dunn_animal_type',
            skipped = f'Kruskal-Wallis p-value {kruskal.result.p_value:.4g} not below {config.alpha}'
        ))
    else:
        record(_run('dunn_animal_type', dunn_test, df, adjustment = config.dunn_adjustment, alpha = config.alpha))

    record(_run('t_test_adopted', welch_t_test, df, equal_var = config.equal_var, alpha = config.alpha))

    for row, column in CHI_SQUARED_PAIRS:
        record(_run(
            f'chi_squared_{row}_{column}', chi_squared_test, df, row, column,
            n_simulations = config.n_simulations,
            seed = config.random_seed,
            min_expected = config.min_expected_count,
        ))

    failed = [name for name, outcome in outcomes.items() if outcome.status == 'error']
    print(f'\n...{len(outcomes) - len(failed)} of {len(outcomes)} tests without errors')
    return outcomes

def _flatten(prefix, value):
    if isinstance(value, dict):
        for key, inner in value.items():
            yield from _flatten(f'{prefix}[{key}]', inner)
    elif isinstance(value, (list, tuple)):
        for i, inner in enumerate(value):
            yield from _flatten(f'{prefix}[{i}]', inner)
    else:
        yield prefix, value

def summary_table(outcomes) -> pd.DataFrame:
    '''one row per reported statistic, ready for export to the dashboard'''
    rows = []
    for name, outcome in outcomes.items():
        if outcome.status != 'ok':
            rows.append({'test': name, 'statistic': outcome.status, 'value': outcome.error or outcome.skipped})
            continue
        for key, value in outcome.result.to_dict().items():
            for statistic, flat in _flatten(key, value):
                rows.append({'test': name, 'statistic': statistic, 'value': flat})
    return pd.DataFrame(rows, columns = ['test', 'statistic', 'value'])
