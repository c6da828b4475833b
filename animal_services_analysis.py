'''
runs the capstone analysis end to end: load, clean, derive, describe, test,
export
'''
import argparse
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, List

import pandas as pd

from shelter_cleaning import CleanResult, create_clean_table, header, header2, load_raw_table
from shelter_config import DEFAULT_OUTPUT_DIR, AnalysisConfig
from shelter_describe import (
    adoption_rate_table, close_figures, intake_type_counts, monthly_season_counts,
    outcome_by_animal_crosstab, plot_adoption_rates, plot_monthly_counts,
    plot_stay_duration, stay_duration_summary, table_check
)
from shelter_stats import BatteryEntry, run_test_battery, summary_table


@dataclass
class AnalysisResult:
    clean: CleanResult
    tables: Dict[str, pd.DataFrame]
    tests: Dict[str, BatteryEntry]
    summary: pd.DataFrame


def describe_records(records, config) -> Dict[str, pd.DataFrame]:
    return {
        'monthly_season_counts': monthly_season_counts(records),
        'adoption_rates': adoption_rate_table(records, exclude_types = config.rate_excluded_types),
        'outcome_by_animal': outcome_by_animal_crosstab(records),
        'intake_type_counts': intake_type_counts(records),
        'stay_duration_summary': stay_duration_summary(records),
    }

def run_analysis(raw, config = None) -> AnalysisResult:
    if config is None:
        config = AnalysisConfig()

    clean = create_clean_table(raw, config.exclusions)
    records = clean.records.pipe(table_check, 'clean_records')
    tables = describe_records(records, config)
    tests = run_test_battery(records, config)
    return AnalysisResult(clean = clean, tables = tables, tests = tests, summary = summary_table(tests))

def export_tables(result, output_dir) -> List[Path]:
    header()
    print('Beginning to export tables to CSV files')
    output_dir = Path(output_dir)
    output_dir.mkdir(parents = True, exist_ok = True)

    exports = {
        'clean_records.csv': (result.clean.records, False),
        'parse_issues.csv': (result.clean.parse_issue_table(), False),
        'monthly_season_counts.csv': (result.tables['monthly_season_counts'], False),
        'adoption_rates.csv': (result.tables['adoption_rates'], False),
        'outcome_by_animal.csv': (result.tables['outcome_by_animal'], True),
        'test_summary.csv': (result.summary, False),
    }
    written = []
    for file_name, (table, keep_index) in exports.items():
        path = output_dir / file_name
        table.to_csv(path, index = keep_index)
        written.append(path)
    print('...export complete')
    return written

def export_figures(result, output_dir) -> List[Path]:
    header2()
    print('Beginning to draw figures')
    output_dir = Path(output_dir)
    paths = [
        output_dir / 'monthly_intakes_adoptions.png',
        output_dir / 'adoption_rates.png',
        output_dir / 'stay_duration.png',
    ]
    figures = [
        plot_monthly_counts(result.tables['monthly_season_counts'], paths[0]),
        plot_adoption_rates(result.tables['adoption_rates'], paths[1]),
        plot_stay_duration(result.clean.records, paths[2]),
    ]
    close_figures(figures)
    print('...complete')
    return paths

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description = 'County animal services intake and outcome analysis')
    parser.add_argument('csv', nargs = '?', default = None, help = 'input CSV (defaults to $SHELTER_DATA_CSV or data/)')
    parser.add_argument('--output-dir', default = str(DEFAULT_OUTPUT_DIR))
    parser.add_argument('--seed', type = int, default = AnalysisConfig.random_seed)
    parser.add_argument('--alpha', type = float, default = AnalysisConfig.alpha)
    parser.add_argument('--simulations', type = int, default = AnalysisConfig.n_simulations)
    parser.add_argument('--adjustment', default = AnalysisConfig.dunn_adjustment, help = 'p-value adjustment for Dunn\'s test')
    parser.add_argument('--pooled', action = 'store_true', help = 'pooled-variance t-test instead of Welch')
    parser.add_argument('--no-plots', action = 'store_true')
    return parser

def main(argv = None) -> int:
    args = build_parser().parse_args(argv)
    config = replace(
        AnalysisConfig(),
        alpha = args.alpha,
        random_seed = args.seed,
        n_simulations = args.simulations,
        dunn_adjustment = args.adjustment,
        equal_var = args.pooled,
    )

    raw = load_raw_table(args.csv)
    result = run_analysis(raw, config)
    export_tables(result, args.output_dir)
    if not args.no_plots:
        export_figures(result, args.output_dir)

    print('\n\n\n TEST SUMMARY: ')
    print(result.summary.to_string(index = False))
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
