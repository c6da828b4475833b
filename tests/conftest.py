"""Shared fixtures: small synthetic intake/outcome tables."""

from __future__ import annotations

import numpy as np
import pandas as pd
import pytest


def make_raw(rows: list[dict]) -> pd.DataFrame:
    """Build a raw table with the county export's column names."""
    defaults = {
        "Animal ID": None,
        "Type": "CAT",
        "Intake Type": "STRAY",
        "Intake Date": "2020-01-01",
        "Outcome Type": None,
        "Outcome Date": None,
        "Intake Condition": "HEALTHY",
        "Kennel Number": "DA01",
        "Breed": "DOMESTIC SH",
        "Color": "BLACK",
    }
    filled = []
    for n, row in enumerate(rows):
        record = dict(defaults, **row)
        if record["Animal ID"] is None:
            record["Animal ID"] = f"A{n:05d}"
        filled.append(record)
    return pd.DataFrame(filled, columns=list(defaults))


@pytest.fixture
def example_records() -> pd.DataFrame:
    """The two-record scenario: one adopted cat, one dog still in care."""
    return make_raw(
        [
            {
                "Animal ID": "A",
                "Type": "CAT",
                "Intake Type": "STRAY",
                "Outcome Type": "ADOPTION",
                "Intake Date": "2020-06-01",
                "Outcome Date": "2020-06-15",
            },
            {
                "Animal ID": "B",
                "Type": "DOG",
                "Intake Type": "CONFISCATED",
                "Outcome Type": None,
                "Intake Date": "2020-01-10",
                "Outcome Date": None,
            },
        ]
    )


@pytest.fixture
def shelter_raw() -> pd.DataFrame:
    """A few hundred seeded records with real group differences in stay length."""
    rng = np.random.default_rng(7)
    animal_types = ["CAT", "DOG", "OTHER"]
    intake_types = ["STRAY", "OWNER SURRENDER", "CONFISCATE"]
    outcome_types = ["ADOPTION", "RETURN TO OWNER", "TRANSFER"]
    base_stay = {"CAT": 30, "DOG": 12, "OTHER": 20}

    rows = []
    for n in range(300):
        animal = animal_types[n % 3]
        intake = pd.Timestamp("2019-01-01") + pd.Timedelta(days=int(rng.integers(0, 700)))
        outcome_type = outcome_types[int(rng.integers(0, 3))]
        stay = int(rng.poisson(base_stay[animal])) + (10 if outcome_type == "ADOPTION" else 0)
        rows.append(
            {
                "Animal ID": f"A{n:05d}",
                "Type": animal,
                "Intake Type": intake_types[int(rng.integers(0, 3))],
                "Intake Date": intake.strftime("%m/%d/%Y %I:%M:%S %p"),
                "Outcome Type": outcome_type,
                "Outcome Date": (intake + pd.Timedelta(days=stay)).strftime("%m/%d/%Y %I:%M:%S %p"),
            }
        )
    rows += [
        {"Type": "DOG", "Intake Date": "03/02/2021 10:00:00 AM"},
        {"Type": "CAT", "Intake Date": "08/19/2021 09:30:00 AM"},
    ]
    return make_raw(rows)
