"""Pytest configuration for repository-relative imports and shared datasets."""

import os
import sys

import matplotlib
import numpy as np
import pandas as pd
import pytest

SRC = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src"))
if SRC not in sys.path:
    sys.path.insert(0, SRC)

matplotlib.use("Agg")


@pytest.fixture
def rxntime():
    """Reaction times: 12 subjects x 80 trials, Littered x FarAway fully balanced (480/480)."""
    rng = np.random.default_rng(2024)
    n_subjects, per_subject = 12, 80
    subjects = np.repeat(np.arange(1, n_subjects + 1), per_subject)
    littered = np.tile(np.repeat(["no", "yes"], per_subject // 2), n_subjects)
    faraway = np.tile(np.tile(np.repeat(["no", "yes"], per_subject // 4), 2), n_subjects)
    subject_effect = rng.normal(0, 60, n_subjects)[subjects - 1]
    rt = (
        500.0
        + 87.0 * (littered == "yes")
        + 50.0 * (faraway == "yes")
        + subject_effect
        + rng.normal(0, 100, len(subjects))
    )
    return pd.DataFrame(
        {
            "Subject": subjects,
            "Littered": littered,
            "FarAway": faraway,
            "PictureTarget.RT": rt,
        }
    )


@pytest.fixture
def ut2000():
    """GPA against standardized SAT scores for 10 schools of unequal size."""
    rng = np.random.default_rng(7)
    sizes = [60, 45, 80, 50, 70, 40, 65, 55, 75, 12]
    schools = np.repeat([f"School{i:02d}" for i in range(len(sizes))], sizes)
    school_idx = np.repeat(np.arange(len(sizes)), sizes)
    n = len(schools)

    sat_v = rng.normal(0, 1, n)
    sat_q = rng.normal(0, 1, n)
    intercepts = rng.normal(0, 0.8, len(sizes))[school_idx]
    slopes = rng.normal(0.5, 0.3, len(sizes))[school_idx]
    gpa = 3.0 + 0.3 * sat_v + slopes * sat_q + intercepts + rng.normal(0, 0.5, n)
    return pd.DataFrame({"SAT.V": sat_v, "SAT.Q": sat_q, "School": schools, "GPA": gpa})
