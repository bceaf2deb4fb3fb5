"""
Pytest configuration and shared fixtures.

The sample tables mimic the raw inputs: eight neighborhoods plus the
"Overall Philadelphia" reference row, seven measures in five
recommendations, and one mortality outcome column.
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
import pandas as pd
import numpy as np

from adherence_index.index_builder import IndexDefinition, IndexMembership
from adherence_index.reshape import reshape_measures_long


SAMPLE_IDS = ["N01", "N02", "N03", "N04", "N05", "N06", "N07", "N08"]
SAMPLE_NAMES = ["Kensington", "Fishtown", "Frankford", "Chestnut Hill",
                "Hunting Park", "Center City", "Manayunk", "Olney"]


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    from adherence_index.paths import get_project_root
    return get_project_root()


@pytest.fixture(scope="session")
def params_config():
    """Load the params.yml configuration."""
    from adherence_index.io_utils import read_yaml
    from adherence_index.paths import paths
    return read_yaml(paths.params_yml)


@pytest.fixture
def sample_measures_wide():
    """Wide measure table with the overall row first and one non-numeric cell."""
    return pd.DataFrame({
        "neighborhood_id": ["P00"] + SAMPLE_IDS,
        "neighborhood_name": ["Overall Philadelphia"] + SAMPLE_NAMES,
        "current_smoking": [21.0, 18, 22, 25, 15, 30, 12, 20, 27],
        "no_leisure_pa": [25.0, 20, 28, 31, 18, 35, 16, 25, 30],
        "obesity": [33.0, 30, 35, 38, 28, 40, 25, 33, 36],
        "binge_drinking": [17.0, 15, 17, 16, 19, 14, 20, 18, 13],
        "mammography": ["72", "75", "70", "68", "78", "65", "80", "72", "n/a"],
        "colon_screening": [63.0, 65, 60, 58, 70, 55, 72, 62, 59],
        "pap_test": [81.0, 82, 80, 79, 85, 77, 86, 81, 78],
        "cancer_mortality_rate": [190.0, 180, 200, 210, 170, 230, 160, 195, 205],
    })


@pytest.fixture
def sample_dictionary():
    """Normalized data dictionary matching sample_measures_wide."""
    return pd.DataFrame({
        "measure_name": ["binge_drinking", "colon_screening", "current_smoking",
                         "mammography", "no_leisure_pa", "obesity", "pap_test"],
        "recommendation_number": pd.Series([3, 6, 1, 5, 2, 2, 6], dtype="int64"),
        "reverse_flag": [True, False, True, False, True, True, False],
        "recommendation_description": [
            "Limit alcohol", "Colorectal screening", "Avoid tobacco",
            "Breast screening", "Be physically active", "Maintain healthy weight",
            "Cervical screening",
        ],
    })


@pytest.fixture
def sample_membership():
    """Lifestyle = recommendations 1-3, preventive = 5-6."""
    return IndexMembership(indices=(
        IndexDefinition("lifestyle", "Lifestyle guidelines", (1, 2, 3)),
        IndexDefinition("preventive", "Preventive-service guidelines", (5, 6)),
    ))


@pytest.fixture
def sample_measures_long(sample_measures_wide, sample_dictionary):
    return reshape_measures_long(
        sample_measures_wide, sample_dictionary,
        exclude_columns=["cancer_mortality_rate"],
    )


@pytest.fixture
def make_measures_long():
    """
    Factory for small long tables.

    make(estimates={"m1": [10, 20, 30, 40]}, recommendations={"m1": 1},
         reverse={"m1": False}, overall={"m1": 1000})
    """
    def make(estimates, recommendations, reverse=None, overall=None):
        reverse = reverse or {}
        n = len(next(iter(estimates.values())))
        ids = [f"N{i:02d}" for i in range(1, n + 1)]
        wide = pd.DataFrame({
            "neighborhood_id": ids,
            "neighborhood_name": [f"Neighborhood {i}" for i in ids],
            **{m: list(v) for m, v in estimates.items()},
        })
        if overall is not None:
            overall_row = {"neighborhood_id": "P00", "neighborhood_name": "Overall Philadelphia"}
            overall_row.update({m: overall.get(m, np.nan) for m in estimates})
            wide = pd.concat([pd.DataFrame([overall_row]), wide], ignore_index=True)

        dictionary = pd.DataFrame({
            "measure_name": list(estimates),
            "recommendation_number": pd.Series(
                [recommendations[m] for m in estimates], dtype="int64"
            ),
            "reverse_flag": [bool(reverse.get(m, False)) for m in estimates],
            "recommendation_description": [f"Recommendation {recommendations[m]}" for m in estimates],
        })
        return reshape_measures_long(wide, dictionary)

    return make


@pytest.fixture
def write_sample_inputs(tmp_path, sample_measures_wide):
    """Write the sample inputs as raw CSVs, dictionary flags spelled Y/N."""
    def write():
        measures_path = tmp_path / "neighborhood_measures.csv"
        dictionary_path = tmp_path / "data_dictionary.csv"
        sample_measures_wide.to_csv(measures_path, index=False)
        pd.DataFrame({
            "measure_name": ["current_smoking", "no_leisure_pa", "obesity", "binge_drinking",
                             "mammography", "colon_screening", "pap_test"],
            "recommendation_number": [1, 2, 2, 3, 5, 6, 6],
            "reverse_flag": ["Y", "Y", "Y", "Y", "N", "N", "N"],
            "recommendation": ["Avoid tobacco", "Be physically active", "Maintain healthy weight",
                               "Limit alcohol", "Breast screening", "Colorectal screening",
                               "Cervical screening"],
        }).to_csv(dictionary_path, index=False)
        return measures_path, dictionary_path

    return write


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "smoke: mark test as smoke test (quick end-to-end sanity checks)"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires pipeline outputs)"
    )
