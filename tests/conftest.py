# Shared pytest fixtures
from __future__ import annotations
import tempfile
from pathlib import Path

import pytest

from mecollect.config.catalog import Catalog, load_catalog
from mecollect.models.disaggregation import Indicator, Period


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "exports").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_catalog_yaml() -> str:
    return """indicators:
  - id: ind-enrol
    name: Children enrolled
    type: quantitative
    unit: people
    calc_type: direct
    disaggregations:
      - id: d-gender
        name: Gender
        values:
          - {id: v-male, value_label: Male, sort_order: 2}
          - {id: v-female, value_label: Female, sort_order: 1}
      - id: d-grade
        name: Grade
        values:
          - {id: v-g1, value_label: Grade 1, sort_order: 1}
          - {id: v-g2, value_label: Grade 2, sort_order: 2}
          - {id: v-g3, value_label: Grade 3, sort_order: 3}
  - id: ind-pass
    name: Pass rate
    type: quantitative
    unit: "%"
    calc_type: formula
    inputs:
      - id: in-passed
        name: Students passed
        unit: people
        disaggregations:
          - id: d-gender
            name: Gender
            values:
              - {id: v-female, value_label: Female, sort_order: 1}
              - {id: v-male, value_label: Male, sort_order: 2}
      - id: in-sat
        name: Students sat
        unit: people
        is_required: false
  - id: ind-total
    name: Households reached
    unit: households
  - id: ind-story
    name: Most significant change
    type: qualitative
    unit: text
    disaggregations:
      - id: d-region
        name: Region
        values:
          - {id: v-north, value_label: North, sort_order: 1}
          - {id: v-south, value_label: South, sort_order: 2}
periods:
  - {id: p-enrol-q1, period_key: 2024-Q1, indicator_id: ind-enrol}
  - {id: p-enrol-q2, period_key: 2024-Q2, indicator_id: ind-enrol}
  - {id: p-pass-2024, period_key: "2024", indicator_id: ind-pass}
  - {id: p-total-q1, period_key: 2024-Q1, indicator_id: ind-total}
  - {id: p-story-q1, period_key: 2024-Q1, indicator_id: ind-story}
forms:
  - id: form-1
    share_token: enrol-q1-public
    title: School enrolment survey
    indicator_id: ind-enrol
    period_id: p-enrol-q1
    require_name: true
  - id: form-2
    share_token: pass-2024-public
    title: Exam results
    indicator_id: ind-pass
    period_id: p-pass-2024
"""


@pytest.fixture()
def sample_config_yaml() -> str:
    return """catalog: config/catalog.yml
cache_directory: cache
logs_directory: logs
export:
  output_directory: exports
  extra_blank_rows: 3
  template_rows: 10
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str, sample_catalog_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "mecollect.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    (temp_workdir / "config" / "catalog.yml").write_text(sample_catalog_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def catalog(tmp_path: Path, sample_catalog_yaml: str) -> Catalog:
    path = tmp_path / "catalog.yml"
    path.write_text(sample_catalog_yaml, encoding="utf-8")
    return load_catalog(path)


@pytest.fixture()
def direct_indicator(catalog: Catalog) -> Indicator:
    return catalog.indicator("ind-enrol")


@pytest.fixture()
def direct_period(catalog: Catalog) -> Period:
    return catalog.period("p-enrol-q1")


@pytest.fixture()
def formula_indicator(catalog: Catalog) -> Indicator:
    return catalog.indicator("ind-pass")


@pytest.fixture()
def formula_period(catalog: Catalog) -> Period:
    return catalog.period("p-pass-2024")
