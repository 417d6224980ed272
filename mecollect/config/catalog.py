from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.disaggregation import Indicator, Period
from ..models.draft import PublicForm

"""Indicator catalog loader.

The catalog is the reference data the CLI works against: indicators with
their disaggregations (and inputs for formula indicators), reporting periods
and public forms. It is a YAML file validated against ``catalog_schema.json``.
"""

__all__ = [
    "Catalog",
    "CatalogError",
    "load_catalog",
]

logger = logging.getLogger(__name__)

CATALOG_SCHEMA_PATH = Path(__file__).parent / "catalog_schema.json"


class CatalogError(Exception):
    pass


@dataclass
class Catalog:
    indicators: dict[str, Indicator] = field(default_factory=dict)
    periods: dict[str, Period] = field(default_factory=dict)
    forms: dict[str, PublicForm] = field(default_factory=dict)  # share_token -> form

    def indicator(self, indicator_id: str) -> Indicator:
        try:
            return self.indicators[str(indicator_id)]
        except KeyError:
            raise CatalogError(f"unknown indicator: {indicator_id}") from None

    def period(self, period_id: str) -> Period:
        try:
            return self.periods[str(period_id)]
        except KeyError:
            raise CatalogError(f"unknown period: {period_id}") from None

    def form(self, share_token: str) -> PublicForm:
        try:
            return self.forms[share_token]
        except KeyError:
            raise CatalogError(f"no form for share token: {share_token}") from None

    def context(self, indicator_id: str, period_id: str) -> tuple[Indicator, Period]:
        """Indicator and period, checking that the period belongs to the indicator."""
        indicator = self.indicator(indicator_id)
        period = self.period(period_id)
        if period.indicator_id != indicator.id:
            raise CatalogError(
                f"period {period.id} ({period.period_key}) belongs to indicator "
                f"{period.indicator_id}, not {indicator.id}"
            )
        return indicator, period


def _validate(data: dict[str, Any]) -> None:
    try:
        schema = json.loads(CATALOG_SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except (OSError, json.JSONDecodeError) as e:
        raise CatalogError(f"catalog schema unavailable: {e}") from e
    except ValidationError as e:
        raise CatalogError(f"catalog validation failed: {e.message}") from e


def load_catalog(path: Path) -> Catalog:
    if not path.exists():
        raise CatalogError(f"catalog file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise CatalogError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise CatalogError("catalog root must be a mapping")

    _validate(data)

    catalog = Catalog()
    for raw in data.get("indicators") or []:
        indicator = Indicator.from_dict(raw)
        if indicator.id in catalog.indicators:
            raise CatalogError(f"duplicate indicator id: {indicator.id}")
        catalog.indicators[indicator.id] = indicator
    for raw in data.get("periods") or []:
        period = Period.from_dict(raw)
        if period.indicator_id not in catalog.indicators:
            raise CatalogError(f"period {period.id} references unknown indicator {period.indicator_id}")
        catalog.periods[period.id] = period
    for raw in data.get("forms") or []:
        indicator, period = catalog.context(str(raw["indicator_id"]), str(raw["period_id"]))
        form = PublicForm(
            id=str(raw["id"]),
            share_token=raw["share_token"],
            title=raw["title"],
            indicator=indicator,
            period=period,
            require_name=bool(raw.get("require_name", False)),
            require_email=bool(raw.get("require_email", False)),
            require_phone=bool(raw.get("require_phone", False)),
            thank_you_message=raw.get("thank_you_message", "Your response has been recorded."),
        )
        catalog.forms[form.share_token] = form

    logger.debug(
        f"catalog loaded: indicators={len(catalog.indicators)} periods={len(catalog.periods)} "
        f"forms={len(catalog.forms)}"
    )
    return catalog
