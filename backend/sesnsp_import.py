"""Rebuild and validate the municipal crime dataset from SESNSP exports.

Input is the municipal incidence CSV published by the Secretariado Ejecutivo
del Sistema Nacional de Seguridad Pública on datos.gob.mx, one row per
municipality and crime type with monthly columns (Ene..Dic).

Usage:
  rutasegura-data update --csv scripts/data/sesnsp_raw.csv
  rutasegura-data update --csv raw.csv --populations populations.json
  rutasegura-data verify
"""

import argparse
import csv
import json
import logging
import sys
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Mapping, Optional

from config import DATA_SOURCE, RISK_DB_PATH
from risk_store import COUNT_FIELDS, Tier, classify_overall_tier

logger = logging.getLogger("rutasegura.sesnsp_import")

MONTHS = ["Ene", "Feb", "Mar", "Abr", "May", "Jun",
          "Jul", "Ago", "Sep", "Oct", "Nov", "Dic"]

# Lowercased "Tipo" value → dataset field
CRIME_TYPE_FIELDS = {
    "secuestro": "secuestro",
    "homicidio": "homicidio_doloso",
    "feminicidio": "homicidio_doloso",
    "robo": "robo",
    "despojo": "despojo",
    "violencia familiar": "violencia_familiar",
    "lesiones": "lesiones_dolosas",
}

IMPORT_DEFAULT_POPULATION = 500_000
SUSPICIOUS_COUNT = 100_000


def _yearly_total(row: Mapping[str, str]) -> int:
    total = 0
    for month in MONTHS:
        value = (row.get(month) or "").strip().replace(",", "")
        try:
            total += int(value)
        except ValueError:
            continue
    return total


def aggregate_rows(
    rows: Iterable[Mapping[str, str]],
    populations: Optional[Mapping[str, int]] = None,
) -> dict[str, dict]:
    """Sum twelve months per municipality and crime category."""
    populations = populations or {}
    municipalities: dict[str, dict] = {}
    for row in rows:
        name = (row.get("Municipio") or "").strip()
        crime_type = (row.get("Tipo") or "").strip().lower()
        if not name or not crime_type:
            continue
        entry = municipalities.setdefault(name, {
            **{f: 0 for f in COUNT_FIELDS},
            "population": populations.get(name, IMPORT_DEFAULT_POPULATION),
        })
        target = CRIME_TYPE_FIELDS.get(crime_type)
        if target:
            entry[target] += _yearly_total(row)

    for entry in municipalities.values():
        entry["risk_level"] = classify_overall_tier(entry).value
    return municipalities


def carry_over_coordinates(municipalities: dict[str, dict], previous: Mapping) -> int:
    """Copy coordinates from the previous dataset; returns how many were copied."""
    old = previous.get("municipalities", {}) if previous else {}
    copied = 0
    for name, entry in municipalities.items():
        coords = old.get(name, {}).get("coordinates")
        if coords:
            entry["coordinates"] = coords
            copied += 1
    return copied


def build_dataset(municipalities: dict[str, dict], now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    return {
        "municipalities": municipalities,
        "metadata": {
            "lastUpdated": now.strftime("%Y-%m"),
            "source": DATA_SOURCE,
            "period": "Últimos 12 meses",
            "generatedAt": now.isoformat(),
        },
    }


def validate_dataset(data: Mapping) -> tuple[list[str], list[str]]:
    """Return (errors, warnings) for a dataset document."""
    errors, warnings = [], []
    municipalities = data.get("municipalities")
    if not isinstance(municipalities, dict):
        errors.append('Missing "municipalities" object')
        municipalities = {}
    elif not municipalities:
        errors.append("Dataset has no municipalities")
    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        errors.append('Missing "metadata" object')
    else:
        for key in ("lastUpdated", "source"):
            if not metadata.get(key):
                warnings.append(f"metadata.{key} is missing")

    valid_tiers = {Tier.LOW.value, Tier.MEDIUM.value, Tier.HIGH.value}
    for name, stats in municipalities.items():
        for f in ("secuestro", "robo", "homicidio_doloso", "risk_level"):
            if f not in stats:
                warnings.append(f'{name}: missing field "{f}"')
        for f in COUNT_FIELDS:
            value = stats.get(f)
            if value is None:
                continue
            if not isinstance(value, int) or value < 0:
                errors.append(f"{name}: invalid count {f}={value!r}")
            elif value > SUSPICIOUS_COUNT:
                warnings.append(f"{name}: suspicious value {f}={value}")
        if "risk_level" in stats and stats["risk_level"] not in valid_tiers:
            errors.append(f'{name}: invalid risk_level "{stats["risk_level"]}"')
        if not stats.get("coordinates"):
            warnings.append(f"{name}: no coordinates, excluded from spatial queries")
    return errors, warnings


def tier_summary(data: Mapping) -> Counter:
    return Counter(m.get("risk_level", "?") for m in data.get("municipalities", {}).values())


def _read_json(path: Path) -> dict:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


# ────────────── Commands ──────────────

def cmd_update(args) -> int:
    csv_path = Path(args.csv)
    if not csv_path.exists():
        logger.error(f"CSV not found: {csv_path}")
        logger.error('Download "SESNSP incidencia delictiva municipal" from https://datos.gob.mx')
        return 1

    populations = _read_json(Path(args.populations)) if args.populations else {}
    with open(csv_path, "r", encoding=args.encoding, newline="") as f:
        rows = list(csv.DictReader(f))
    logger.info(f"Read {len(rows)} rows from {csv_path.name}")

    municipalities = aggregate_rows(rows, populations)
    output = Path(args.output)
    copied = carry_over_coordinates(municipalities, _read_json(output))
    logger.info(f"Processed {len(municipalities)} municipalities ({copied} with coordinates)")

    dataset = build_dataset(municipalities)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(dataset, f, ensure_ascii=False, indent=2)
    logger.info(f"Dataset written to {output}")

    for tier, count in sorted(tier_summary(dataset).items()):
        logger.info(f"  {tier}: {count}")
    return 0


def cmd_verify(args) -> int:
    path = Path(args.db)
    if not path.exists():
        logger.error(f"Dataset not found: {path}. Run 'update' first.")
        return 1
    data = _read_json(path)
    errors, warnings = validate_dataset(data)
    for w in warnings:
        logger.warning(w)
    for e in errors:
        logger.error(e)

    logger.info(f"Municipalities: {len(data.get('municipalities', {}))}")
    for tier, count in sorted(tier_summary(data).items()):
        logger.info(f"  {tier}: {count}")
    logger.info(f"Warnings: {len(warnings)}  Errors: {len(errors)}")
    return 1 if errors else 0


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )
    parser = argparse.ArgumentParser(description="Build and verify the SESNSP municipal risk dataset")
    sub = parser.add_subparsers(dest="command", required=True)

    p_up = sub.add_parser("update", help="Rebuild the dataset from a SESNSP CSV export")
    p_up.add_argument("--csv", required=True, help="Path to the SESNSP municipal CSV")
    p_up.add_argument("--populations", help="JSON file mapping municipality → population")
    p_up.add_argument("--output", default=str(RISK_DB_PATH), help="Dataset path to write")
    p_up.add_argument("--encoding", default="utf-8", help="CSV encoding (SESNSP often ships latin-1)")
    p_up.set_defaults(func=cmd_update)

    p_ver = sub.add_parser("verify", help="Validate the dataset")
    p_ver.add_argument("--db", default=str(RISK_DB_PATH), help="Dataset path to check")
    p_ver.set_defaults(func=cmd_verify)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
