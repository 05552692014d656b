#!/usr/bin/env python3
"""
Generates a product import template, a matching upload and a scan config
for trying sheet-intake.

Run from the repo root:
    python sample-data/generate_xlsx.py
    sheet-intake check sample-data/product_template.xlsx sample-data/product_upload.xlsx \
        --config sample-data/product_config.json
    sheet-intake scan sample-data/product_upload.xlsx --config sample-data/product_config.json \
        --template sample-data/product_template.xlsx -o sample-data/out

Problems baked in:
  Upload "Products"
    - Extra per-language columns after the fixed ones: name_fr, name_de
    - SKU P-002 spans two rows (unique column 0 groups them)
    - Row 7 is blank
    - Row 8 has no name (required field)
    - Row 9 has "twelve" as a quantity (decodes to 0, flagged as required)
"""

import json
from pathlib import Path

import openpyxl

HERE = Path(__file__).parent
TEMPLATE = HERE / "product_template.xlsx"
UPLOAD = HERE / "product_upload.xlsx"
CONFIG = HERE / "product_config.json"

HEADER = ["sku", "name", "quantity", "price", "name_en"]
HINTS = ["Stock keeping unit", "Display name", "Units on hand", "Unit price", "Per-language names"]

# ── Template ─────────────────────────────────────────────────────────────────
wb = openpyxl.Workbook()
ws = wb.active
ws.title = "Products"
ws.append(HEADER)
ws.append(HINTS)
wb.save(TEMPLATE)

# ── Upload ───────────────────────────────────────────────────────────────────
wb = openpyxl.Workbook()
ws = wb.active
ws.title = "Products"
ws.append(HEADER + ["name_fr", "name_de"])
ws.append(HINTS)
rows = [
    ["P-001", "Desk lamp",  4,        19.99, "Desk lamp",  "Lampe",       "Lampe"],       # row 3
    ["P-002", "Chair",      10,       45.00, "Chair",      "Chaise",      "Stuhl"],       # row 4
    ["P-002", "Chair",      2,        45.00, "Chair",      "Chaise",      "Stuhl"],       # row 5
    ["P-003", "Bookshelf",  1,        89.50, "Bookshelf",  "Etagere",     "Regal"],       # row 6
    [None,    None,         None,     None,  None,         None,          None],          # row 7, blank
    ["P-004", None,         3,        12.00, "Mug",        "Tasse",       "Becher"],      # row 8
    ["P-005", "Notebook",   "twelve", 3.25,  "Notebook",   "Carnet",      "Notizbuch"],   # row 9
]
for row in rows:
    ws.append(row)
wb.save(UPLOAD)

# ── Config ───────────────────────────────────────────────────────────────────
config = {
    "schema": [
        {"name": "sku", "kind": "string"},
        {"name": "name", "kind": "string"},
        {"name": "quantity", "kind": "uint"},
        {"name": "price", "kind": "float"},
        {"name": "names", "kind": "extra"},
    ],
    "skip_rows": 2,
    "max_rows": 1000,
    "unique_columns": [0],
    "write_back_mode": "any-row",
    "required": ["sku", "name", "quantity"],
    "header_rules": {
        "fixed_columns": 4,
        "groups": [
            {"values": ["name_en", "name_fr", "name_de"], "repeating": False},
        ],
    },
}
CONFIG.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")

print(f"Created: {TEMPLATE}")
print(f"Created: {UPLOAD}")
print(f"Created: {CONFIG}")
