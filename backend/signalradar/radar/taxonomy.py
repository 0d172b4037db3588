from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SignalGroup:
    label: str
    items: tuple[str, ...]


SIGNAL_GROUPS: tuple[SignalGroup, ...] = (
    SignalGroup(
        "Validation & Quality",
        (
            "CSV_HIRING",
            "ANNEX11_HIRING",
            "DATA_INTEGRITY_HIRING",
            "QA_SYSTEMS_HIRING",
            "AUDIT_READINESS",
            "GXP_COMPLIANCE",
            "ELECTRONIC_RECORDS",
            "ELECTRONIC_SIGNATURES",
            "QUALITY_COMPLIANCE",
            "QUALITY_ENGINEERING",
            "QUALITY_ASSURANCE",
        ),
    ),
    SignalGroup(
        "Manufacturing & Operations",
        (
            "MANUFACTURING_MANAGEMENT",
            "MANUFACTURING_ENGINEERING",
            "PROCESS_ENGINEERING",
            "PRODUCTION_ENGINEERING",
            "OPERATIONS_MANAGEMENT",
            "TECHNICAL_OPERATIONS",
            "CONTINUOUS_IMPROVEMENT",
            "LEAN_MANUFACTURING",
            "OPERATIONAL_EXCELLENCE",
        ),
    ),
    SignalGroup(
        "Automation & Digital",
        (
            "INDUSTRIAL_AUTOMATION",
            "PLC_SCADA",
            "DCS_AUTOMATION",
            "ROBOTICS_AUTOMATION",
            "INDUSTRY_4_0",
            "SMART_FACTORY",
            "DIGITAL_MANUFACTURING",
        ),
    ),
    SignalGroup(
        "MES / LIMS / MOM",
        (
            "MES_LIMS_HIRING",
            "MES_IMPLEMENTATION",
            "LIMS_ADMIN",
            "MOM_SYSTEMS",
            "SHOP_FLOOR_SYSTEMS",
            "BATCH_RECORDS",
            "ELECTRONIC_BATCH_RECORDS",
        ),
    ),
    SignalGroup(
        "Traceability & Supply Chain",
        (
            "SERIALIZATION_HIRING",
            "TRACK_AND_TRACE",
            "TRACEABILITY_PROGRAM",
            "SUPPLY_CHAIN_VISIBILITY",
            "WAREHOUSE_SYSTEMS",
            "WMS_TMS",
            "LOGISTICS_TECH",
            "ANTI_COUNTERFEITING",
        ),
    ),
    SignalGroup(
        "IT & Architecture",
        (
            "IT_OT_CONVERGENCE",
            "SYSTEMS_INTEGRATION",
            "ENTERPRISE_ARCHITECTURE",
            "SAP_MANUFACTURING",
            "ERP_INTEGRATION",
            "DATA_ARCHITECTURE",
            "MASTER_DATA_MANAGEMENT",
        ),
    ),
    SignalGroup(
        "CapEx & Facilities",
        (
            "CAPITAL_PROJECTS",
            "FACILITY_EXPANSION",
            "NEW_SITE_STARTUP",
            "GREENFIELD_SITE",
            "BROWNFIELD_UPGRADE",
            "ENGINEERING_PROJECTS",
            "TECH_TRANSFER",
        ),
    ),
    SignalGroup(
        "Sustainability",
        (
            "SUSTAINABILITY_SYSTEMS",
            "CARBON_TRACKING",
            "CSRD_READINESS",
            "EUDR_COMPLIANCE",
            "DIGITAL_PRODUCT_PASSPORT",
            "RESPONSIBLE_SOURCING",
        ),
    ),
)

SIGNAL_TYPES: tuple[str, ...] = tuple(t for g in SIGNAL_GROUPS for t in g.items)

# Catch-all used by ingestion when no rule matched. Not selectable in filters.
OTHER_SIGNAL_TYPE = "OTHER"

DIGEST_FREQUENCIES: tuple[str, ...] = ("daily", "weekly", "instant")

HOT_THRESHOLD = 150
WARM_THRESHOLD = 100


def pretty_signal(signal_type: str) -> str:
    return " ".join(w.capitalize() for w in (signal_type or "").split("_") if w)


def score_band(score: float) -> str:
    if score >= HOT_THRESHOLD:
        return "Hot"
    if score >= WARM_THRESHOLD:
        return "Warm"
    return "Low"
