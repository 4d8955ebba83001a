"""Normalizers for NYC Open Data (Socrata) datasets.

Each function takes the raw row list returned by the Socrata resource
endpoint and returns the dashboard payload for one panel.
"""

from datetime import datetime, timedelta
from typing import Optional

from logic.formatting import (
    format_calendar_date,
    format_currency,
    format_date_time,
    format_percent_change,
    iso_timestamp,
    to_float,
    truncate,
    utc_now,
)


SOURCE = "nyc-open-data"

SERVICE_REQUESTS_DATASET = "erm2-nwe9"
BUDGET_DATASET = "mwzb-yiwb"
LEGISLATION_DATASET = "6ctv-n46c"
MMR_DATASET = "2jrp-puwz"


def _pick(record: dict, *fields: str, default=""):
    for name in fields:
        value = record.get(name)
        if value:
            return value
    return default


# ============================================================================
# 311 Service Requests
# ============================================================================

def service_request_date_filter(now: Optional[datetime] = None, days: int = 7) -> str:
    """YYYY-MM-DD date ``days`` before now, for the $where clause."""
    now = now or utc_now()
    return (now - timedelta(days=days)).strftime("%Y-%m-%d")


def normalize_service_requests(aggregated: list[dict], recent: list[dict]) -> dict:
    """Summarize 311 complaints by type and agency.

    Args:
        aggregated: Rows of (complaint_type, agency, count) from the grouped query
        recent: Most recent individual requests

    Returns:
        Dict with totals, top complaint types (15), top agencies (10),
        and the 10 most recent requests
    """
    by_complaint_type: dict[str, int] = {}
    by_agency: dict[str, dict] = {}
    total_complaints = 0

    for record in aggregated:
        complaint_type = record.get("complaint_type") or "Other"
        agency = record.get("agency") or "Unknown"
        count = int(to_float(record.get("count"), 0.0) or 0)

        total_complaints += count
        by_complaint_type[complaint_type] = by_complaint_type.get(complaint_type, 0) + count

        bucket = by_agency.setdefault(agency, {"count": 0, "types": []})
        bucket["count"] += count
        bucket["types"].append({"type": complaint_type, "count": count})

    top_complaint_types = sorted(
        ({"type": name, "count": count} for name, count in by_complaint_type.items()),
        key=lambda item: item["count"],
        reverse=True,
    )[:15]

    top_agencies = sorted(
        (
            {
                "agency": agency,
                "count": bucket["count"],
                "topTypes": sorted(bucket["types"], key=lambda t: t["count"], reverse=True)[:3],
            }
            for agency, bucket in by_agency.items()
        ),
        key=lambda item: item["count"],
        reverse=True,
    )[:10]

    recent_requests = [
        {
            "complaintType": req.get("complaint_type") or "Unknown",
            "descriptor": req.get("descriptor") or "",
            "agency": req.get("agency") or "",
            "status": req.get("status") or "",
            "createdDate": format_date_time(req.get("created_date")),
            "borough": req.get("borough") or "",
            "locationType": req.get("location_type") or "",
        }
        for req in recent[:10]
    ]

    return {
        "updatedAt": iso_timestamp(),
        "period": "Last 7 days",
        "totalComplaints": total_complaints,
        "topComplaintTypes": top_complaint_types,
        "topAgencies": top_agencies,
        "recentRequests": recent_requests,
        "source": SOURCE,
        "dataset": "311-service-requests",
    }


# ============================================================================
# Expense Budget
# ============================================================================

def normalize_budget(data: list[dict]) -> dict:
    """Total adopted and modified budget per agency (top 20 by adopted)."""
    agency_budgets: dict[str, dict] = {}
    latest_fiscal_year = ""

    for record in data:
        agency = _pick(record, "agency_name", "agency", default="Unknown")
        fiscal_year = str(_pick(record, "fiscal_year", "publication_date"))
        adopted = to_float(_pick(record, "adopted_budget_amount", "adopted_budget", "adopted", default=0), 0.0)
        modified = to_float(
            _pick(record, "current_modified_budget_amount", "current_modified_budget", "modified", default=0),
            0.0,
        )
        budget_code = _pick(record, "budget_code_name", "unit_appropriation_name", "budget_code")

        if not latest_fiscal_year or fiscal_year > latest_fiscal_year:
            latest_fiscal_year = fiscal_year

        budget = agency_budgets.setdefault(agency, {
            "agency": agency,
            "fiscalYear": fiscal_year,
            "adoptedTotal": 0.0,
            "modifiedTotal": 0.0,
            "categories": [],
        })
        budget["adoptedTotal"] += adopted
        budget["modifiedTotal"] += modified

        if budget_code and (adopted > 0 or modified > 0):
            budget["categories"].append({"name": budget_code, "adopted": adopted, "modified": modified})

    items = []
    for budget in agency_budgets.values():
        if budget["adoptedTotal"] <= 0:
            continue
        top_categories = sorted(budget["categories"], key=lambda c: c["adopted"], reverse=True)[:3]
        items.append({
            "agency": budget["agency"],
            "fiscalYear": budget["fiscalYear"],
            "adoptedBudget": format_currency(budget["adoptedTotal"]),
            "modifiedBudget": format_currency(budget["modifiedTotal"]),
            "adoptedRaw": budget["adoptedTotal"],
            "modifiedRaw": budget["modifiedTotal"],
            "change": format_percent_change(budget["adoptedTotal"], budget["modifiedTotal"]),
            "topCategories": [
                {"name": c["name"], "adopted": format_currency(c["adopted"])}
                for c in top_categories
            ],
        })

    items.sort(key=lambda item: item["adoptedRaw"], reverse=True)
    items = items[:20]

    total_adopted = sum(item["adoptedRaw"] for item in items)
    total_modified = sum(item["modifiedRaw"] for item in items)

    return {
        "updatedAt": iso_timestamp(),
        "fiscalYear": latest_fiscal_year,
        "totalAdopted": format_currency(total_adopted),
        "totalModified": format_currency(total_modified),
        "items": items,
        "source": SOURCE,
        "dataset": "expense-budget",
        "count": len(items),
    }


# ============================================================================
# City Council Legislation
# ============================================================================

def normalize_legislation(data: list[dict]) -> dict:
    """Split recent legislation into enacted local laws and pending bills."""
    items = []
    for record in data:
        name = _pick(record, "name", "title", "local_law")
        if not name:
            continue
        local_law = _pick(record, "local_law", "local_law_number")
        items.append({
            "introNumber": _pick(record, "int_no", "intro_number", "file_number"),
            "name": truncate(name, 150),
            "status": _pick(record, "status", "current_status"),
            "introDate": format_calendar_date(_pick(record, "intro_date", "introduced_date")),
            "sponsor": _pick(record, "sponsor", "prime_sponsor"),
            "committee": record.get("committee") or "",
            "localLaw": local_law,
            "enactmentDate": format_calendar_date(record.get("enactment_date")),
            "isLocalLaw": bool(local_law),
        })

    return {
        "updatedAt": iso_timestamp(),
        "localLaws": [item for item in items if item["isLocalLaw"]][:10],
        "pendingBills": [item for item in items if not item["isLocalLaw"]][:15],
        "source": SOURCE,
        "dataset": "city-council-legislation",
        "count": len(items),
    }


# ============================================================================
# Mayor's Management Report
# ============================================================================

def normalize_mmr(data: list[dict]) -> dict:
    """Group performance indicators by agency (15 agencies, 5 metrics each)."""
    agency_metrics: dict[str, dict] = {}

    for record in data:
        agency = _pick(record, "agency_name", "agency", default="Unknown Agency")
        indicator = _pick(record, "indicator_name", "indicator")
        fiscal_year = record.get("fiscal_year") or ""
        actual = _pick(record, "actual", "value")

        bucket = agency_metrics.setdefault(agency, {"agency": agency, "metrics": [], "fiscalYear": fiscal_year})
        if indicator and actual:
            bucket["metrics"].append({
                "indicator": indicator,
                "actual": actual,
                "target": record.get("target") or "",
                "fiscalYear": fiscal_year,
            })

    items = [
        {
            "agency": bucket["agency"],
            "fiscalYear": bucket["fiscalYear"],
            "metrics": bucket["metrics"][:5],
            "metricCount": len(bucket["metrics"]),
        }
        for bucket in agency_metrics.values()
        if bucket["metrics"]
    ][:15]

    return {
        "updatedAt": iso_timestamp(),
        "items": items,
        "source": SOURCE,
        "dataset": "mayors-management-report",
        "count": len(items),
        "totalRecords": len(data),
    }
