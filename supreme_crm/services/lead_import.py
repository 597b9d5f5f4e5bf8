"""CSV lead import: dealerships (with a primary contact) and prospects.

Header cells are normalised to lowercase alphanumerics and mapped through a
synonym table, so "Dealership Name", "dealership_name" and "Company" all
land on the same field. Unknown columns are ignored.

Imports are best-effort: every row is committed on its own, and a row that
fails is rolled back and reported without touching the rows around it.
Rows without a name are skipped, not counted as failures.

A lead row may also carry a deal value ("Value" / "Deal Value"). When it
does, the new dealership gets a LEAD-stage deal for that amount, owned by
the importer, so the imported book shows up in the pipeline straight away.
Rows with no value, or a zero, negative or unreadable one, create no deal.

Unlike the other services, this module commits.
"""

import csv
import io
import logging
import re

from flask import current_app
from sqlalchemy import func

from supreme_crm.extensions import db
from supreme_crm.models.activity import Activity
from supreme_crm.models.audit import AuditEvent
from supreme_crm.models.contact import Contact
from supreme_crm.models.deal import STAGE_PROBABILITIES, Deal
from supreme_crm.models.dealership import Dealership
from supreme_crm.models.enums import ActivityType, DealershipStatus, DealStage
from supreme_crm.models.prospect import Prospect
from supreme_crm.services.access import (
    ensure_active,
    visible_dealerships,
    visible_prospects,
)
from supreme_crm.services.prospect_service import create_prospect
from supreme_crm.services.text import clean_or_none, sanitize

logger = logging.getLogger(__name__)

LEAD_HEADER_MAP = {
    "dealershipname": "dealership_name",
    "dealership": "dealership_name",
    "company": "dealership_name",
    "companyname": "dealership_name",
    "name": "dealership_name",
    "firstname": "contact_first_name",
    "contactfirstname": "contact_first_name",
    "first": "contact_first_name",
    "lastname": "contact_last_name",
    "contactlastname": "contact_last_name",
    "last": "contact_last_name",
    "email": "contact_email",
    "contactemail": "contact_email",
    "phone": "phone",
    "contactphone": "contact_phone",
    "title": "contact_title",
    "jobtitle": "contact_title",
    "position": "contact_title",
    "city": "city",
    "state": "state",
    "zip": "zip_code",
    "zipcode": "zip_code",
    "website": "website",
    "url": "website",
    "brands": "brands",
    "brand": "brands",
    "employees": "employee_count",
    "employeecount": "employee_count",
    "size": "employee_count",
    "notes": "notes",
    "note": "notes",
    "comments": "notes",
    "dealvalue": "deal_value",
    "value": "deal_value",
    "source": "source",
    "leadsource": "source",
}

PROSPECT_HEADER_MAP = {
    "firstname": "first_name",
    "first": "first_name",
    "lastname": "last_name",
    "last": "last_name",
    "email": "email",
    "phone": "phone",
    "phonenumber": "phone",
    "company": "company",
    "dealership": "company",
    "position": "position",
    "title": "position",
    "jobtitle": "position",
    "role": "position",
    "industry": "industry",
    "employees": "employee_count",
    "employeecount": "employee_count",
    "linkedin": "linkedin_url",
    "linkedinurl": "linkedin_url",
    "notes": "notes",
}

DEFAULT_PROSPECT_INDUSTRY = "Automotive"
IMPORT_SOURCE = "csv_import"

_HEADER_JUNK = re.compile(r"[^a-z0-9]")
_BRAND_SPLIT = re.compile(r"[,;]")


def normalize_header(cell):
    return _HEADER_JUNK.sub("", (cell or "").strip().lower())


def parse_csv(text, header_map=None):
    """Parse CSV text into dicts keyed by canonical field names.

    Every mapped column appears in every row ("" when the cell is empty or
    missing). When two columns map to the same field, the last non-empty
    one wins.

    Raises:
        ValueError: If there is no header plus at least one data row.
    """
    header_map = LEAD_HEADER_MAP if header_map is None else header_map
    text = (text or "").lstrip("\ufeff")
    table = [
        row for row in csv.reader(io.StringIO(text))
        if any(cell.strip() for cell in row)
    ]
    if len(table) < 2:
        raise ValueError(
            "CSV file must have a header row and at least one data row"
        )

    columns = [header_map.get(normalize_header(h)) for h in table[0]]
    fields = {c for c in columns if c}
    rows = []
    for values in table[1:]:
        row = dict.fromkeys(fields, "")
        for field, value in zip(columns, values):
            value = value.strip()
            if field and value:
                row[field] = value
        rows.append(row)
    return rows


def _int_or_none(raw):
    try:
        value = int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return None
    return value if value >= 0 else None


def _amount_or_none(raw):
    try:
        value = float(str(raw).replace("$", "").replace(",", ""))
    except (TypeError, ValueError):
        return None
    if value != value or value <= 0 or value == float("inf"):
        return None
    return value


def _new_result():
    return {
        "created": 0,
        "skipped": 0,
        "duplicates": 0,
        "missing_name": 0,
        "failed": 0,
        "errors": [],
    }


def _record_failure(result, message):
    result["failed"] += 1
    if len(result["errors"]) < current_app.config.get("IMPORT_ERROR_PREVIEW", 10):
        result["errors"].append(message)


def _dealership_exists(user, name):
    return (
        visible_dealerships(user)
        .filter(func.lower(Dealership.name) == name.lower())
        .first()
    ) is not None


def _create_lead(user, row, name, territory_id):
    """Dealership + optional primary contact + optional deal + import note."""
    brands = [b.strip() for b in _BRAND_SPLIT.split(row.get("brands", "")) if b.strip()]
    dealership = Dealership(
        name=name,
        website=clean_or_none(row.get("website")),
        phone=clean_or_none(row.get("phone")),
        city=clean_or_none(row.get("city")),
        state=clean_or_none(row.get("state")),
        zip_code=clean_or_none(row.get("zip_code")),
        brands=[sanitize(b) for b in brands],
        employee_count=_int_or_none(row.get("employee_count")),
        notes=clean_or_none(row.get("notes")),
        source=clean_or_none(row.get("source")) or IMPORT_SOURCE,
        status=DealershipStatus.PROSPECT.value,
        assigned_user_id=user.id,
        territory_id=territory_id,
    )
    db.session.add(dealership)
    db.session.flush()

    contact = None
    first_name = clean_or_none(row.get("contact_first_name"))
    email = clean_or_none(row.get("contact_email"))
    if first_name or email:
        contact = Contact(
            dealership_id=dealership.id,
            first_name=first_name or "Unknown",
            last_name=clean_or_none(row.get("contact_last_name")) or "",
            email=email.lower() if email else None,
            phone=clean_or_none(row.get("contact_phone")),
            position=clean_or_none(row.get("contact_title")),
            is_primary=True,
        )
        db.session.add(contact)
        db.session.flush()

    deal_value = _amount_or_none(row.get("deal_value"))
    if deal_value is not None:
        db.session.add(Deal(
            title=f"{name} - Imported Lead",
            value=deal_value,
            stage=DealStage.LEAD.value,
            probability=STAGE_PROBABILITIES[DealStage.LEAD],
            dealership_id=dealership.id,
            contact_id=contact.id if contact else None,
            owner_id=user.id,
        ))

    db.session.add(Activity(
        activity_type=ActivityType.NOTE.value,
        subject="Lead imported from CSV",
        description="Lead imported via CSV upload",
        dealership_id=dealership.id,
        contact_id=contact.id if contact else None,
        user_id=user.id,
    ))
    return dealership


def import_leads(text, user, assign_to_territory=False):
    """Create dealerships from an uploaded CSV.

    Args:
        text: Decoded CSV contents.
        user: The importing user; becomes the assignee of every new record.
        assign_to_territory: Put new dealerships in the user's territory.

    Returns:
        dict: {created, skipped, duplicates, missing_name, failed, errors}

    Raises:
        ValueError: If the file is empty or no row carries a dealership name.
    """
    ensure_active(user)
    rows = parse_csv(text, LEAD_HEADER_MAP)
    if not any(row.get("dealership_name") for row in rows):
        raise ValueError(
            "No valid leads found in file. "
            "Ensure there is a column for dealership/company name."
        )

    user_id = user.id
    territory_id = user.territory_id if assign_to_territory else None
    result = _new_result()

    for number, row in enumerate(rows, start=1):
        name = sanitize(row.get("dealership_name") or "")
        if not name:
            result["missing_name"] += 1
            continue
        if _dealership_exists(user, name):
            result["duplicates"] += 1
            continue

        try:
            _create_lead(user, row, name, territory_id)
            db.session.commit()
            result["created"] += 1
        except Exception as e:
            db.session.rollback()
            logger.warning(f"Lead import row {number} ({name}) failed: {e}")
            _record_failure(result, f"Row {number}: failed to create {name}: {e}")

    result["skipped"] = result["duplicates"] + result["missing_name"]
    _log_import(user_id, "leads.imported", result)
    return result


def _prospect_email_exists(user, email):
    return (
        visible_prospects(user)
        .filter(func.lower(Prospect.email) == email.lower())
        .first()
    ) is not None


def import_prospects(text, user):
    """Create prospects from an uploaded CSV (first_name/last_name required).

    Returns:
        dict: {imported, skipped, duplicates, missing_name, failed, errors}
    """
    ensure_active(user)
    rows = parse_csv(text, PROSPECT_HEADER_MAP)
    if "first_name" not in rows[0] or "last_name" not in rows[0]:
        raise ValueError(
            "CSV must contain at least first_name and last_name columns"
        )

    user_id = user.id
    result = _new_result()
    result["imported"] = result.pop("created")

    for number, row in enumerate(rows, start=1):
        if not row.get("first_name") or not row.get("last_name"):
            result["missing_name"] += 1
            continue
        email = row.get("email")
        if email and _prospect_email_exists(user, email):
            result["duplicates"] += 1
            continue

        data = dict(row)
        data["industry"] = row.get("industry") or DEFAULT_PROSPECT_INDUSTRY
        try:
            create_prospect(user, data, source=IMPORT_SOURCE)
            db.session.commit()
            result["imported"] += 1
        except Exception as e:
            db.session.rollback()
            logger.warning(f"Prospect import row {number} failed: {e}")
            _record_failure(result, f"Row {number}: {e}")

    result["skipped"] = result["duplicates"] + result["missing_name"]
    _log_import(user_id, "prospects.imported", result)
    return result


def _log_import(user_id, action, result):
    counts = {k: v for k, v in result.items() if k != "errors"}
    db.session.add(AuditEvent(
        actor_user_id=user_id,
        action=action,
        metadata_=counts,
    ))
    db.session.commit()
    logger.info(f"{action} by {user_id}: {counts}")
