"""JSON-safe dict serializers shared by the API blueprints."""

from supreme_crm.models.contact import Contact


def _iso(value):
    return value.isoformat() if value else None


def user_dict(user):
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "territory_id": user.territory_id,
        "is_active": user.is_active,
    }


def user_ref(user):
    """Short form used when a user is embedded in another record."""
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "email": user.email}


def contact_dict(contact):
    return {
        "id": contact.id,
        "dealership_id": contact.dealership_id,
        "first_name": contact.first_name,
        "last_name": contact.last_name,
        "email": contact.email,
        "phone": contact.phone,
        "position": contact.position,
        "is_primary": contact.is_primary,
        "lead_score": contact.lead_score,
        "lead_scored_at": _iso(contact.lead_scored_at),
        "created_at": _iso(contact.created_at),
    }


def dealership_dict(dealership, detail=False):
    """Serialize a Dealership. ``detail`` adds contacts."""
    data = {
        "id": dealership.id,
        "name": dealership.name,
        "legal_name": dealership.legal_name,
        "status": dealership.status,
        "website": dealership.website,
        "phone": dealership.phone,
        "email": dealership.email,
        "address": dealership.address,
        "city": dealership.city,
        "state": dealership.state,
        "zip_code": dealership.zip_code,
        "dealer_group": dealership.dealer_group,
        "brands": dealership.brands or [],
        "employee_count": dealership.employee_count,
        "monthly_value": dealership.monthly_value,
        "notes": dealership.notes,
        "source": dealership.source,
        "is_live": dealership.is_live,
        "live_activated_at": _iso(dealership.live_activated_at),
        "customer_since": _iso(dealership.customer_since),
        "assigned_user": user_ref(dealership.assigned_user),
        "territory_id": dealership.territory_id,
        "created_at": _iso(dealership.created_at),
        "updated_at": _iso(dealership.updated_at),
    }
    if detail:
        contacts = dealership.contacts.order_by(Contact.is_primary.desc()).all()
        data["contacts"] = [contact_dict(c) for c in contacts]
    return data


def deal_dict(deal):
    dealership = deal.dealership
    return {
        "id": deal.id,
        "title": deal.title,
        "value": deal.value,
        "monthly_recurring": deal.monthly_recurring,
        "stage": deal.stage,
        "probability": deal.probability,
        "expected_close_date": _iso(deal.expected_close_date),
        "closed_at": _iso(deal.closed_at),
        "lost_reason": deal.lost_reason,
        "notes": deal.notes,
        "dealership": (
            {"id": dealership.id, "name": dealership.name, "is_live": dealership.is_live}
            if dealership else None
        ),
        "contact_id": deal.contact_id,
        "owner": user_ref(deal.owner),
        "created_at": _iso(deal.created_at),
        "updated_at": _iso(deal.updated_at),
    }


def activity_dict(activity):
    return {
        "id": activity.id,
        "type": activity.activity_type,
        "subject": activity.subject,
        "description": activity.description,
        "dealership_id": activity.dealership_id,
        "contact_id": activity.contact_id,
        "deal_id": activity.deal_id,
        "user": user_ref(activity.user),
        "completed_at": _iso(activity.completed_at),
        "created_at": _iso(activity.created_at),
    }


def prospect_dict(prospect):
    return {
        "id": prospect.id,
        "first_name": prospect.first_name,
        "last_name": prospect.last_name,
        "email": prospect.email,
        "phone": prospect.phone,
        "company": prospect.company,
        "position": prospect.position,
        "industry": prospect.industry,
        "employee_count": prospect.employee_count,
        "linkedin_url": prospect.linkedin_url,
        "status": prospect.status,
        "source": prospect.source,
        "notes": prospect.notes,
        "lead_score": prospect.lead_score,
        "lead_scored_at": _iso(prospect.lead_scored_at),
        "enriched": prospect.enriched,
        "user_id": prospect.user_id,
        "created_at": _iso(prospect.created_at),
    }


def interaction_dict(interaction):
    return {
        "id": interaction.id,
        "prospect_id": interaction.prospect_id,
        "type": interaction.type,
        "note": interaction.note,
        "user_id": interaction.user_id,
        "created_at": _iso(interaction.created_at),
    }


def appointment_dict(appointment):
    return {
        "id": appointment.id,
        "prospect_id": appointment.prospect_id,
        "title": appointment.title,
        "start_time": _iso(appointment.start_time),
        "end_time": _iso(appointment.end_time),
        "location": appointment.location,
        "notes": appointment.notes,
        "user_id": appointment.user_id,
    }


def grouped_dict(groups, serialize):
    """Serialize the items inside a {stage: {items, count, value}} mapping."""
    return {
        stage: {
            "items": [serialize(item) for item in bucket["items"]],
            "count": bucket["count"],
            "value": bucket["value"],
        }
        for stage, bucket in groups.items()
    }
