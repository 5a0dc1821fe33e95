"""JSON representations of the dashboard models.

The API speaks camelCase; these helpers convert model instances to wire
dictionaries and map incoming camelCase payloads onto model field names.
"""

from typing import Any, Mapping, Optional

from .models import Agency, Agent, SalesStats, Setting, Transaction


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


AGENCY_FIELDS = {
    "name": "name",
    "contactName": "contact_name",
    "contactEmail": "contact_email",
    "contactPhone": "contact_phone",
    "rlaNumber": "rla_number",
    "logoUrl": "logo_url",
    "active": "active",
}

AGENT_FIELDS = {
    "name": "name",
    "email": "email",
    "phone": "phone",
    "role": "role",
    "profilePicture": "profile_picture",
    "agencyId": "agency",
}

TRANSACTION_FIELDS = {
    "propertyAddress": "property_address",
    "propertySuburb": "property_suburb",
    "propertyPostcode": "property_postcode",
    "propertyType": "property_type",
    "bedrooms": "bedrooms",
    "bathrooms": "bathrooms",
    "price": "price",
    "agentId": "agent",
    "agentName": "agent_name",
    "status": "status",
    "listedDate": "listed_date",
    "transactionDate": "transaction_date",
    "agencyId": "agency",
}


def to_form_data(payload: Mapping[str, Any], field_map: Mapping[str, str]) -> dict[str, Any]:
    """Map a camelCase payload onto form field names.

    Keys that are already model field names are accepted as well; unknown
    keys are dropped.
    """
    known = set(field_map.values())
    data: dict[str, Any] = {}
    for key, value in payload.items():
        if key in field_map:
            data[field_map[key]] = value
        elif key in known:
            data[key] = value
    return data


def agency_to_dict(agency: Agency) -> dict[str, Any]:
    """Serialize an agency."""
    return {
        "id": agency.pk,
        "name": agency.name,
        "contactName": agency.contact_name,
        "contactEmail": agency.contact_email,
        "contactPhone": agency.contact_phone,
        "rlaNumber": agency.rla_number,
        "logoUrl": agency.logo_url,
        "active": agency.active,
        "createdAt": _iso(agency.created_at),
        "updatedAt": _iso(agency.updated_at),
    }


def agent_to_dict(agent: Agent) -> dict[str, Any]:
    """Serialize an agent."""
    return {
        "id": agent.pk,
        "name": agent.name,
        "email": agent.email,
        "phone": agent.phone,
        "role": agent.role,
        "profilePicture": agent.profile_picture,
        "agencyId": agent.agency_id,
        "createdAt": _iso(agent.created_at),
        "updatedAt": _iso(agent.updated_at),
    }


def transaction_to_dict(transaction: Transaction) -> dict[str, Any]:
    """Serialize a transaction. The price is a string to keep its precision."""
    return {
        "id": transaction.pk,
        "propertyAddress": transaction.property_address,
        "propertySuburb": transaction.property_suburb,
        "propertyPostcode": transaction.property_postcode,
        "propertyType": transaction.property_type,
        "bedrooms": transaction.bedrooms,
        "bathrooms": transaction.bathrooms,
        "price": str(transaction.price),
        "agentId": transaction.agent_id,
        "agentName": transaction.agent_name,
        "status": transaction.status,
        "listedDate": _iso(transaction.listed_date),
        "transactionDate": _iso(transaction.transaction_date),
        "daysOnMarket": transaction.days_on_market,
        "agencyId": transaction.agency_id,
    }


def setting_to_dict(setting: Setting) -> dict[str, Any]:
    """Serialize a setting."""
    return {
        "id": setting.pk,
        "key": setting.key,
        "value": setting.value,
        "category": setting.category,
        "agencyId": setting.agency_id,
        "updatedAt": _iso(setting.updated_at),
    }


def sales_stats_to_dict(stats: SalesStats) -> dict[str, Any]:
    """Serialize a cached stats snapshot."""
    return {
        "totalSold": stats.total_sold,
        "totalRevenue": str(stats.total_revenue),
        "avgPrice": str(stats.avg_price),
        "avgDaysOnMarket": stats.avg_days_on_market,
        "periodStart": _iso(stats.period_start),
        "periodEnd": _iso(stats.period_end),
        "agencyId": stats.agency_id,
        "updatedAt": _iso(stats.updated_at),
    }
