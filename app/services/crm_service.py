import time
from typing import Any, Dict, Optional

import requests

from app.core.logger import logger

REQUEST_TIMEOUT = 10


class CRMError(Exception):
    pass


def _first_price(price: Any) -> float:
    """'175-600' -> 175.0; anything unparseable -> 0."""
    try:
        return float(str(price).split("-")[0].strip().lstrip("$"))
    except (TypeError, ValueError):
        return 0.0


class HubSpotCRM:
    name = "hubspot"
    url = "https://api.hubapi.com/crm/v3/objects/contacts"

    def __init__(self, api_key: str):
        self.api_key = api_key

    def add_lead(self, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = {
            "properties": {
                "email": data.get("email"),
                "firstname": data.get("firstName"),
                "lastname": data.get("lastName"),
                "phone": data.get("phone"),
                "company": data.get("businessName") or "",
                "lifecyclestage": "lead",
                "booking_id": data.get("bookingId"),
                "service_requested": data.get("serviceName"),
                "preferred_date": data.get("preferredDate"),
                "notes": data.get("message") or "",
            }
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        response = requests.post(self.url, json=payload, headers=headers, timeout=REQUEST_TIMEOUT)
        if not response.ok:
            raise CRMError(f"HubSpot API error {response.status_code}: {response.text}")
        return {"id": response.json().get("id"), "provider": self.name}


class SalesforceCRM:
    name = "salesforce"
    token_url = "https://login.salesforce.com/services/oauth2/token"
    api_version = "v58.0"

    def __init__(self, client_id: str, client_secret: str, username: str, password: str, security_token: str = ""):
        self.client_id = client_id
        self.client_secret = client_secret
        self.username = username
        self.password = password
        self.security_token = security_token
        self._token: Optional[str] = None
        self._instance_url: Optional[str] = None
        self._token_expires_at = 0.0

    def _authenticate(self):
        # Salesforce does not return expires_in for the password grant; assume a session lasts an hour
        if self._token and time.time() < self._token_expires_at - 60:
            return self._token, self._instance_url

        response = requests.post(
            self.token_url,
            data={
                "grant_type": "password",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "username": self.username,
                "password": f"{self.password}{self.security_token}",
            },
            timeout=REQUEST_TIMEOUT,
        )
        if not response.ok:
            raise CRMError(f"Salesforce authentication failed ({response.status_code})")

        auth = response.json()
        self._token = auth["access_token"]
        self._instance_url = auth["instance_url"]
        self._token_expires_at = time.time() + 3600
        logger.info("🔑 Salesforce token obtained")
        return self._token, self._instance_url

    def add_lead(self, data: Dict[str, Any]) -> Dict[str, Any]:
        token, instance_url = self._authenticate()
        description = (
            f"Booking ID: {data.get('bookingId')}\n"
            f"Service: {data.get('serviceName')}\n"
            f"Preferred Date: {data.get('preferredDate')}\n\n"
            f"{data.get('message') or ''}"
        )
        payload = {
            "FirstName": data.get("firstName"),
            "LastName": data.get("lastName"),
            "Email": data.get("email"),
            "Phone": data.get("phone"),
            "Company": data.get("businessName") or "Unknown",
            "LeadSource": "Website",
            "Description": description,
        }
        response = requests.post(
            f"{instance_url}/services/data/{self.api_version}/sobjects/Lead",
            json=payload,
            headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            timeout=REQUEST_TIMEOUT,
        )
        if response.status_code == 401:
            self._token = None
        if not response.ok:
            raise CRMError(f"Failed to create Salesforce lead ({response.status_code})")
        return {"id": response.json().get("id"), "provider": self.name}


class PipedriveCRM:
    name = "pipedrive"
    base_url = "https://api.pipedrive.com/v1"

    def __init__(self, api_token: str):
        self.api_token = api_token

    def add_lead(self, data: Dict[str, Any]) -> Dict[str, Any]:
        params = {"api_token": self.api_token}
        full_name = f"{data.get('firstName', '')} {data.get('lastName', '')}".strip()

        person = requests.post(
            f"{self.base_url}/persons",
            params=params,
            json={
                "name": full_name,
                "email": [{"value": data.get("email"), "primary": True}],
                "phone": [{"value": data.get("phone"), "primary": True}],
            },
            timeout=REQUEST_TIMEOUT,
        )
        if not person.ok:
            raise CRMError(f"Failed to create Pipedrive person ({person.status_code})")
        person_id = person.json()["data"]["id"]

        deal = requests.post(
            f"{self.base_url}/deals",
            params=params,
            json={
                "title": f"{data.get('serviceName')} - {full_name}",
                "person_id": person_id,
                "value": _first_price(data.get("servicePrice")),
                "currency": "USD",
                "status": "open",
            },
            timeout=REQUEST_TIMEOUT,
        )
        if not deal.ok:
            raise CRMError(f"Failed to create Pipedrive deal ({deal.status_code})")
        return {"id": deal.json()["data"]["id"], "provider": self.name}


def build_crm_provider(settings):
    """Strategy for CRM_PROVIDER; None (no-op) when unknown, 'none' or unconfigured."""
    provider = (settings.CRM_PROVIDER or "").lower()

    if provider == "hubspot" and settings.HUBSPOT_API_KEY:
        return HubSpotCRM(settings.HUBSPOT_API_KEY)
    if provider == "salesforce" and settings.SALESFORCE_CLIENT_ID:
        return SalesforceCRM(
            settings.SALESFORCE_CLIENT_ID,
            settings.SALESFORCE_CLIENT_SECRET,
            settings.SALESFORCE_USERNAME,
            settings.SALESFORCE_PASSWORD,
            settings.SALESFORCE_SECURITY_TOKEN,
        )
    if provider == "pipedrive" and settings.PIPEDRIVE_API_TOKEN:
        return PipedriveCRM(settings.PIPEDRIVE_API_TOKEN)

    logger.info(f"ℹ️ No CRM provider configured ('{provider}')")
    return None
