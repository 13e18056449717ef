"""UK Contracts Finder (OCDS) award notices adapter. No API key required."""

from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from ..errors import BudgetExhaustedError
from ..normalize import normalize_domain
from .common import ProviderClient

BASE_URL = "https://www.contractsfinder.service.gov.uk/Published"
NOTICE_URL = "https://www.contractsfinder.service.gov.uk/Notice/{ocid}"
COMPANIES_HOUSE_SCHEME = "GB-COH"


def _party(release: Dict[str, Any], role: str, name: Optional[str] = None) -> Optional[Dict[str, Any]]:
    for party in release.get("parties") or []:
        if role in (party.get("roles") or []) and (name is None or party.get("name") == name):
            return party
    return None


def _party_domain(party: Optional[Dict[str, Any]]) -> Optional[str]:
    if not party:
        return None
    for url in ((party.get("contactPoint") or {}).get("url"), (party.get("identifier") or {}).get("uri")):
        domain = normalize_domain(url)
        if domain:
            return domain
    return None


def _party_registry_number(party: Optional[Dict[str, Any]]) -> Optional[str]:
    identifier = (party or {}).get("identifier") or {}
    if identifier.get("scheme") == COMPANIES_HOUSE_SCHEME and identifier.get("id"):
        return str(identifier["id"])
    return None


def parse_release(release: Dict[str, Any]) -> List[Dict[str, Any]]:
    """One raw contract dict per (active award, supplier) in an OCDS release."""
    contracts: List[Dict[str, Any]] = []
    tender = release.get("tender") or {}
    buyer_party = _party(release, "buyer")
    buyer_name = (release.get("buyer") or {}).get("name") or (buyer_party or {}).get("name")
    address = (buyer_party or {}).get("address") or {}
    region = address.get("locality") or address.get("region")
    ocid = release.get("ocid") or release.get("id") or ""

    for award in release.get("awards") or []:
        if award.get("status") != "active" or not award.get("suppliers"):
            continue
        value = (award.get("value") or {}).get("amount") or (tender.get("value") or {}).get("amount")
        for supplier in award["suppliers"]:
            supplier_party = _party(release, "supplier", supplier.get("name"))
            contracts.append({
                "supplier_name": supplier.get("name"),
                "award_date": award.get("date") or release.get("date"),
                "value": value,
                "buyer_name": buyer_name,
                "title": tender.get("title") or award.get("title") or "Contract Award",
                "description": tender.get("description") or award.get("description"),
                "registry_number": _party_registry_number(supplier_party),
                "domain": _party_domain(supplier_party),
                "region": region,
                "source": "contracts_finder",
                "source_ref": f"{ocid}:{award.get('id', '')}:{supplier.get('id') or supplier.get('name')}",
                "source_url": NOTICE_URL.format(ocid=ocid),
            })
    return contracts


class ContractsFinderProvider(ProviderClient):
    name = "contracts_finder"

    def fetch_awards(self, days_back: int = 1, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Award notices published in the last days_back days."""
        published_from = (today or date.today()) - timedelta(days=days_back)
        params = {"publishedFrom": published_from.isoformat(), "stages": "award", "size": 100}
        try:
            data = self.get_json(f"{BASE_URL}/Notices/OCDS/Search", params=params)
        except BudgetExhaustedError:
            self.logger.warning("Contracts Finder budget exhausted")
            return []
        if not data:
            return []

        contracts: List[Dict[str, Any]] = []
        for release in data.get("releases") or []:
            contracts.extend(parse_release(release))
        self.logger.info("Contracts Finder awards fetched", published_from=published_from, awards=len(contracts))
        return contracts
