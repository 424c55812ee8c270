"""
Master Data Service

Company -> department -> contact hierarchy used by the activity form.
Cached in the local store for MASTER_CACHE_TTL_HOURS; lookups missing from
the cached hierarchy fall back to per-company API calls and are written back.
"""

import logging
from datetime import timedelta
from typing import Any, List, Optional

from pydantic import ValidationError

from app.config import settings
from app.models.schemas import ContactCreate, MasterData, MutationResult
from app.services.cache_store import CacheInfo, CacheStore, ExpiringCache, get_local_store
from app.services.sales_api_client import SalesApiClient, SalesApiError, get_sales_api_client

logger = logging.getLogger(__name__)

MASTER_CACHE_KEY = "sfa_master_data"


def _as_names(data: Any) -> List[str]:
    if not isinstance(data, list):
        return []
    return [str(v) for v in data if v not in (None, "")]


class MasterDataService:
    """Cache-first access to customers, departments and contacts"""

    def __init__(
        self,
        client: Optional[SalesApiClient] = None,
        store: Optional[CacheStore] = None,
        ttl: Optional[timedelta] = None
    ):
        self.client = client or get_sales_api_client()
        self.cache = ExpiringCache(
            store or get_local_store(),
            MASTER_CACHE_KEY,
            ttl or timedelta(hours=settings.master_cache_ttl_hours)
        )

    async def _read_cache(self) -> Optional[MasterData]:
        cached = await self.cache.get()
        if cached is None:
            return None
        try:
            return MasterData.model_validate(cached)
        except ValidationError as e:
            logger.warning(f"[Master] Cached master data unreadable: {e}")
            await self.cache.clear()
            return None

    async def _write_cache(self, master: MasterData) -> None:
        await self.cache.set(master.model_dump())

    async def _fetch(self) -> MasterData:
        try:
            data = await self.client.fetch_data("getAllMasterData")
            return MasterData.model_validate(data or {})
        except (SalesApiError, ValidationError) as e:
            logger.warning(f"[Master] getAllMasterData failed, falling back to getCustomers: {e}")

        # Companies only; departments and contacts are looked up per company
        customers = await self.client.fetch_data("getCustomers")
        return MasterData(customers=_as_names(customers))

    async def load(self, force: bool = False) -> MasterData:
        """Master data from cache unless expired or `force`; raises SalesApiError when both fetches fail"""
        if not force:
            cached = await self._read_cache()
            if cached is not None:
                return cached

        master = await self._fetch()
        await self._write_cache(master)
        logger.info(
            f"[Master] Loaded {len(master.customers)} customers, "
            f"{len(master.departments)} department lists"
        )
        return master

    async def refresh(self) -> MasterData:
        await self.cache.clear()
        return await self.load(force=True)

    async def cache_info(self) -> Optional[CacheInfo]:
        return await self.cache.info()

    async def departments_for(self, company: str) -> List[str]:
        master = await self.load()
        if company in master.departments:
            return master.departments[company]

        departments = _as_names(await self.client.fetch_data("getDepartments", {"company": company}))
        master.departments[company] = departments
        await self._write_cache(master)
        return departments

    async def contacts_for(self, company: str, department: str) -> List[str]:
        master = await self.load()
        key = MasterData.contact_key(company, department)
        if key in master.contacts:
            return master.contacts[key]

        contacts = _as_names(await self.client.fetch_data(
            "getContactsByDept",
            {"company": company, "department": department}
        ))
        master.contacts[key] = contacts
        await self._write_cache(master)
        return contacts

    async def add_contact(self, contact: ContactCreate) -> MutationResult:
        """Send addContact, then add the name to the cached hierarchy"""
        result = await self.client.post_mutation({
            "action": "addContact",
            "company": contact.company,
            "department": contact.department,
            "contactName": contact.contact_name,
        })

        master = await self.load()
        key = MasterData.contact_key(contact.company, contact.department)
        names = master.contacts.setdefault(key, [])
        if contact.contact_name not in names:
            names.append(contact.contact_name)
        await self._write_cache(master)

        return result


# Singleton instance
_master_data_service: Optional[MasterDataService] = None


def get_master_data_service() -> MasterDataService:
    global _master_data_service
    if _master_data_service is None:
        _master_data_service = MasterDataService()
    return _master_data_service
