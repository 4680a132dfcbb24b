"""
System Info Extractor

Runs before every other extractor and fills the context's system metadata
(product type, basis release, client, system id) from T000, CVERS and
RFC_SYSTEM_INFO.
"""

from typing import Any, Dict, List, Optional

from rfcbridge.core.exceptions import RfcBridgeException
from rfcbridge.extraction.base_extractor import BaseExtractor, ExtractorCategory
from rfcbridge.extraction.coverage import CoverageStatus, ExpectedTable
from rfcbridge.extraction.extractors import mock_data
from rfcbridge.extraction.registry import registry
from rfcbridge.extraction.runner import SYSTEM_INFO_ID
from rfcbridge.rfc.table_reader import TableReadOptions

CLIENT_FIELDS = ["MANDT", "MTEXT", "ORT01", "MWAER", "CCCATEGORY"]
COMPONENT_FIELDS = ["COMPONENT", "RELEASE", "EXTRELEASE", "COMP_TYPE"]


def derive_system(
    components: List[Dict[str, str]],
    client: Optional[str] = None,
    rfc_info: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """System metadata from installed software components"""
    by_name = {row.get("COMPONENT", ""): row for row in components}
    system: Dict[str, Any] = {}

    if "S4CORE" in by_name:
        system["type"] = "S4"
    elif "SAP_APPL" in by_name:
        system["type"] = "ECC"

    basis = by_name.get("SAP_BASIS")
    if basis and basis.get("RELEASE"):
        system["release"] = basis["RELEASE"]
    if client:
        system["client"] = client

    rfc_info = rfc_info or {}
    for source, target in (("RFCSYSID", "sid"), ("RFCDBSYS", "database"), ("RFCHOST", "host")):
        value = str(rfc_info.get(source) or "").strip()
        if value:
            system[target] = value

    return system


@registry.register
class SystemInfoExtractor(BaseExtractor):
    extractor_id = SYSTEM_INFO_ID
    name = "System Information"
    module = "BASIS"
    category = ExtractorCategory.METADATA

    def expected_tables(self) -> List[ExpectedTable]:
        return [
            ExpectedTable(table="T000", description="Clients", critical=True),
            ExpectedTable(table="CVERS", description="Installed software components", critical=False),
        ]

    async def _extract_live(self) -> Dict[str, Any]:
        rows = await self._read_declared_tables(options={
            "T000": TableReadOptions(fields=CLIENT_FIELDS),
            "CVERS": TableReadOptions(fields=COMPONENT_FIELDS),
        })

        rfc_info: Dict[str, Any] = {}
        try:
            response = await self._call_fm("RFC_SYSTEM_INFO")
            rfc_info = (response or {}).get("RFCSI_EXPORT") or {}
        except RfcBridgeException as e:
            self.logger.warning("RFC_SYSTEM_INFO failed", error=str(e))

        client = self.context.rfc.connection_params.client if self.context.rfc is not None else None
        system = {**self.context.system, **derive_system(rows.get("CVERS", []), client, rfc_info)}
        self.context.system = system

        return {"system": system, "clients": rows.get("T000", []), "components": rows.get("CVERS", [])}

    async def _extract_mock(self) -> Dict[str, Any]:
        clients = [dict(row) for row in mock_data.SYSTEM_INFO["clients"]]
        components = [dict(row) for row in mock_data.SYSTEM_INFO["components"]]
        self._track_coverage("T000", CoverageStatus.EXTRACTED, {"row_count": len(clients)})
        self._track_coverage("CVERS", CoverageStatus.EXTRACTED, {"row_count": len(components)})

        system = {**self.context.system, **derive_system(components)}
        self.context.system = system
        return {"system": system, "clients": clients, "components": components}
