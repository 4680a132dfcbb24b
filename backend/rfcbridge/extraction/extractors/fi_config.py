"""
FI Configuration Extractor

Company codes, document types, charts of accounts, posting keys, account
determination, payment and tax configuration, countries, credit control
areas, business areas, asset classes and depreciation areas.
"""

from typing import Any, Dict, List, NamedTuple

from rfcbridge.extraction.base_extractor import BaseExtractor, ExtractorCategory
from rfcbridge.extraction.coverage import CoverageStatus, ExpectedTable
from rfcbridge.extraction.extractors import mock_data
from rfcbridge.extraction.registry import registry
from rfcbridge.rfc.table_reader import TableReadOptions


class ConfigTable(NamedTuple):
    result_key: str
    table: str
    description: str
    critical: bool
    fields: List[str]


FI_TABLES = [
    ConfigTable("company_codes", "T001", "Company codes", True,
                ["BUKRS", "BUTXT", "ORT01", "LAND1", "WAERS", "KTOPL", "PERIV"]),
    ConfigTable("document_types", "T003", "Document types", True, ["BLART", "BLTYP"]),
    ConfigTable("document_type_texts", "T003T", "Document type texts", False, ["BLART", "LTEXT"]),
    ConfigTable("charts_of_accounts", "T004", "Charts of accounts", True, ["KTOPL", "KTPLT"]),
    ConfigTable("posting_keys", "TBSL", "Posting keys", True, ["BSCHL", "KOART", "SHKZG", "XSONU"]),
    ConfigTable("account_determination", "T030", "Account determination", True, ["KTOPL", "KTOSL", "HKONT"]),
    ConfigTable("payment_config", "T042Z", "Payment methods", False, ["ZBUKR", "RZAWE", "TEXT1"]),
    ConfigTable("tax_codes", "T007A", "Tax codes", True, ["KALSM", "MWSKZ", "TEXT1"]),
    ConfigTable("countries", "T005", "Countries", True, ["LAND1", "LANDX", "WAERS"]),
    ConfigTable("credit_control_areas", "T014", "Credit control areas", False, ["KKBER", "KKBTX", "WAERS"]),
    ConfigTable("business_areas", "TGSBT", "Business area texts", False, ["GSBER", "GTEXT"]),
    ConfigTable("asset_classes", "ANKT", "Asset class texts", False, ["ANLKL", "TXK20"]),
    ConfigTable("depreciation_areas", "T090", "Depreciation areas", False, ["AFAPL", "AFABER", "ANLKL"]),
]


@registry.register
class FIConfigExtractor(BaseExtractor):
    extractor_id = "FI_CONFIG"
    name = "Financial Accounting Configuration"
    module = "FI"
    category = ExtractorCategory.CONFIG

    def expected_tables(self) -> List[ExpectedTable]:
        return [
            ExpectedTable(table=t.table, description=t.description, critical=t.critical)
            for t in FI_TABLES
        ]

    async def _extract_live(self) -> Dict[str, Any]:
        rows = await self._read_declared_tables(
            options={t.table: TableReadOptions(fields=t.fields) for t in FI_TABLES}
        )
        return {t.result_key: rows.get(t.table, []) for t in FI_TABLES}

    async def _extract_mock(self) -> Dict[str, Any]:
        result = {}
        for t in FI_TABLES:
            result[t.result_key] = [dict(row) for row in mock_data.FI_CONFIG.get(t.result_key, [])]
            self._track_coverage(t.table, CoverageStatus.EXTRACTED, {"row_count": len(result[t.result_key])})
        return result
