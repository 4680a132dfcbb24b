"""
Canned rows returned by extractors in mock mode
"""

SYSTEM_INFO = {
    "clients": [
        {"MANDT": "000", "MTEXT": "SAP AG", "ORT01": "Walldorf", "MWAER": "EUR", "CCCATEGORY": "S"},
        {"MANDT": "100", "MTEXT": "Production", "ORT01": "Walldorf", "MWAER": "EUR", "CCCATEGORY": "P"},
        {"MANDT": "200", "MTEXT": "Test", "ORT01": "Walldorf", "MWAER": "EUR", "CCCATEGORY": "T"},
    ],
    "components": [
        {"COMPONENT": "SAP_BASIS", "RELEASE": "750", "EXTRELEASE": "0012", "COMP_TYPE": "S"},
        {"COMPONENT": "SAP_ABA", "RELEASE": "750", "EXTRELEASE": "0012", "COMP_TYPE": "S"},
        {"COMPONENT": "SAP_APPL", "RELEASE": "618", "EXTRELEASE": "0010", "COMP_TYPE": "M"},
    ],
}

FI_CONFIG = {
    "company_codes": [
        {"BUKRS": "1000", "BUTXT": "Global Corp US", "ORT01": "New York", "LAND1": "US",
         "WAERS": "USD", "KTOPL": "INT", "PERIV": "K4"},
        {"BUKRS": "2000", "BUTXT": "Global Corp DE", "ORT01": "Frankfurt", "LAND1": "DE",
         "WAERS": "EUR", "KTOPL": "INT", "PERIV": "K4"},
    ],
    "document_types": [
        {"BLART": "SA", "BLTYP": "S"},
        {"BLART": "KR", "BLTYP": "K"},
        {"BLART": "DR", "BLTYP": "D"},
    ],
    "document_type_texts": [
        {"BLART": "SA", "LTEXT": "G/L account document"},
        {"BLART": "KR", "LTEXT": "Vendor invoice"},
        {"BLART": "DR", "LTEXT": "Customer invoice"},
    ],
    "charts_of_accounts": [
        {"KTOPL": "INT", "KTPLT": "Chart of accounts - international"},
    ],
    "posting_keys": [
        {"BSCHL": "40", "KOART": "S", "SHKZG": "S", "XSONU": ""},
        {"BSCHL": "50", "KOART": "S", "SHKZG": "H", "XSONU": ""},
        {"BSCHL": "31", "KOART": "K", "SHKZG": "H", "XSONU": ""},
    ],
    "account_determination": [
        {"KTOPL": "INT", "KTOSL": "BSX", "HKONT": "300000"},
        {"KTOPL": "INT", "KTOSL": "WRX", "HKONT": "191100"},
    ],
    "payment_config": [
        {"ZBUKR": "1000", "RZAWE": "C", "TEXT1": "Check"},
        {"ZBUKR": "1000", "RZAWE": "T", "TEXT1": "Bank transfer"},
    ],
    "tax_codes": [
        {"KALSM": "TAXUS", "MWSKZ": "I0", "TEXT1": "Input tax exempt"},
        {"KALSM": "TAXD", "MWSKZ": "V1", "TEXT1": "Input tax 19%"},
    ],
    "countries": [
        {"LAND1": "US", "LANDX": "United States", "WAERS": "USD"},
        {"LAND1": "DE", "LANDX": "Germany", "WAERS": "EUR"},
    ],
    "credit_control_areas": [
        {"KKBER": "1000", "KKBTX": "Credit control US", "WAERS": "USD"},
    ],
    "business_areas": [
        {"GSBER": "0001", "GTEXT": "Industrial"},
    ],
    "asset_classes": [
        {"ANLKL": "1000", "TXK20": "Buildings"},
        {"ANLKL": "3000", "TXK20": "Machinery"},
    ],
    "depreciation_areas": [
        {"AFAPL": "1DE", "AFABER": "01", "ANLKL": "1000"},
    ],
}
